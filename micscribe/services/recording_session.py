"""Recording session: owns the pipeline workers and the session state machine."""

import logging
import math
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional

from ..audio.capture import CaptureSource, CaptureStage, CaptureStream
from ..audio.channel import BoundedChannel
from ..audio.resampler import ResampleFn, ResampleGainStage
from ..audio.stage import PipelineStage
from ..audio.wav_writer import WavPersistStage
from ..config import AppConfig
from ..errors import PostProcessingError, SetupError, StreamOverflow
from ..models.audio import GainConfig
from ..models.events import EventKind
from ..models.session import SessionReport, SessionState
from ..storage.file_manager import FileManager, SessionPaths
from ..transcription.accurate import run_accurate_transcription
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.chunking import ChunkingRecognitionStage
from ..transcription.publisher import REALTIME_TOPIC, TranscriptionPublisher
from ..transcription.transcript_writer import TranscriptSinkStage
from .diagnostics import SessionDiagnostics
from .event_publisher import DEFAULT_EVENT_TOPIC, PipelineEventPublisher

logger = logging.getLogger(__name__)

OVERFLOW_LOG_INTERVAL = 100


class RecordingSession:
    """Runs one recording at a time through the capture pipeline.

    Pipeline layout::

        capture -> [A] -> resample -> [B] -> persist (WAV)
                                    \\-> [C] -> recognize -> [results] -> transcript

    Each stage runs on its own worker thread named ``<stage>-<session_id>``.
    Capture never blocks: when a channel is full the item is dropped and
    counted. On stop the channels are closed front to back, so every frame
    accepted into a channel is still written and recognized.

    States: IDLE -> STARTING -> RECORDING -> STOPPING [-> POST_PROCESSING] -> IDLE.
    A failed start ends in FAILED with all resources released. FAILED is
    final; a new session object is needed to record again.
    """

    def __init__(self,
                 config: AppConfig,
                 capture_source: CaptureSource,
                 realtime_backend: AbstractTranscriptionBackend,
                 accurate_backend: Optional[AbstractTranscriptionBackend] = None,
                 resampler: Optional[ResampleFn] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 event_topic: str = DEFAULT_EVENT_TOPIC,
                 transcription_topic: str = REALTIME_TOPIC):
        """Initialize recording session.

        Args:
            config: Validated application configuration
            capture_source: Opens the audio input stream
            realtime_backend: Engine used for chunked recognition while recording
            accurate_backend: Engine used once on the finished WAV file, if enabled
            resampler: Sample-rate converter for the resample stage; by default
                each session gets its own StreamingResampler
            clock: Time source for session names
            event_topic: Pub/sub topic for pipeline events
            transcription_topic: Pub/sub topic for real-time results
        """
        self.config = config
        self.capture_source = capture_source
        self.realtime_backend = realtime_backend
        self.accurate_backend = accurate_backend
        self.resampler = resampler
        self.file_manager = FileManager(config.storage.output_directory, clock=clock)
        self.event_topic = event_topic
        self.transcription_publisher = TranscriptionPublisher(transcription_topic)

        self._state = SessionState.IDLE
        self._lifecycle_lock = threading.RLock()
        self.stop_requested = threading.Event()
        self.stop_reason: Optional[str] = None

        self._reset()

    def _reset(self) -> None:
        self.session_id: Optional[str] = None
        self.paths: Optional[SessionPaths] = None
        self.diagnostics = SessionDiagnostics()
        self.publisher = PipelineEventPublisher(topic=self.event_topic)
        self.abort_event = threading.Event()
        self.stop_requested.clear()
        self.stop_reason = None
        self.stage_error: Optional[str] = None
        self.last_report: Optional[SessionReport] = None

        self.stream: Optional[CaptureStream] = None
        self.capture_channel: Optional[BoundedChannel] = None
        self.persist_channel: Optional[BoundedChannel] = None
        self.recognition_channel: Optional[BoundedChannel] = None
        self.result_channel: Optional[BoundedChannel] = None

        self.capture_stage: Optional[CaptureStage] = None
        self.resample_stage: Optional[ResampleGainStage] = None
        self.persist_stage: Optional[WavPersistStage] = None
        self.recognition_stage: Optional[ChunkingRecognitionStage] = None
        self.transcript_stage: Optional[TranscriptSinkStage] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == SessionState.RECORDING

    def _set_state(self, new_state: SessionState) -> None:
        old_state, self._state = self._state, new_state
        logger.info(f"Session state: {old_state.value} -> {new_state.value}")
        self.publisher.publish(EventKind.STATE_CHANGED, "session",
                               f"{old_state.value} -> {new_state.value}")

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(self) -> str:
        """Open all resources and start the pipeline workers.

        Returns:
            The new session id

        Raises:
            SetupError: if any resource cannot be acquired; everything acquired
                so far is released and the session is left in FAILED
            RuntimeError: if this session is not IDLE
        """
        with self._lifecycle_lock:
            if self._state != SessionState.IDLE:
                raise RuntimeError(f"Cannot start a session while {self._state.value}")

            self._reset()
            self._set_state(SessionState.STARTING)
            try:
                self._setup()
            except Exception as e:
                error = e if isinstance(e, SetupError) else SetupError(f"Session setup failed: {e}")
                logger.error(f"❌ Failed to start recording: {error}")
                self._release_after_failed_start()
                self._set_state(SessionState.FAILED)
                if error is e:
                    raise
                raise error from e
            except BaseException:
                # Ctrl+C or SIGTERM while a model loads or a device opens
                logger.warning("Recording start interrupted, releasing resources")
                self._release_after_failed_start()
                self._set_state(SessionState.FAILED)
                raise

            self._set_state(SessionState.RECORDING)
            logger.info(f"✅ Recording started: {self.session_id}")
            return self.session_id

    def _setup(self) -> None:
        audio = self.config.audio
        pipeline = self.config.pipeline

        self.file_manager.ensure_output_directory()
        self.paths = self.file_manager.new_session_paths()
        self.session_id = self.paths.session_id
        self.publisher.session_id = self.session_id

        self._initialize_backend(self.realtime_backend)

        self.capture_channel = BoundedChannel(
            "capture", self._capacity_for(pipeline.capture_buffer_seconds), self._on_overflow)
        self.persist_channel = BoundedChannel(
            "persist", self._capacity_for(pipeline.persist_buffer_seconds), self._on_overflow)
        self.recognition_channel = BoundedChannel(
            "recognition", self._capacity_for(pipeline.recognition_buffer_seconds), self._on_overflow)
        self.result_channel = BoundedChannel(
            "results", pipeline.result_buffer_size, self._on_overflow)

        stage_options = dict(
            diagnostics=self.diagnostics,
            publisher=self.publisher,
            abort_event=self.abort_event,
            pop_timeout=pipeline.pop_timeout_seconds,
        )

        self.persist_stage = WavPersistStage(
            self.persist_channel, self.paths.wav_path, audio.sample_rate, **stage_options)
        self.persist_stage.open()

        self.transcript_stage = TranscriptSinkStage(
            self.result_channel, self.paths.realtime_transcript_path, **stage_options)
        self.transcript_stage.open()

        self.resample_stage = ResampleGainStage(
            self.capture_channel,
            self.persist_channel,
            self.recognition_channel,
            target_rate=audio.sample_rate,
            gain_config=GainConfig(
                gain=audio.gain,
                clip_threshold=audio.clip_threshold,
                quiet_threshold=audio.quiet_threshold,
            ),
            resampler=self.resampler,
            **stage_options)

        self.recognition_stage = ChunkingRecognitionStage(
            self.recognition_channel,
            self.result_channel,
            self.realtime_backend,
            sample_rate=audio.sample_rate,
            chunk_duration_seconds=self.config.transcription.chunk_duration_seconds,
            result_callback=self.transcription_publisher.get_callback(),
            **stage_options)

        try:
            self.stream = self.capture_source.open(audio.device_sample_rate, audio.device_channels)
        except SetupError:
            raise
        except Exception as e:
            raise SetupError(f"Cannot open audio input: {e}") from e

        self.capture_stage = CaptureStage(
            self.stream, self.capture_channel, on_fatal=self._on_capture_failed, **stage_options)

        # Consumers first so capture never feeds a channel nobody reads
        for stage in self._stages_downstream_first():
            stage.start(f"{stage.stage_name}-{self.session_id}")

        deadline = time.monotonic() + pipeline.startup_timeout_seconds
        for stage in self._stages_downstream_first():
            remaining = max(0.0, deadline - time.monotonic())
            if not stage.ready.wait(remaining):
                raise SetupError(f"{stage.stage_name} worker did not start within "
                                 f"{pipeline.startup_timeout_seconds}s")
            if stage.error is not None:
                raise SetupError(f"{stage.stage_name} worker failed to start: {stage.error}")

    def _initialize_backend(self, backend: AbstractTranscriptionBackend) -> None:
        if backend.is_initialized:
            return
        try:
            initialized = backend.initialize()
        except Exception as e:
            raise SetupError(f"{backend.name} model failed to load: {e}") from e
        if not initialized:
            raise SetupError(f"{backend.name} model failed to load")

    def _capacity_for(self, seconds: float) -> int:
        """Number of capture-sized frames covering ``seconds`` of audio."""
        frame_seconds = self.config.audio.frames_per_buffer / self.config.audio.device_sample_rate
        return max(1, math.ceil(seconds / frame_seconds))

    def _stages_downstream_first(self) -> List[PipelineStage]:
        stages = [self.transcript_stage, self.recognition_stage, self.persist_stage,
                  self.resample_stage, self.capture_stage]
        return [stage for stage in stages if stage is not None]

    def _channels(self) -> List[BoundedChannel]:
        channels = [self.capture_channel, self.persist_channel,
                    self.recognition_channel, self.result_channel]
        return [channel for channel in channels if channel is not None]

    def _release_after_failed_start(self) -> None:
        timeout = self.config.pipeline.abort_timeout_seconds
        self.abort_event.set()

        if self.capture_stage is not None:
            self.capture_stage.stop()
        elif self.stream is not None:
            self.stream.close()

        for channel in self._channels():
            channel.close()

        for stage in self._stages_downstream_first():
            stage.join(timeout)

        self._close_unstarted_outputs()

        if self.paths is not None:
            for path in (self.paths.wav_path, self.paths.realtime_transcript_path):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Could not remove {path}: {e}")

    def _close_unstarted_outputs(self) -> None:
        """Close files that were opened but never handed to a worker."""
        if self.persist_stage is not None and self.persist_stage.thread is None:
            self.persist_stage.finalize()
        if self.transcript_stage is not None and self.transcript_stage.thread is None:
            self.transcript_stage.close()

    # ------------------------------------------------------------------
    # Callbacks from workers
    # ------------------------------------------------------------------

    def _on_overflow(self, channel: BoundedChannel) -> None:
        count = self.diagnostics.record_overflow(channel.name)
        if count == 1 or count % OVERFLOW_LOG_INTERVAL == 0:
            logger.warning(f"⚠️ {channel.name} channel full: {count} item(s) dropped so far")
        error = StreamOverflow(f"{channel.name} channel full ({channel.capacity} items)")
        self.publisher.publish(EventKind.STREAM_OVERFLOW, channel.name, str(error), error)

    def _on_capture_failed(self, error: Exception) -> None:
        self.stage_error = f"capture: {error}"
        self.request_stop(f"audio input failed: {error}")

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def request_stop(self, reason: Optional[str] = None) -> None:
        """Signal whoever drives the session that it should be stopped.

        Safe to call from any thread, including the workers.
        """
        if self.stop_requested.is_set():
            return
        self.stop_reason = reason
        logger.info(f"Stop requested{': ' + reason if reason else ''}")
        self.stop_requested.set()

    def wait_for_stop_request(self, timeout: Optional[float] = None) -> bool:
        return self.stop_requested.wait(timeout)

    def stop(self) -> SessionReport:
        """Stop capture, drain every buffered frame and finalize the outputs.

        Runs accurate transcription afterwards when it is enabled and the WAV
        file was written successfully.

        Raises:
            RuntimeError: if no recording is active
        """
        with self._lifecycle_lock:
            if self._state != SessionState.RECORDING:
                raise RuntimeError(f"Cannot stop a session while {self._state.value}")

            self._set_state(SessionState.STOPPING)
            self._drain(self.config.pipeline.shutdown_timeout_seconds)
            report = self.report()

            if self.config.transcription.enable_accurate_recognition:
                self._post_process(report)

            self._set_state(SessionState.IDLE)
            report.final_state = self._state
            self.last_report = report
            logger.info(f"Session {self.session_id} complete: {report.frames_written} frames written, "
                        f"{report.chunks_dispatched} chunks recognized")
            return report

    def _drain(self, timeout: float) -> None:
        self.capture_stage.stop()
        if not self.capture_stage.join(timeout):
            self.abort_event.set()
        # Capture has exited; closing A lets the rest drain in order
        self.capture_channel.close()

        deadline = time.monotonic() + timeout
        for stage in (self.resample_stage, self.persist_stage,
                      self.recognition_stage, self.transcript_stage):
            remaining = max(0.0, deadline - time.monotonic())
            if not stage.join(remaining):
                logger.error(f"{stage.stage_name} worker did not drain in time, aborting pipeline")
                self.abort_event.set()
                for channel in self._channels():
                    channel.close()
                stage.join(self.config.pipeline.abort_timeout_seconds)

        self._collect_stage_errors()

    def _collect_stage_errors(self) -> None:
        for stage in self._stages_downstream_first():
            if stage.error is not None and self.stage_error is None:
                self.stage_error = f"{stage.stage_name}: {stage.error}"

    def _post_process(self, report: SessionReport) -> None:
        if report.persistence_failed:
            report.post_processing_error = "Skipped: the WAV file is incomplete"
            logger.warning("Skipping accurate transcription because the WAV file is incomplete")
            return
        if self.accurate_backend is None:
            report.post_processing_error = "Skipped: no accurate backend configured"
            logger.warning("Accurate recognition enabled but no accurate backend was provided")
            return

        self._set_state(SessionState.POST_PROCESSING)
        try:
            report.accurate_transcript_path = run_accurate_transcription(
                self.paths.wav_path, self.accurate_backend, self.file_manager.output_dir)
        except PostProcessingError as e:
            logger.error(f"❌ Accurate transcription failed: {e}")
            report.post_processing_error = str(e)
            self.publisher.publish(EventKind.POST_PROCESSING_FAILED, "accurate", str(e), e)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> Optional[SessionReport]:
        """Abort whatever is running and release every resource.

        Buffered audio that has not been processed yet is discarded and no
        accurate transcription is run. Usable from any state.

        Returns:
            Report of the aborted session, or None if nothing was running
        """
        if self._state in (SessionState.IDLE, SessionState.FAILED):
            return None

        logger.info("Shutting down recording session")
        self.abort_event.set()
        self.stop_requested.set()
        if self.capture_stage is not None:
            self.capture_stage.stop()
        elif self.stream is not None:
            self.stream.close()
        for channel in self._channels():
            channel.close()

        timeout = self.config.pipeline.abort_timeout_seconds
        for stage in self._stages_downstream_first():
            stage.join(timeout)
        self._close_unstarted_outputs()
        self._collect_stage_errors()

        report = self.report()
        if self._state != SessionState.STOPPING:
            self._set_state(SessionState.STOPPING)
        self._set_state(SessionState.IDLE)
        report.final_state = self._state
        self.last_report = report
        return report

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def report(self) -> SessionReport:
        """Current diagnostics of the active (or last) session."""
        stats = self.diagnostics.snapshot()
        return SessionReport(
            session_id=self.session_id or "",
            wav_path=self.paths.wav_path if self.paths else None,
            realtime_transcript_path=self.paths.realtime_transcript_path if self.paths else None,
            duration_seconds=stats["total_samples"] / self.config.audio.sample_rate,
            overflow_counts=stats["overflow_counts"],
            total_samples=stats["total_samples"],
            clipped_samples=stats["clipped_samples"],
            quiet_samples=stats["quiet_samples"],
            dropped_frames=stats["dropped_frames"],
            frames_written=stats["frames_written"],
            chunks_dispatched=stats["chunks_dispatched"],
            failed_chunks=stats["failed_chunks"],
            persistence_error=stats["persistence_error"],
            stage_error=self.stage_error,
            final_state=self._state,
        )
