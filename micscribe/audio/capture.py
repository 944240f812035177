"""Microphone capture: the device-facing source and the stage that drains it."""

import logging
from abc import ABC, abstractmethod
from threading import Event, Lock
from typing import Callable, Dict, Iterator, List, Optional

import numpy as np

from ..errors import SetupError
from ..models.audio import AudioFrame
from .channel import BoundedChannel
from .stage import PipelineStage

logger = logging.getLogger(__name__)


class CaptureStream(ABC):
    """An open device stream yielding AudioFrames until closed."""

    sample_rate: int
    channels: int

    @abstractmethod
    def __iter__(self) -> Iterator[AudioFrame]:
        """Yield frames in capture order; stops once the stream is closed."""

    @abstractmethod
    def close(self) -> None:
        """Stop the stream. Safe to call from another thread and more than once."""


class CaptureSource(ABC):
    """Something that can open a capture stream."""

    @abstractmethod
    def open(self, sample_rate_hint: int, channels_hint: int) -> CaptureStream:
        """Open a stream. Raises SetupError if the device is unavailable."""


class PyAudioCaptureStream(CaptureStream):
    """Blocking PyAudio reads converted to float32 frames."""

    def __init__(self, pyaudio_instance, stream, sample_rate: int, channels: int,
                 frames_per_buffer: int):
        self.pyaudio_instance = pyaudio_instance
        self.stream = stream
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.stop_event = Event()
        self.total_chunks = 0
        self._lock = Lock()
        self._iterating = False

    def __iter__(self) -> Iterator[AudioFrame]:
        with self._lock:
            if self.stream is None:
                return
            self._iterating = True
        try:
            while not self.stop_event.is_set():
                audio_chunk = self.stream.read(
                    self.frames_per_buffer,
                    exception_on_overflow=False
                )
                samples = np.frombuffer(audio_chunk, dtype=np.float32)
                frame = AudioFrame(
                    samples=samples,
                    sequence_number=self.total_chunks,
                    channels=self.channels,
                    sample_rate=self.sample_rate,
                )
                self.total_chunks += 1
                yield frame
        finally:
            self._release()

    def close(self) -> None:
        self.stop_event.set()
        with self._lock:
            iterating = self._iterating
        if not iterating:
            self._release()

    def _release(self) -> None:
        # The reading thread releases the device itself once its loop exits
        with self._lock:
            self._iterating = False
            stream, self.stream = self.stream, None
            pyaudio_instance, self.pyaudio_instance = self.pyaudio_instance, None
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            finally:
                if pyaudio_instance is not None:
                    pyaudio_instance.terminate()
            logger.info(f"Audio stream closed after {self.total_chunks} chunks")


class PyAudioCaptureSource(CaptureSource):
    """Capture source backed by a PortAudio input device through PyAudio."""

    def __init__(self, device_index: Optional[int] = None, frames_per_buffer: int = 1024):
        """Initialize capture source.

        Args:
            device_index: PyAudio input device index; None selects the default device
            frames_per_buffer: Frames per blocking read
        """
        self.device_index = device_index
        self.frames_per_buffer = frames_per_buffer

    def open(self, sample_rate_hint: int, channels_hint: int) -> CaptureStream:
        import pyaudio

        pyaudio_instance = pyaudio.PyAudio()
        try:
            stream = pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=channels_hint,
                rate=sample_rate_hint,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=None
            )
        except Exception as e:
            pyaudio_instance.terminate()
            raise SetupError(f"Cannot open audio input device {self.device_index}: {e}") from e

        logger.info(f"Audio stream opened: {sample_rate_hint}Hz, {channels_hint} channel(s), "
                    f"{self.frames_per_buffer} frames/buffer")
        return PyAudioCaptureStream(pyaudio_instance, stream, sample_rate_hint,
                                    channels_hint, self.frames_per_buffer)


def list_input_devices() -> List[Dict[str, object]]:
    """Enumerate input-capable devices.

    Returns:
        One dict per device with index, name, channels and default sample rate
    """
    import pyaudio

    pyaudio_instance = pyaudio.PyAudio()
    try:
        devices = []
        for index in range(pyaudio_instance.get_device_count()):
            info = pyaudio_instance.get_device_info_by_index(index)
            if info.get("maxInputChannels", 0) > 0:
                devices.append({
                    "index": index,
                    "name": info.get("name", "Unknown"),
                    "channels": int(info["maxInputChannels"]),
                    "sample_rate": int(info.get("defaultSampleRate", 0)),
                })
        return devices
    finally:
        pyaudio_instance.terminate()


class CaptureStage(PipelineStage):
    """Drains a capture stream into the capture channel without ever blocking on it."""

    stage_name = "capture"

    def __init__(self, stream: CaptureStream, output: BoundedChannel,
                 on_fatal: Optional[Callable[[Exception], None]] = None, **kwargs):
        """Initialize capture stage.

        Args:
            stream: Open capture stream
            output: Channel A, read by the resample stage
            on_fatal: Called when the stream fails while recording
        """
        super().__init__(**kwargs)
        self.stream = stream
        self.output = output
        self.on_fatal = on_fatal
        self.stop_event = Event()
        self.frames_captured = 0

    def run(self) -> None:
        self.ready.set()
        for frame in self.stream:
            if self.stop_event.is_set() or self.aborted:
                break
            self.output.push(frame)
            self.frames_captured += 1
        logger.info(f"Capture loop ended after {self.frames_captured} frames")

    def stop(self) -> None:
        """Ask the capture loop to end and close the device stream."""
        self.stop_event.set()
        self.stream.close()

    def on_fatal_error(self, error: Exception) -> None:
        if self.on_fatal is not None and not self.stop_event.is_set():
            self.on_fatal(error)
