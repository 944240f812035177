"""Chunked real-time recognition stage."""

import logging
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..audio.channel import BoundedChannel
from ..audio.stage import PipelineStage
from ..errors import ChunkRecognitionError
from ..models.audio import AudioFrame
from ..models.events import EventKind
from ..models.transcription import TranscriptionResult, TranscriptionSource
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)


class ChunkerState(Enum):
    ACCUMULATING = "accumulating"
    DISPATCHING = "dispatching"
    FLUSHING = "flushing"
    DONE = "done"


class ChunkAccumulator:
    """Samples received since the last chunk boundary, oldest first."""

    def __init__(self):
        self._parts: List[np.ndarray] = []
        self.sample_count = 0

    def append(self, samples: np.ndarray) -> None:
        if len(samples) == 0:
            return
        self._parts.append(samples)
        self.sample_count += len(samples)

    def take(self, count: int) -> np.ndarray:
        """Remove and return the oldest ``count`` samples (fewer if not available)."""
        if not self._parts:
            return np.zeros(0, dtype=np.float32)
        buffered = self._parts[0] if len(self._parts) == 1 else np.concatenate(self._parts)
        chunk, remainder = buffered[:count], buffered[count:]
        self._parts = [remainder] if len(remainder) else []
        self.sample_count = len(remainder)
        return chunk

    def clear(self) -> None:
        self._parts = []
        self.sample_count = 0

    def __len__(self) -> int:
        return self.sample_count


class ChunkingRecognitionStage(PipelineStage):
    """Cuts the mono stream into fixed-duration chunks and recognizes each one.

    Inference runs synchronously on this stage's single worker, so results
    leave in chunk order and at most one inference is in flight.
    """

    stage_name = "recognize"

    def __init__(self,
                 input_channel: BoundedChannel,
                 result_channel: BoundedChannel,
                 backend: AbstractTranscriptionBackend,
                 sample_rate: int,
                 chunk_duration_seconds: float,
                 result_callback: Optional[Callable[[TranscriptionResult], None]] = None,
                 **kwargs):
        """Initialize recognition stage.

        Args:
            input_channel: Channel C, mono frames at sample_rate
            result_channel: Channel read by the transcript sink
            backend: Initialized real-time backend
            sample_rate: Rate of the incoming frames
            chunk_duration_seconds: Duration of one recognition chunk
            result_callback: Called with every result, e.g. to publish it
        """
        super().__init__(**kwargs)
        self.input_channel = input_channel
        self.result_channel = result_channel
        self.backend = backend
        self.sample_rate = sample_rate
        self.chunk_samples = int(round(chunk_duration_seconds * sample_rate))
        if self.chunk_samples < 1:
            raise ValueError(f"Chunk duration {chunk_duration_seconds}s is shorter than one sample")
        self.result_callback = result_callback

        self.accumulator = ChunkAccumulator()
        self.state = ChunkerState.ACCUMULATING
        self.next_sequence = 0

        logger.info(f"Recognition chunks: {chunk_duration_seconds}s "
                    f"({self.chunk_samples} samples) via {backend.get_display_info()}")

    def run(self) -> None:
        self.ready.set()
        try:
            while True:
                frame = self.input_channel.pop(timeout=self.pop_timeout)
                if frame is None:
                    if self.input_channel.is_drained or self.aborted:
                        break
                    continue
                if self.aborted:
                    break
                self.on_frame(frame)

            if self.aborted:
                logger.info(f"Recognition aborted, discarding {len(self.accumulator)} buffered samples")
                self.accumulator.clear()
            else:
                self.flush()
        finally:
            self.state = ChunkerState.DONE
            self.result_channel.close()
            logger.info(f"Recognition stage dispatched {self.next_sequence} chunks")

    def on_frame(self, frame: AudioFrame) -> None:
        """Accumulate a frame and dispatch every complete chunk."""
        self.accumulator.append(frame.samples)
        while len(self.accumulator) >= self.chunk_samples:
            self.state = ChunkerState.DISPATCHING
            self.dispatch(self.accumulator.take(self.chunk_samples), is_final=False)
            self.state = ChunkerState.ACCUMULATING

    def flush(self) -> None:
        """Dispatch the remainder as a final, shorter chunk."""
        self.state = ChunkerState.FLUSHING
        if len(self.accumulator) > 0:
            remainder = self.accumulator.take(len(self.accumulator))
            logger.debug(f"Flushing final partial chunk of {len(remainder)} samples")
            self.dispatch(remainder, is_final=True)

    def dispatch(self, samples: np.ndarray, is_final: bool) -> TranscriptionResult:
        """Recognize one chunk and forward the result."""
        sequence_number = self.next_sequence
        self.next_sequence += 1

        error = None
        try:
            text = self.backend.transcribe(samples)
        except Exception as e:
            error = ChunkRecognitionError(f"Chunk {sequence_number} failed: {e}")
            logger.warning(str(error))
            text = ""

        result = TranscriptionResult(
            text=text or "",
            is_final=is_final,
            sequence_number=sequence_number,
            source=TranscriptionSource.REALTIME,
            sample_count=len(samples),
            error=str(error) if error else None,
        )
        self.diagnostics.record_chunk(failed=error is not None)
        if error is not None:
            self.publisher.publish(EventKind.CHUNK_FAILED, self.stage_name, str(error), error)
        elif result.text:
            logger.info(f"Recognized #{sequence_number}: '{result.text}'")

        self.result_channel.push(result)
        if self.result_callback:
            try:
                self.result_callback(result)
            except Exception as e:
                logger.error(f"Error in result callback: {e}")
        return result
