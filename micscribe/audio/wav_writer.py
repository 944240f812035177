"""Incremental WAV persistence of the processed audio stream."""

import logging
import wave
from pathlib import Path
from typing import Optional

import numpy as np

from ..errors import PersistenceError, SetupError
from ..models.audio import AudioFrame
from ..models.events import EventKind
from .channel import BoundedChannel
from .stage import PipelineStage

logger = logging.getLogger(__name__)

SAMPLE_WIDTH_BYTES = 2  # 16-bit PCM
INT16_SCALE = 32767


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1.0, 1.0] to little-endian 16-bit PCM."""
    clamped = np.clip(samples, -1.0, 1.0)
    return (clamped * INT16_SCALE).astype("<i2").tobytes()


class WavPersistStage(PipelineStage):
    """Streams mono frames into a WAV file as they arrive.

    The header is rewritten by the ``wave`` module after every write and on
    close, so the file stays structurally valid if the process dies.
    """

    stage_name = "persist"

    def __init__(self, input_channel: BoundedChannel, path: Path, sample_rate: int, **kwargs):
        super().__init__(**kwargs)
        self.input_channel = input_channel
        self.path = Path(path)
        self.sample_rate = sample_rate
        self.wav_file: Optional[wave.Wave_write] = None
        self.frames_written = 0
        self.samples_written = 0
        self.failed = False

    def open(self) -> None:
        """Create the output file. Called once, before the worker starts.

        Raises:
            SetupError: if the file cannot be created
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            wav_file = wave.open(str(self.path), 'wb')
            wav_file.setnchannels(1)
            wav_file.setsampwidth(SAMPLE_WIDTH_BYTES)
            wav_file.setframerate(self.sample_rate)
        except (OSError, wave.Error) as e:
            raise SetupError(f"Cannot create WAV file {self.path}: {e}") from e
        self.wav_file = wav_file
        logger.info(f"Recording to: {self.path}")

    def run(self) -> None:
        if self.wav_file is None:
            raise PersistenceError(f"WAV file {self.path} was never opened")
        self.ready.set()
        try:
            while True:
                frame = self.input_channel.pop(timeout=self.pop_timeout)
                if frame is None:
                    if self.input_channel.is_drained or self.aborted:
                        break
                    continue
                if self.failed:
                    # Keep draining so the channel never backs up
                    continue
                self.write_frame(frame)
        finally:
            self.finalize()

    def write_frame(self, frame: AudioFrame) -> None:
        try:
            self.wav_file.writeframes(float_to_pcm16(frame.samples))
        except Exception as e:
            self._fail(e)
            return
        self.frames_written += 1
        self.samples_written += len(frame.samples)
        self.diagnostics.record_frame_written()

    def finalize(self) -> None:
        """Close the writer, patching the header with the final sample count."""
        if self.wav_file is None:
            return
        wav_file, self.wav_file = self.wav_file, None
        try:
            wav_file.close()
        except Exception as e:
            self._fail(e)
            return
        logger.info(f"WAV file finalized: {self.path} ({self.samples_written} samples)")

    def _fail(self, error: Exception) -> None:
        if self.failed:
            return
        self.failed = True
        message = f"Writing {self.path} failed: {error}"
        logger.error(message)
        self.diagnostics.record_persistence_error(message)
        self.publisher.publish(EventKind.PERSISTENCE_FAILED, self.stage_name, message,
                               PersistenceError(message))
        if self.wav_file is not None:
            wav_file, self.wav_file = self.wav_file, None
            try:
                wav_file.close()
            except Exception as close_error:
                logger.debug(f"Closing failed WAV file also failed: {close_error}")
