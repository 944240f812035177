"""Resampling and gain control between capture and the two consumers."""

import logging
from math import gcd
from typing import Callable, Optional, Tuple

import numpy as np
from scipy import signal

from ..errors import FrameProcessingError
from ..models.audio import AudioFrame, GainConfig
from ..models.events import EventKind
from .channel import BoundedChannel
from .stage import PipelineStage

logger = logging.getLogger(__name__)

ResampleFn = Callable[[np.ndarray, int, int], np.ndarray]


def _check_rates(src_rate: int, dst_rate: int) -> None:
    if src_rate <= 0 or dst_rate <= 0:
        raise FrameProcessingError(f"Invalid sample rates: {src_rate} -> {dst_rate}")


def resample_audio(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """Convert a complete mono signal from src_rate to dst_rate.

    Only correct for a whole signal. Splitting a stream into pieces and
    resampling each one pads every piece edge; use StreamingResampler for that.

    Raises:
        FrameProcessingError: if the rates are invalid or resampling fails
    """
    _check_rates(src_rate, dst_rate)
    if src_rate == dst_rate:
        return samples
    if len(samples) == 0:
        return samples

    divisor = gcd(src_rate, dst_rate)
    try:
        resampled = signal.resample_poly(samples, dst_rate // divisor, src_rate // divisor)
    except Exception as e:
        raise FrameProcessingError(f"Resampling {len(samples)} samples failed: {e}") from e
    return resampled.astype(np.float32, copy=False)


class StreamingResampler:
    """Polyphase resampler that carries its filter history from call to call.

    Feeding a stream frame by frame yields the same samples as running
    ``resample_poly`` over the whole stream, so the output length tracks
    ``total_in * dst_rate / src_rate`` however the input is split. Output
    lags the input by half the filter length; ``flush()`` returns the tail
    once the input has ended and resets the state.
    """

    def __init__(self):
        self._rates: Optional[Tuple[int, int]] = None

    def _configure(self, src_rate: int, dst_rate: int) -> None:
        divisor = gcd(src_rate, dst_rate)
        self.up = dst_rate // divisor
        self.down = src_rate // divisor
        max_rate = max(self.up, self.down)
        self.half_len = 10 * max_rate

        # Same filter design as scipy.signal.resample_poly
        taps = signal.firwin(2 * self.half_len + 1, 1.0 / max_rate, window=('kaiser', 5.0))
        taps = taps * self.up
        self.taps_per_phase = (len(taps) - 1) // self.up + 1
        padded = np.zeros(self.taps_per_phase * self.up)
        padded[:len(taps)] = taps
        # phases[p, t] weights input sample (newest - t) for output phase p
        self.phases = padded.reshape(self.taps_per_phase, self.up).T
        self._offsets = np.arange(self.taps_per_phase)

        # Samples before the stream start are zeros
        self._buffer = np.zeros(self.taps_per_phase)
        self._buffer_start = -self.taps_per_phase
        self._received = 0
        self._produced = 0
        self._rates = (src_rate, dst_rate)
        logger.debug(f"StreamingResampler: {src_rate}Hz -> {dst_rate}Hz "
                     f"(up {self.up}, down {self.down}, {len(taps)} taps)")

    def __call__(self, samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
        _check_rates(src_rate, dst_rate)
        if src_rate == dst_rate:
            return samples
        if self._rates != (src_rate, dst_rate):
            if self._rates is not None:
                logger.warning(f"Input rate changed to {src_rate}Hz, resetting resampler")
            self._configure(src_rate, dst_rate)
        if len(samples) == 0:
            return np.zeros(0, dtype=np.float32)

        self._buffer = np.concatenate([self._buffer, np.asarray(samples, dtype=np.float64)])
        self._received += len(samples)
        available = (self._received * self.up - 1 - self.half_len) // self.down + 1
        return self._emit(available)

    def flush(self) -> np.ndarray:
        """Return the delayed tail of the stream and reset."""
        if self._rates is None:
            return np.zeros(0, dtype=np.float32)

        total = -(-self._received * self.up // self.down)
        last_needed = ((total - 1) * self.down + self.half_len) // self.up
        padding = max(0, last_needed - (self._received - 1))
        self._buffer = np.concatenate([self._buffer, np.zeros(padding)])
        tail = self._emit(total)
        self._rates = None
        return tail

    def _emit(self, end: int) -> np.ndarray:
        if end <= self._produced:
            return np.zeros(0, dtype=np.float32)

        positions = np.arange(self._produced, end) * self.down + self.half_len
        newest = positions // self.up - self._buffer_start
        window = self._buffer[newest[:, None] - self._offsets[None, :]]
        output = (self.phases[positions % self.up] * window).sum(axis=1)
        self._produced = end

        keep_from = (end * self.down + self.half_len) // self.up - self.taps_per_phase + 1
        if keep_from > self._buffer_start:
            self._buffer = self._buffer[keep_from - self._buffer_start:]
            self._buffer_start = keep_from
        return output.astype(np.float32)


def mix_to_mono(samples: np.ndarray, channels: int) -> np.ndarray:
    """Average interleaved channels into one."""
    if channels <= 1:
        return samples
    usable = len(samples) - len(samples) % channels
    return samples[:usable].reshape(-1, channels).mean(axis=1, dtype=np.float32)


def apply_gain(samples: np.ndarray, gain: float) -> np.ndarray:
    """Multiply by gain and clamp to [-1.0, 1.0]."""
    return np.clip(samples * np.float32(gain), -1.0, 1.0).astype(np.float32, copy=False)


def classify_levels(samples: np.ndarray, gain_config: GainConfig) -> Tuple[int, int]:
    """Count clipped and very quiet samples.

    A sample is clipped when |s| >= clip_threshold and very quiet when
    |s| < quiet_threshold.

    Returns:
        (clipped, quiet)
    """
    magnitude = np.abs(samples)
    clipped = int(np.count_nonzero(magnitude >= gain_config.clip_threshold))
    quiet = int(np.count_nonzero(magnitude < gain_config.quiet_threshold))
    return clipped, quiet


class ResampleGainStage(PipelineStage):
    """Converts raw capture frames to gained mono frames at the target rate.

    Every output frame is pushed to both the persistence channel and the
    recognition channel. Frames are immutable, so both channels share one
    instance.

    By default each stage owns a StreamingResampler, so the filter state
    spans the whole session. When the input drains, the delayed tail is
    emitted as one extra frame.
    """

    stage_name = "resample"

    def __init__(self,
                 input_channel: BoundedChannel,
                 persist_channel: BoundedChannel,
                 recognition_channel: BoundedChannel,
                 target_rate: int,
                 gain_config: GainConfig,
                 resampler: Optional[ResampleFn] = None,
                 **kwargs):
        super().__init__(**kwargs)
        self.input_channel = input_channel
        self.persist_channel = persist_channel
        self.recognition_channel = recognition_channel
        self.target_rate = target_rate
        self.gain_config = gain_config
        self.resampler = resampler if resampler is not None else StreamingResampler()
        self.frames_processed = 0
        self._last_sequence = -1

        logger.info(f"ResampleGainStage: target {target_rate}Hz, gain {gain_config.gain}, "
                    f"clip >= {gain_config.clip_threshold}, quiet < {gain_config.quiet_threshold}")

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

                output = self.process_frame(frame)
                if output is None:
                    continue
                self.persist_channel.push(output)
                self.recognition_channel.push(output)

            if not self.aborted:
                tail = self.flush()
                if tail is not None:
                    self.persist_channel.push(tail)
                    self.recognition_channel.push(tail)
        finally:
            self.persist_channel.close()
            self.recognition_channel.close()
            logger.info(f"Resample stage processed {self.frames_processed} frames")

    def process_frame(self, frame: AudioFrame):
        """Transform one raw frame.

        Returns:
            The transformed frame, or None if the frame was dropped
        """
        mono = mix_to_mono(frame.samples, frame.channels)
        try:
            resampled = self.resampler(mono, frame.sample_rate, self.target_rate)
        except Exception as e:
            self.diagnostics.record_dropped_frame()
            logger.warning(f"Dropping frame {frame.sequence_number}: {e}")
            self.publisher.publish(
                EventKind.FRAME_DROPPED, self.stage_name,
                f"Frame {frame.sequence_number} dropped", e)
            return None

        self._last_sequence = frame.sequence_number
        return self._finish(resampled, frame.sequence_number)

    def flush(self) -> Optional[AudioFrame]:
        """Emit what the resampler still holds once the input has ended."""
        flush = getattr(self.resampler, "flush", None)
        if flush is None:
            return None
        try:
            tail = flush()
        except Exception as e:
            logger.warning(f"Dropping resampler tail: {e}")
            self.diagnostics.record_dropped_frame()
            self.publisher.publish(EventKind.FRAME_DROPPED, self.stage_name,
                                   "Resampler tail dropped", e)
            return None
        if len(tail) == 0:
            return None
        return self._finish(tail, self._last_sequence + 1)

    def _finish(self, resampled: np.ndarray, sequence_number: int) -> AudioFrame:
        gained = apply_gain(np.asarray(resampled, dtype=np.float32), self.gain_config.gain)
        clipped, quiet = classify_levels(gained, self.gain_config)
        self.diagnostics.record_levels(len(gained), clipped, quiet)
        self.frames_processed += 1

        return AudioFrame(
            samples=gained,
            sequence_number=sequence_number,
            channels=1,
            sample_rate=self.target_rate,
        )
