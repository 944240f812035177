"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioFrame:
    """An immutable block of interleaved float samples in [-1.0, 1.0]."""
    samples: np.ndarray
    sequence_number: int
    channels: int = 1
    sample_rate: int = 16000

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim != 1:
            samples = samples.reshape(-1)
        if samples is self.samples:
            samples = samples.copy()
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)

    @property
    def frame_count(self) -> int:
        """Number of sample frames (samples per channel)."""
        return len(self.samples) // self.channels

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate


@dataclass(frozen=True)
class GainConfig:
    """Gain and level classification thresholds, fixed for one session."""
    gain: float = 1.0
    clip_threshold: float = 0.99
    quiet_threshold: float = 0.01
