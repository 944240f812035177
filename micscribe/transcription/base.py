"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
import logging

import numpy as np

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends.

    Backends are stateless across ``transcribe`` calls: each call recognizes
    one self-contained batch of mono float samples at ``sample_rate``.
    """

    name = "backend"

    def __init__(self, sample_rate: int = 16000, language: str = "en"):
        """Initialize backend with sample rate and language preference."""
        self.sample_rate = sample_rate
        self.language = language
        self.is_initialized = False

    @abstractmethod
    def initialize(self) -> bool:
        """Load models and verify configuration.

        Returns:
            True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    def transcribe(self, samples: np.ndarray) -> str:
        """Recognize one batch of mono float samples.

        Args:
            samples: float32 samples in [-1.0, 1.0] at ``sample_rate``

        Returns:
            Recognized text (empty if nothing was recognized)

        Raises:
            Exception: any failure; callers treat it as a failed batch
        """
        pass

    def cleanup(self) -> None:
        """Release backend resources."""
        self.is_initialized = False

    def get_display_info(self) -> str:
        return self.name
