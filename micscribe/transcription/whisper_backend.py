"""faster-whisper transcription backend."""

import logging
import time
from typing import Optional

import numpy as np

from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


class WhisperBackend(AbstractTranscriptionBackend):
    """Whisper inference through CTranslate2 (faster-whisper).

    Used both as the second real-time engine (with a small model) and as the
    accurate post-recording engine (with a large one).
    """

    name = "faster-whisper"

    def __init__(self,
                 model: str,
                 sample_rate: int = WHISPER_SAMPLE_RATE,
                 language: Optional[str] = "en",
                 device: str = "auto",
                 compute_type: str = "default",
                 beam_size: int = 5):
        """Initialize Whisper backend.

        Args:
            model: Model size name (e.g. 'tiny.en') or path to a converted model directory
            sample_rate: Sample rate of the audio passed to transcribe; must be 16000
            language: Language code, or None to auto-detect
            device: 'cpu', 'cuda' or 'auto'
            compute_type: CTranslate2 compute type
            beam_size: Beam size for decoding
        """
        super().__init__(sample_rate, language or "")
        if not model:
            raise ValueError("Whisper model name or path is required")
        if sample_rate != WHISPER_SAMPLE_RATE:
            raise ValueError(f"Whisper expects {WHISPER_SAMPLE_RATE}Hz audio, got {sample_rate}Hz")
        self.model_name = model
        self.device = device
        self.compute_type = compute_type
        self.beam_size = beam_size
        self.model = None

    def initialize(self) -> bool:
        from faster_whisper import WhisperModel

        logger.info(f"Loading Whisper model: {self.model_name} (device={self.device})")
        self.model = WhisperModel(self.model_name, device=self.device,
                                  compute_type=self.compute_type)
        self.is_initialized = True
        logger.info("Whisper model loaded successfully")
        return True

    def transcribe(self, samples: np.ndarray) -> str:
        if self.model is None:
            raise RuntimeError("Whisper backend used before initialize()")

        start_time = time.time()
        segments, _info = self.model.transcribe(
            np.asarray(samples, dtype=np.float32),
            language=self.language or None,
            beam_size=self.beam_size,
        )
        text = " ".join(segment.text.strip() for segment in segments).strip()

        logger.debug(f"Whisper: {len(samples)} samples -> '{text[:50]}' "
                     f"in {time.time() - start_time:.2f}s")
        return text

    def cleanup(self) -> None:
        self.model = None
        super().cleanup()

    def get_display_info(self) -> str:
        return f"{self.name} ({self.model_name})"
