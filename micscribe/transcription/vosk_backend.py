"""Vosk (Kaldi) transcription backend for real-time chunks."""

import json
import logging
import time
from pathlib import Path

import numpy as np

from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)


class VoskBackend(AbstractTranscriptionBackend):
    """Offline Vosk recognizer.

    A fresh KaldiRecognizer is built for every chunk so no decoder state leaks
    from one chunk into the next.
    """

    name = "vosk"

    def __init__(self, model_path: str, sample_rate: int = 16000, language: str = "en"):
        """Initialize Vosk backend.

        Args:
            model_path: Directory of an unpacked Vosk model
            sample_rate: Sample rate of the audio passed to transcribe
        """
        super().__init__(sample_rate, language)
        if not model_path:
            raise ValueError("Vosk model path is required")
        self.model_path = model_path
        self.model = None

    def initialize(self) -> bool:
        if not Path(self.model_path).exists():
            logger.error(f"Vosk model path does not exist: {self.model_path}")
            return False

        from vosk import Model, SetLogLevel

        SetLogLevel(-1)
        logger.info(f"Loading Vosk model from {self.model_path}...")
        self.model = Model(self.model_path)
        self.is_initialized = True
        logger.info(f"Vosk model loaded successfully (sample_rate: {self.sample_rate} Hz)")
        return True

    def transcribe(self, samples: np.ndarray) -> str:
        from vosk import KaldiRecognizer

        if self.model is None:
            raise RuntimeError("Vosk backend used before initialize()")

        start_time = time.time()
        recognizer = KaldiRecognizer(self.model, self.sample_rate)
        recognizer.SetWords(True)

        pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2").tobytes()
        recognizer.AcceptWaveform(pcm)
        result = json.loads(recognizer.FinalResult())
        text = result.get("text", "").strip()

        logger.debug(f"Vosk: {len(samples)} samples -> '{text}' "
                     f"in {time.time() - start_time:.2f}s")
        return text

    def cleanup(self) -> None:
        self.model = None
        super().cleanup()
