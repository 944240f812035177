"""Backend selection from configuration."""

import logging

from ..config import AppConfig, RealtimeEngine
from .base import AbstractTranscriptionBackend
from .vosk_backend import VoskBackend
from .whisper_backend import WhisperBackend

logger = logging.getLogger(__name__)


def create_realtime_backend(config: AppConfig) -> AbstractTranscriptionBackend:
    """Build the configured real-time engine (not yet initialized)."""
    settings = config.transcription
    engine = settings.realtime_engine
    logger.info(f"Real-time engine: {engine.value}")

    if engine == RealtimeEngine.VOSK:
        return VoskBackend(
            model_path=settings.vosk_model_path,
            sample_rate=config.audio.sample_rate,
            language=settings.language,
        )
    if engine == RealtimeEngine.FASTER_WHISPER:
        return WhisperBackend(
            model=settings.whisper_realtime_model,
            sample_rate=config.audio.sample_rate,
            language=settings.language,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute_type,
            beam_size=1,
        )
    raise ValueError(f"Unknown realtime_engine: {engine}")


def create_accurate_backend(config: AppConfig) -> AbstractTranscriptionBackend:
    """Build the accurate post-recording engine (not yet initialized)."""
    settings = config.transcription
    return WhisperBackend(
        model=settings.whisper_model_path_accurate,
        sample_rate=config.audio.sample_rate,
        language=settings.language,
        device=settings.whisper_device,
        compute_type=settings.whisper_compute_type,
    )
