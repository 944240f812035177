"""Transcription module for micscribe."""

from .base import AbstractTranscriptionBackend
from ..models.transcription import TranscriptionResult, TranscriptionSource
from .vosk_backend import VoskBackend
from .whisper_backend import WhisperBackend
from .factory import create_realtime_backend, create_accurate_backend
from .chunking import ChunkingRecognitionStage
from .transcript_writer import TranscriptSinkStage
from .publisher import TranscriptionPublisher
from .accurate import run_accurate_transcription

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionResult",
    "TranscriptionSource",
    "VoskBackend",
    "WhisperBackend",
    "create_realtime_backend",
    "create_accurate_backend",
    "ChunkingRecognitionStage",
    "TranscriptSinkStage",
    "TranscriptionPublisher",
    "run_accurate_transcription",
]
