"""Data models for the micscribe application."""

from .audio import AudioFrame, GainConfig
from .events import EventKind, PipelineEvent
from .session import SessionReport, SessionState
from .transcription import TranscriptionResult, TranscriptionSource

__all__ = [
    "AudioFrame",
    "GainConfig",
    "EventKind",
    "PipelineEvent",
    "SessionReport",
    "SessionState",
    "TranscriptionResult",
    "TranscriptionSource",
]
