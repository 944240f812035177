"""Event models for pipeline diagnostics published over pub/sub."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class EventKind(Enum):
    """Kinds of observable pipeline events."""
    STATE_CHANGED = "state_changed"
    STREAM_OVERFLOW = "stream_overflow"
    FRAME_DROPPED = "frame_dropped"
    CHUNK_FAILED = "chunk_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    POST_PROCESSING_FAILED = "post_processing_failed"
    STAGE_FAILED = "stage_failed"


@dataclass
class PipelineEvent:
    """Something a session wants operators to know about."""
    kind: EventKind
    stage: str
    session_id: Optional[str] = None
    message: str = ""
    error: Optional[Exception] = None
    timestamp: datetime = field(default_factory=datetime.now)
