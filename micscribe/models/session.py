"""Session-related data models."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional


class SessionState(Enum):
    """Lifecycle states of a recording session."""
    IDLE = "idle"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"
    POST_PROCESSING = "post_processing"
    FAILED = "failed"


@dataclass
class SessionReport:
    """End-of-session diagnostics."""
    session_id: str
    wav_path: Optional[Path] = None
    realtime_transcript_path: Optional[Path] = None
    accurate_transcript_path: Optional[Path] = None
    duration_seconds: float = 0.0
    overflow_counts: Dict[str, int] = field(default_factory=dict)
    total_samples: int = 0
    clipped_samples: int = 0
    quiet_samples: int = 0
    dropped_frames: int = 0
    frames_written: int = 0
    chunks_dispatched: int = 0
    failed_chunks: int = 0
    persistence_error: Optional[str] = None
    post_processing_error: Optional[str] = None
    stage_error: Optional[str] = None
    final_state: SessionState = SessionState.IDLE

    @property
    def persistence_failed(self) -> bool:
        return self.persistence_error is not None

    @property
    def total_overflows(self) -> int:
        return sum(self.overflow_counts.values())
