"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TranscriptionSource(Enum):
    """Which model produced a transcription."""
    REALTIME = "realtime"
    ACCURATE = "accurate"


@dataclass
class TranscriptionResult:
    """Result of a transcription operation."""
    text: str
    is_final: bool
    sequence_number: int
    source: TranscriptionSource = TranscriptionSource.REALTIME
    timestamp: datetime = field(default_factory=datetime.now)
    sample_count: int = 0
    error: Optional[str] = None  # Set when recognition failed; text is then empty

    @property
    def failed(self) -> bool:
        return self.error is not None
