"""Session-wide diagnostic counters shared by the pipeline stages."""

import threading
from typing import Dict, Optional


class SessionDiagnostics:
    """Lock-guarded counters updated by the stage workers of one session."""

    def __init__(self):
        self._lock = threading.Lock()
        self.overflow_counts: Dict[str, int] = {}
        self.total_samples = 0
        self.clipped_samples = 0
        self.quiet_samples = 0
        self.dropped_frames = 0
        self.frames_written = 0
        self.chunks_dispatched = 0
        self.failed_chunks = 0
        self.persistence_error: Optional[str] = None

    def record_overflow(self, channel_name: str) -> int:
        """Count one dropped item on a channel and return the new total for it."""
        with self._lock:
            count = self.overflow_counts.get(channel_name, 0) + 1
            self.overflow_counts[channel_name] = count
            return count

    def record_levels(self, total: int, clipped: int, quiet: int) -> None:
        with self._lock:
            self.total_samples += total
            self.clipped_samples += clipped
            self.quiet_samples += quiet

    def record_dropped_frame(self) -> None:
        with self._lock:
            self.dropped_frames += 1

    def record_frame_written(self) -> None:
        with self._lock:
            self.frames_written += 1

    def record_chunk(self, failed: bool) -> None:
        with self._lock:
            self.chunks_dispatched += 1
            if failed:
                self.failed_chunks += 1

    def record_persistence_error(self, message: str) -> None:
        with self._lock:
            if self.persistence_error is None:
                self.persistence_error = message

    def snapshot(self) -> dict:
        """Consistent copy of all counters."""
        with self._lock:
            return {
                "overflow_counts": dict(self.overflow_counts),
                "total_samples": self.total_samples,
                "clipped_samples": self.clipped_samples,
                "quiet_samples": self.quiet_samples,
                "dropped_frames": self.dropped_frames,
                "frames_written": self.frames_written,
                "chunks_dispatched": self.chunks_dispatched,
                "failed_chunks": self.failed_chunks,
                "persistence_error": self.persistence_error,
            }
