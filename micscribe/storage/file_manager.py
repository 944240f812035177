"""Output file naming and directory management for recordings."""

import logging
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..errors import SetupError

logger = logging.getLogger(__name__)

SESSION_ID_FORMAT = "%Y-%m-%d_%H-%M-%S"
REALTIME_SUFFIX = "_real-time.txt"


@dataclass(frozen=True)
class SessionPaths:
    """Files produced by one recording session."""
    session_id: str
    wav_path: Path
    realtime_transcript_path: Path


class FileManager:
    """Manages the output directory and the timestamp-named files of each session."""

    def __init__(self, output_dir: str = "./recordings",
                 clock: Callable[[], datetime] = datetime.now):
        """Initialize file manager with output directory.

        Args:
            output_dir: Directory receiving WAV files and transcripts
            clock: Source of the timestamp used for session names
        """
        self.output_dir = Path(output_dir)
        self.clock = clock

    def ensure_output_directory(self) -> Path:
        """Create the output directory if needed and verify it is writable.

        Raises:
            SetupError: if the directory cannot be created or written to
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            # Probe with a real file
            with tempfile.NamedTemporaryFile(dir=self.output_dir, prefix=".write_test_"):
                pass
        except OSError as e:
            raise SetupError(f"Output directory not writable: {self.output_dir}: {e}") from e
        logger.debug(f"Ensured output directory exists: {self.output_dir}")
        return self.output_dir

    def new_session_paths(self) -> SessionPaths:
        """Derive the file names for a new session from the current time.

        A numeric suffix is added if a recording with the same timestamp exists.
        """
        base_id = self.clock().strftime(SESSION_ID_FORMAT)
        session_id = base_id
        counter = 1
        while (self.output_dir / f"{session_id}.wav").exists():
            session_id = f"{base_id}_{counter}"
            counter += 1

        paths = SessionPaths(
            session_id=session_id,
            wav_path=self.output_dir / f"{session_id}.wav",
            realtime_transcript_path=self.output_dir / f"{session_id}{REALTIME_SUFFIX}",
        )
        logger.info(f"New session: {session_id}")
        return paths

    def resolve_wav_path(self, wav_file: str) -> Optional[Path]:
        """Find a WAV file given as a path or as a name inside the output directory.

        Returns:
            Existing path, or None if neither location has the file
        """
        candidate = Path(wav_file)
        if candidate.exists():
            return candidate
        in_output = self.output_dir / wav_file
        if in_output.exists():
            return in_output
        return None

    def list_recordings(self):
        """List WAV recordings in the output directory, oldest first."""
        if not self.output_dir.exists():
            return []
        return sorted(p for p in self.output_dir.iterdir()
                      if p.is_file() and p.suffix == '.wav' and not p.name.startswith('.'))
