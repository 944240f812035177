"""Real-time transcript file writer."""

import logging
from pathlib import Path
from typing import Optional, TextIO

from ..audio.channel import BoundedChannel
from ..audio.stage import PipelineStage
from ..errors import SetupError
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


def format_transcript_line(result: TranscriptionResult) -> str:
    return f"[{result.timestamp.strftime('%H:%M:%S')}] {result.text}"


class TranscriptSinkStage(PipelineStage):
    """Appends one line per result, flushing after each so a crash loses at most one line."""

    stage_name = "transcript"

    def __init__(self, input_channel: BoundedChannel, path: Path, **kwargs):
        super().__init__(**kwargs)
        self.input_channel = input_channel
        self.path = Path(path)
        self.file: Optional[TextIO] = None
        self.line_count = 0

    def open(self) -> None:
        """Create the transcript file.

        Raises:
            SetupError: if the file cannot be created
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.file = open(self.path, 'w', encoding='utf-8')
        except OSError as e:
            raise SetupError(f"Cannot create transcript file {self.path}: {e}") from e
        logger.info(f"Saving recognized text to: {self.path}")

    def run(self) -> None:
        if self.file is None:
            raise SetupError(f"Transcript file {self.path} was never opened")
        self.ready.set()
        try:
            while True:
                result = self.input_channel.pop(timeout=self.pop_timeout)
                if result is None:
                    if self.input_channel.is_drained:
                        break
                    continue
                self.write_result(result)
        finally:
            self.close()

    def write_result(self, result: TranscriptionResult) -> None:
        self.file.write(format_transcript_line(result) + "\n")
        self.file.flush()
        self.line_count += 1

    def close(self) -> None:
        if self.file is None:
            return
        file, self.file = self.file, None
        file.close()
        logger.info(f"Transcript closed: {self.line_count} lines written to {self.path}")
