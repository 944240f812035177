"""Error taxonomy for the recording pipeline.

Only SetupError escapes a session. The other errors are caught at the stage
that raised them, counted and reported at the end of the session.
"""


class MicscribeError(Exception):
    """Base class for all micscribe errors."""


class SetupError(MicscribeError):
    """Device, file or model unavailable; the session cannot start."""


class StreamOverflow(MicscribeError):
    """A bounded channel was full and the newest item was dropped."""


class FrameProcessingError(MicscribeError):
    """A single frame could not be resampled and was dropped."""


class ChunkRecognitionError(MicscribeError):
    """Recognition failed for a single chunk."""


class PersistenceError(MicscribeError):
    """Writing the WAV file failed; the session continues transcription-only."""


class PostProcessingError(MicscribeError):
    """Accurate transcription failed; only the accurate transcript is missing."""
