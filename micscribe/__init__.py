"""micscribe: microphone recording with chunked real-time transcription."""

__version__ = "0.1.0"
