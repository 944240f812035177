"""Output file management."""

from .file_manager import FileManager, SessionPaths

__all__ = [
    "FileManager",
    "SessionPaths",
]
