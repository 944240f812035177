"""Session-level services shared by the pipeline stages.

``RecordingSession`` lives in ``micscribe.services.recording_session`` and is
imported from there, since it depends on the stages that depend on this package.
"""

from .diagnostics import SessionDiagnostics
from .event_publisher import PipelineEventPublisher

__all__ = [
    "SessionDiagnostics",
    "PipelineEventPublisher",
]
