"""Pipeline event publisher for pub/sub diagnostics."""

import logging
from pubsub import pub

from ..models.events import EventKind, PipelineEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TOPIC = "pipeline.events"


class PipelineEventPublisher:
    """Publishes PipelineEvents using pubsub.pub.

    Listener failures are logged and never reach the publishing stage.
    """

    def __init__(self, session_id: str = None, topic: str = DEFAULT_EVENT_TOPIC):
        """Initialize event publisher.

        Args:
            session_id: Session the events belong to
            topic: Pub/sub topic name for pipeline events
        """
        self.session_id = session_id
        self.topic = topic
        logger.debug(f"PipelineEventPublisher initialized with topic: {topic}")

    def publish(self, kind: EventKind, stage: str, message: str = "",
                error: Exception = None) -> PipelineEvent:
        """Build and publish an event.

        Returns:
            The published event
        """
        event = PipelineEvent(
            kind=kind,
            stage=stage,
            session_id=self.session_id,
            message=message,
            error=error,
        )
        try:
            pub.sendMessage(self.topic, event=event)
        except Exception as e:
            logger.error(f"Error delivering {kind.value} event from {stage}: {e}")
        return event
