"""Transcription publisher module for pub/sub event publishing."""

import logging
from typing import Callable
from pubsub import pub
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

REALTIME_TOPIC = "transcription.realtime"


class TranscriptionPublisher:
    """Publishes transcription results using pubsub.pub."""

    def __init__(self, topic: str = REALTIME_TOPIC):
        """Initialize transcription publisher.

        Args:
            topic: Pub/sub topic name for transcription results
        """
        self.topic = topic
        logger.info(f"TranscriptionPublisher initialized with topic: {topic}")

    def publish_transcription_result(self, result: TranscriptionResult) -> None:
        """Publish a transcription result to the pub/sub topic.

        Args:
            result: TranscriptionResult to publish
        """
        try:
            pub.sendMessage(self.topic, result=result)
        except Exception as e:
            logger.error(f"Error in transcription listener for {self.topic}: {e}")
            return
        logger.debug(f"Published transcription result #{result.sequence_number} ({result.source.value})")

    def get_callback(self) -> Callable[[TranscriptionResult], None]:
        """Get callback function for the recognition stage to use.

        Returns:
            Callback function that publishes transcription results
        """
        return self.publish_transcription_result
