"""Worker thread base shared by all pipeline stages."""

import logging
from abc import ABC, abstractmethod
from threading import Event, Thread
from typing import Optional

from ..models.events import EventKind
from ..services.diagnostics import SessionDiagnostics
from ..services.event_publisher import PipelineEventPublisher

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """A pipeline stage running on one dedicated worker thread.

    Subclasses implement ``run``. The worker sets ``ready`` once it is about to
    consume input and ``finished`` when it exits, whatever the reason.
    ``abort_event`` is the process-level shutdown request: stages check it each
    time a pop times out and stop consuming when it is set.
    """

    stage_name = "stage"

    def __init__(self,
                 diagnostics: Optional[SessionDiagnostics] = None,
                 publisher: Optional[PipelineEventPublisher] = None,
                 abort_event: Optional[Event] = None,
                 pop_timeout: float = 0.1):
        self.diagnostics = diagnostics or SessionDiagnostics()
        self.publisher = publisher or PipelineEventPublisher()
        self.abort_event = abort_event or Event()
        self.pop_timeout = pop_timeout

        self.ready = Event()
        self.finished = Event()
        self.error: Optional[BaseException] = None
        self.thread: Optional[Thread] = None

    def start(self, thread_name: Optional[str] = None) -> None:
        """Spawn the worker thread."""
        if self.thread is not None:
            logger.warning(f"{self.stage_name} stage already started")
            return
        self.thread = Thread(target=self._run_worker, daemon=True)
        self.thread.name = thread_name or f"{self.stage_name}-worker"
        self.thread.start()

    def _run_worker(self) -> None:
        logger.info(f"{self.stage_name} stage started")
        try:
            self.run()
        except Exception as e:
            self.error = e
            logger.error(f"{self.stage_name} stage failed: {e}", exc_info=True)
            self.publisher.publish(EventKind.STAGE_FAILED, self.stage_name, str(e), e)
            self.on_fatal_error(e)
        finally:
            self.ready.set()
            self.finished.set()
            logger.info(f"{self.stage_name} stage finished")

    @abstractmethod
    def run(self) -> None:
        """Consume input until it is closed and drained (or aborted)."""

    def on_fatal_error(self, error: Exception) -> None:
        """Hook for stages that must release downstream consumers on failure."""

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to exit.

        Returns:
            True if the worker has terminated
        """
        if self.thread is None:
            return True
        self.thread.join(timeout)
        if self.thread.is_alive():
            logger.warning(f"{self.stage_name} worker did not stop within {timeout}s")
            return False
        return True

    @property
    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()
