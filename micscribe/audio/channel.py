"""Bounded FIFO channel connecting two pipeline stages."""

import logging
import threading
from collections import deque
from typing import Callable, Deque, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedChannel(Generic[T]):
    """Thread-safe bounded FIFO with a drop-newest overflow policy.

    One producer family writes, one consumer reads. ``push`` never blocks so
    the real-time capture thread can feed it; when the channel is full the
    pushed item is dropped and counted. ``pop`` blocks up to a timeout and
    returns ``None`` on timeout or once the channel is closed and drained.
    """

    def __init__(self, name: str, capacity: int,
                 on_overflow: Optional[Callable[["BoundedChannel[T]"], None]] = None):
        """Initialize channel.

        Args:
            name: Channel name used in logs and diagnostics
            capacity: Maximum number of buffered items, fixed for the channel's lifetime
            on_overflow: Called (from the producer thread) each time an item is dropped
        """
        if capacity < 1:
            raise ValueError(f"Channel capacity must be at least 1, got {capacity}")

        self.name = name
        self.capacity = capacity
        self.on_overflow = on_overflow

        self._items: Deque[T] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._closed = False
        self._overflow_count = 0
        self._pushed_count = 0

        logger.debug(f"BoundedChannel '{name}' initialized: capacity={capacity}")

    def push(self, item: T) -> bool:
        """Append an item without blocking.

        Returns:
            True if the item was accepted, False if it was dropped because the
            channel is full or closed
        """
        with self._lock:
            if self._closed:
                logger.debug(f"Channel '{self.name}' is closed, rejecting item")
                return False
            if len(self._items) >= self.capacity:
                self._overflow_count += 1
                overflowed = True
            else:
                self._items.append(item)
                self._pushed_count += 1
                self._not_empty.notify()
                overflowed = False

        if overflowed and self.on_overflow is not None:
            # Outside the lock so the callback can inspect the channel
            self.on_overflow(self)
        return not overflowed

    def pop(self, timeout: Optional[float] = None) -> Optional[T]:
        """Remove and return the oldest item.

        Args:
            timeout: Seconds to wait for an item; None waits until an item
                arrives or the channel is closed

        Returns:
            The oldest item, or None on timeout or when closed and drained
        """
        with self._not_empty:
            if not self._items and not self._closed:
                self._not_empty.wait_for(lambda: self._items or self._closed, timeout)
            if self._items:
                return self._items.popleft()
            return None

    def close(self) -> None:
        """Close the channel. Buffered items remain available to the reader."""
        with self._not_empty:
            if self._closed:
                return
            self._closed = True
            self._not_empty.notify_all()
        logger.debug(f"Channel '{self.name}' closed "
                     f"({self._pushed_count} pushed, {self._overflow_count} dropped)")

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def is_drained(self) -> bool:
        """True once the channel is closed and every buffered item was read."""
        with self._lock:
            return self._closed and not self._items

    @property
    def overflow_count(self) -> int:
        with self._lock:
            return self._overflow_count

    @property
    def pushed_count(self) -> int:
        with self._lock:
            return self._pushed_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __repr__(self) -> str:
        return (f"BoundedChannel(name={self.name!r}, capacity={self.capacity}, "
                f"size={len(self)}, closed={self.closed})")
