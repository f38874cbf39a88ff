"""Bounded message channel between native event sources and the controller."""

from __future__ import annotations

import logging
import threading
from queue import Empty, Full, Queue
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Messages are delivered to the subscriber on one thread, in arrival order."""

    def __init__(self, maxsize: int = 32, name: str = "events") -> None:
        self._queue: Queue[T] = Queue(maxsize=maxsize)
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.dropped = 0

    def publish(self, message: T) -> bool:
        try:
            self._queue.put_nowait(message)
        except Full:
            self.dropped += 1
            logger.warning("Channel %s full, dropped %r", self._name, message)
            return False
        return True

    def subscribe(self, handler: Callable[[T], None]) -> None:
        if self._thread and self._thread.is_alive():
            raise RuntimeError(f"channel {self._name} already has a subscriber")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._dispatch, args=(handler,), name=f"{self._name}-dispatch", daemon=True
        )
        self._thread.start()

    def close(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _dispatch(self, handler: Callable[[T], None]) -> None:
        while not self._stop_event.is_set():
            try:
                message = self._queue.get(timeout=0.2)
            except Empty:
                continue
            try:
                handler(message)
            except Exception:
                logger.exception("Handler for channel %s failed on %r", self._name, message)
