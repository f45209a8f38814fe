"""
Event bus: a single consumer aggregating worker lifecycle events.

Workers call :meth:`EventBus.publish` from any thread; one daemon thread
drains the bounded FIFO queue, logs each event and keeps per-kind counters.
A full queue blocks the publisher until the consumer catches up.  The bus is
purely observational: nothing a worker does depends on it.
"""

from __future__ import annotations

import queue
import threading
from collections import Counter
from typing import Optional

import structlog

from ..models import Event, EventKind, EventSummary

_STOP = object()


class EventBus:
    """Multi-producer, single-consumer event channel."""

    def __init__(self, maxsize: int = 1024, *, logger=None) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._counts: Counter[EventKind] = Counter()
        self._log = logger or structlog.get_logger(__name__)
        self._thread: Optional[threading.Thread] = None
        self._closed = threading.Event()

    # ------------------------------------------------------------------ #
    def start(self) -> "EventBus":
        if self._thread is not None:
            raise RuntimeError("EventBus already started")
        self._thread = threading.Thread(target=self._consume, name="event-bus", daemon=True)
        self._thread.start()
        return self

    def publish(self, event: Event) -> None:
        """Enqueue *event*; blocks while the queue is full."""
        if self._closed.is_set():
            raise RuntimeError("EventBus is closed")
        self._queue.put(event)

    def close(self) -> EventSummary:
        """Stop the consumer after it has drained every queued event."""
        if not self._closed.is_set():
            self._closed.set()
            self._queue.put(_STOP)
            if self._thread is not None:
                self._thread.join()
        return self.summary()

    def summary(self) -> EventSummary:
        return EventSummary(
            uploaded=self._counts[EventKind.UPLOADED],
            predicted=self._counts[EventKind.PREDICTED],
            downloaded=self._counts[EventKind.DOWNLOADED],
        )

    # ------------------------------------------------------------------ #
    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._record(item)
            except Exception:  # noqa: BLE001 – keep draining
                self._log.exception("event dropped", event=repr(item))

    def _record(self, event: Event) -> None:
        self._counts[event.kind] += 1
        self._log.info(
            f"study {event.kind.value}",
            study=event.study_key,
            detail=event.detail,
            total=self._counts[event.kind],
        )

    def __enter__(self) -> "EventBus":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()
