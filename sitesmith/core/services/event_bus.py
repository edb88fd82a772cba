"""
EventBus — thread-safe, in-process pub/sub with bounded replay.

The preview server publishes a ``change`` event after every handled
filesystem change (content, template, view or config).  Live-reload
clients subscribe over SSE (``GET /__sitesmith/events``) and reload
the page when one arrives.

Thread safety model
───────────────────
- Publishing happens on the preview server's event loop; subscribers
  are werkzeug request threads.  ``_lock`` protects ``_seq``,
  ``_buffer`` and ``_subscribers``.
- Each subscriber gets its own ``queue.Queue``; ``publish()`` pushes
  into all of them under the lock.

Message format
──────────────
Every event is a dict::

    {
        "v": 1,                     # schema version
        "ts": 1739648400.123,       # server timestamp
        "seq": 47,                  # monotonic sequence
        "type": "change",           # event type
        "key": "contents",          # what changed (guard class)
        "data": {"filename": "posts/hello.html", "ignored": False},
    }
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from typing import Any, Generator

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1


class EventBus:
    """Thread-safe pub/sub with a bounded replay buffer.

    Parameters
    ----------
    buffer_size : int
        Events kept for replay to clients reconnecting with
        ``Last-Event-Id``.
    subscriber_queue_size : int
        Maximum backlog per client; a client whose queue fills up is
        dropped.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 100,
        subscriber_queue_size: int = 100,
    ) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._subscribers: list[queue.Queue[dict]] = []
        self._subscriber_queue_size = subscriber_queue_size
        self._instance_id: str = time.strftime("%Y-%m-%dT%H:%M:%S")

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def history(self) -> list[dict]:
        """Buffered events, oldest first."""
        with self._lock:
            return list(self._buffer)

    # ── Publishing ──────────────────────────────────────────────

    def publish(
        self,
        event_type: str,
        *,
        key: str = "",
        data: dict[str, Any] | None = None,
    ) -> dict:
        """Broadcast an event to every subscriber and return it."""
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": key,
                "data": data or {},
            }
            if event_type != "sys:heartbeat":
                self._buffer.append(event)

            dead: list[queue.Queue[dict]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive SSE subscriber (queue full)")

        if event_type != "sys:heartbeat":
            logger.debug("event %s key=%s", event_type, key or "-")
        return event

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(
        self,
        *,
        since: int = 0,
        heartbeat_interval: float = 30.0,
    ) -> Generator[dict, None, None]:
        """Yield events for one client, blocking between events.

        Events newer than *since* still in the buffer are replayed
        first.  A ``sys:ready`` event always opens the stream.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)

        with self._lock:
            if since > 0:
                for event in self._buffer:
                    if event["seq"] > since:
                        try:
                            q.put_nowait(event)
                        except queue.Full:
                            break
            self._subscribers.append(q)
            count = len(self._subscribers)

        logger.debug("SSE client connected (since=%d, subscribers=%d)", since, count)

        try:
            yield self._make_ready_event()
            while True:
                try:
                    yield q.get(timeout=heartbeat_interval)
                except queue.Empty:
                    yield self.publish("sys:heartbeat")
        finally:
            with self._lock:
                if q in self._subscribers:
                    self._subscribers.remove(q)
            logger.debug("SSE client disconnected")

    def _make_ready_event(self) -> dict:
        """A ``sys:ready`` event for the connecting client only."""
        with self._lock:
            self._seq += 1
            return {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": "sys:ready",
                "key": "",
                "data": {"instance_id": self._instance_id},
            }
