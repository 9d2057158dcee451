from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

INCOMING_TEXT = "incoming-text"
TRANSLATION_UPDATED = "translation-updated"
HISTORY_UPDATED = "history-updated"
SERVER_FAULT = "server-fault"

Listener = Callable[[Any], None]
T = TypeVar("T")


class Subscription:
    def __init__(self, broadcaster: "EventBroadcaster", topic: str, token: int) -> None:
        self.broadcaster = broadcaster
        self.topic = topic
        self._token = token
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.broadcaster._unsubscribe(self.topic, self._token)  # noqa: SLF001

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class EventBroadcaster:
    """
    In-process pub/sub. Publishers never wait on subscribers joining or leaving;
    delivery within one topic follows publish order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[Tuple[int, Listener]]] = {}
        self._topic_locks: Dict[str, threading.RLock] = {}
        self._next_token = 0

    def _topic_lock(self, topic: str) -> threading.RLock:
        with self._lock:
            lock = self._topic_locks.get(topic)
            if lock is None:
                lock = threading.RLock()
                self._topic_locks[topic] = lock
            return lock

    def subscribe(self, topic: str, callback: Listener) -> Subscription:
        with self._lock:
            self._next_token += 1
            token = self._next_token
            self._listeners.setdefault(topic, []).append((token, callback))
        return Subscription(self, topic, token)

    def _unsubscribe(self, topic: str, token: int) -> None:
        with self._lock:
            current = self._listeners.get(topic, [])
            remaining = [(t, cb) for t, cb in current if t != token]
            if remaining:
                self._listeners[topic] = remaining
            else:
                self._listeners.pop(topic, None)

    def listener_count(self, topic: str) -> int:
        with self._lock:
            return len(self._listeners.get(topic, []))

    def publish(self, topic: str, payload: Any = None) -> int:
        delivered = 0
        with self._topic_lock(topic):
            with self._lock:
                snapshot = list(self._listeners.get(topic, []))
            for token, callback in snapshot:
                with self._lock:
                    still_subscribed = any(t == token for t, _ in self._listeners.get(topic, []))
                if not still_subscribed:
                    continue
                try:
                    callback(payload)
                    delivered += 1
                except Exception:
                    logger.exception("listener_failed", extra={"topic": topic})
        return delivered


class SubscriberQueue(Generic[T]):
    """
    Thread-safe handoff from worker threads -> UI thread.
    Broadcaster callbacks push; the UI polls (non-blocking).
    """
    def __init__(self, maxsize: int = 100):
        self.q: "queue.Queue[T]" = queue.Queue(maxsize=maxsize)

    def push(self, item: T) -> None:
        try:
            self.q.put_nowait(item)
        except queue.Full:
            # drop oldest to keep UI responsive
            try:
                _ = self.q.get_nowait()
            except queue.Empty:
                return
            try:
                self.q.put_nowait(item)
            except queue.Full:
                return

    def pop(self) -> Optional[T]:
        try:
            return self.q.get_nowait()
        except queue.Empty:
            return None
