from __future__ import annotations

import logging
import threading
from typing import Callable, List

from galtrans.errors import SessionCancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Cooperative cancellation handle passed into a streaming call.
    Streams check it at every chunk boundary; on_cancel hooks abort blocking reads.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._hooks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            hooks = list(self._hooks)
            self._hooks.clear()
        for hook in hooks:
            try:
                hook()
            except Exception:
                logger.debug("cancel_hook_failed", exc_info=True)

    def on_cancel(self, hook: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._hooks.append(hook)
                return
        hook()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SessionCancelled()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)
