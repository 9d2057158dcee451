from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import pyperclip

logger = logging.getLogger(__name__)

DEFAULT_POLL_SEC = 1.5


class ClipboardWatcher:
    """
    Polls the system clipboard and forwards text only when it changes.

    Whatever sits on the clipboard at the moment watching is enabled becomes the
    baseline and is never forwarded, so old text is not replayed. Changes are
    detected on normalize_fn(text), so copies that normalize to the same line
    are forwarded once.
    """

    def __init__(
        self,
        submit: Callable[[str, str], Any],
        *,
        poll_sec: float = DEFAULT_POLL_SEC,
        enabled: bool = False,
        clipboard_module: Any = pyperclip,
        normalize_fn: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.submit = submit
        self.normalize_fn = normalize_fn or str.strip
        self.poll_sec = max(0.05, float(poll_sec))
        self._clipboard = clipboard_module
        self._lock = threading.Lock()
        self._enabled = False
        self._needs_baseline = True
        self._last: Optional[str] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.set_enabled(enabled)

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            turning_on = bool(enabled) and not self._enabled
        # Sampled outside the lock; a failed read defers the baseline to the next poll.
        baseline = self._sample() if turning_on else None
        with self._lock:
            if turning_on:
                self._last = baseline
                self._needs_baseline = baseline is None
            self._enabled = bool(enabled)
        logger.info("clipboard_watch", extra={"enabled": bool(enabled)})

    def _read(self) -> Optional[str]:
        try:
            text = self._clipboard.paste()
        except pyperclip.PyperclipException as e:
            logger.warning("clipboard_read_failed", extra={"error": str(e)})
            return None
        if not isinstance(text, str):
            return None
        return text.strip()

    def _sample(self) -> Optional[str]:
        text = self._read()
        if text is None:
            return None
        return self.normalize_fn(text)

    def poll_once(self) -> bool:
        """Sample the clipboard once; return True when text was forwarded."""
        with self._lock:
            if not self._enabled:
                return False
        text = self._read()
        if text is None:
            return False
        key = self.normalize_fn(text)
        with self._lock:
            if self._needs_baseline:
                self._needs_baseline = False
                self._last = key
                return False
            if not key or key == self._last:
                return False
            self._last = key
        logger.info("clipboard_changed", extra={"chars": len(text)})
        self.submit(text, "clipboard")
        return True

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("clipboard_poll_failed")
            self._stop.wait(self.poll_sec)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="galtrans-clipboard", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=max(1.0, self.poll_sec * 2))
            self._thread = None
