from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from galtrans.app.diagnostics import summarize_exception
from galtrans.app.state import SessionState, SessionStateTracker
from galtrans.contracts import TranslationRequest, TranslationUpdate
from galtrans.errors import SessionCancelled
from galtrans.live.cancel import CancelToken
from galtrans.nlp.translator.base import StreamingTranslator
from galtrans.ui.bridge import TRANSLATION_UPDATED, EventBroadcaster

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


def _log_event(level: int, event: str, **fields: Any) -> None:
    logger.log(level, event, extra=fields)


class CompletionSession:
    """One streaming translation request: Idle -> Requesting -> Streaming -> terminal."""

    def __init__(self, key: str, *, force: bool = False) -> None:
        self.id = next(_session_ids)
        self.key = key
        self.force = force
        self.token = CancelToken()
        self.tracker = SessionStateTracker()
        self.done = threading.Event()
        self._chunks: List[str] = []
        self._thread: Optional[threading.Thread] = None
        self._publish_lock = threading.RLock()

    @property
    def state(self) -> SessionState:
        return self.tracker.state

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def join(self, timeout: float | None = None) -> bool:
        return self.done.wait(timeout)

    def __repr__(self) -> str:
        return f"CompletionSession(id={self.id}, state={self.state.value}, chars={len(self.key)})"


class CompletionSessionManager:
    """
    Sole owner of the active-session handle and the in-flight key map.
    Both are mutated only under self._lock, so cancelling the previous session
    and registering the next one happen as one step.
    """

    def __init__(
        self,
        translator: StreamingTranslator,
        broadcaster: EventBroadcaster,
        *,
        system_prompt: str = "",
        model: str = "",
        on_complete: Optional[Callable[[str, str], None]] = None,
    ) -> None:
        self.translator = translator
        self.broadcaster = broadcaster
        self.system_prompt = system_prompt
        self.model = model
        self.on_complete = on_complete
        self._lock = threading.Lock()
        self._active: Optional[CompletionSession] = None
        self._in_flight: Dict[str, CompletionSession] = {}

    # ----- queries -----
    @property
    def active(self) -> Optional[CompletionSession]:
        with self._lock:
            return self._active

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    def in_flight_keys(self) -> List[str]:
        with self._lock:
            return list(self._in_flight)

    def configure(
        self,
        *,
        translator: Optional[StreamingTranslator] = None,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        with self._lock:
            if translator is not None:
                self.translator = translator
            if system_prompt is not None:
                self.system_prompt = system_prompt
            if model is not None:
                self.model = model

    # ----- lifecycle -----
    def start(self, key: str, *, force: bool = False) -> Optional[CompletionSession]:
        session = CompletionSession(key, force=force)
        with self._lock:
            if not force and key in self._in_flight:
                return None
            previous = self._cancel_locked()
            session.tracker.set_requesting()
            self._in_flight[key] = session
            self._active = session
            translator = self.translator
            req = TranslationRequest(text=key, system_prompt=self.system_prompt, model=self.model)

        if previous is not None:
            previous.token.cancel()
            self._publish(previous, SessionState.CANCELLED)
        _log_event(
            logging.INFO,
            "session_started",
            session_id=session.id,
            chars=len(key),
            force=force,
            translator=translator.name,
            superseded=None if previous is None else previous.id,
        )
        session._thread = threading.Thread(  # noqa: SLF001
            target=self._run,
            args=(session, translator, req),
            name=f"galtrans-session-{session.id}",
            daemon=True,
        )
        session._thread.start()  # noqa: SLF001
        return session

    def cancel(self) -> bool:
        with self._lock:
            previous = self._cancel_locked()
        if previous is None:
            return False
        previous.token.cancel()
        self._publish(previous, SessionState.CANCELLED)
        return True

    def _cancel_locked(self) -> Optional[CompletionSession]:
        # The caller cancels the returned token once self._lock is released.
        session = self._active
        if session is None:
            return None
        self._active = None
        if not session.tracker.set_cancelled():
            return None
        self._release_locked(session)
        _log_event(logging.INFO, "session_cancelled", session_id=session.id, partial_chars=len(session.text))
        return session

    def _release_locked(self, session: CompletionSession) -> None:
        if self._in_flight.get(session.key) is session:
            del self._in_flight[session.key]

    def _release(self, session: CompletionSession) -> None:
        with self._lock:
            self._release_locked(session)

    # ----- worker -----
    def _run(self, session: CompletionSession, translator: StreamingTranslator, req: TranslationRequest) -> None:
        t0 = time.perf_counter()
        stream = None
        try:
            stream = translator.stream(req, session.token)
            for delta in stream:
                with self._lock:
                    if session.token.cancelled or session.tracker.finished:
                        raise SessionCancelled()
                    session.tracker.set_streaming()
                    session._chunks.append(delta)  # noqa: SLF001
                if session.token.cancelled:
                    raise SessionCancelled()
                self._publish(session, SessionState.STREAMING)
        except SessionCancelled:
            _log_event(logging.DEBUG, "session_stream_aborted", session_id=session.id)
        except Exception as e:
            self._fail(session, e)
        else:
            self._complete(session, time.perf_counter() - t0)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
            session.done.set()

    def _complete(self, session: CompletionSession, elapsed: float) -> None:
        with self._lock:
            if session.token.cancelled or not session.tracker.set_completed():
                return
            if self._active is session:
                self._active = None
        text = session.text
        try:
            if self.on_complete is not None:
                self.on_complete(session.key, text)
        except Exception:
            logger.exception("session_complete_hook_failed", extra={"session_id": session.id})
        finally:
            self._release(session)
        _log_event(
            logging.INFO,
            "session_completed",
            session_id=session.id,
            chars_in=len(session.key),
            chars_out=len(text),
            ms=round(elapsed * 1000.0, 2),
        )
        self._publish(session, SessionState.COMPLETED)

    def _fail(self, session: CompletionSession, exc: BaseException) -> None:
        detail = summarize_exception(str(exc) or type(exc).__name__)
        with self._lock:
            if session.token.cancelled or not session.tracker.set_failed(detail):
                return
            self._release_locked(session)
            if self._active is session:
                self._active = None
        _log_event(
            logging.WARNING,
            "session_failed",
            session_id=session.id,
            error_type=type(exc).__name__,
            error=detail,
        )
        self._publish(session, SessionState.FAILED, error=detail)

    def _publish(self, session: CompletionSession, state: SessionState, *, error: str | None = None) -> None:
        # Nothing about a session is published after its terminal update.
        with session._publish_lock:  # noqa: SLF001
            if state == SessionState.STREAMING and session.tracker.finished:
                return
            translation = "" if state == SessionState.CANCELLED else session.text
            self.broadcaster.publish(
                TRANSLATION_UPDATED,
                TranslationUpdate(
                    original=session.key,
                    translation=translation,
                    state=state.value,
                    cached=False,
                    error=error,
                ),
            )
