from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED})


@dataclass
class SessionStateTracker:
    state: SessionState = SessionState.IDLE
    last_error: str | None = None

    @property
    def active(self) -> bool:
        return self.state in (SessionState.REQUESTING, SessionState.STREAMING)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def set_requesting(self) -> bool:
        if self.state != SessionState.IDLE:
            return False
        self.state = SessionState.REQUESTING
        self.last_error = None
        return True

    def set_streaming(self) -> bool:
        if self.state == SessionState.REQUESTING:
            self.state = SessionState.STREAMING
            return True
        return self.state == SessionState.STREAMING

    def set_completed(self) -> bool:
        # A stream that ended before its first chunk still completes.
        if not self.active:
            return False
        self.state = SessionState.COMPLETED
        return True

    def set_cancelled(self) -> bool:
        if self.finished:
            return False
        self.state = SessionState.CANCELLED
        return True

    def set_failed(self, detail: str) -> bool:
        if self.finished:
            return False
        self.state = SessionState.FAILED
        self.last_error = detail
        return True
