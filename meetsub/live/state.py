from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


@dataclass
class SessionStateTracker:
    state: SessionState = SessionState.STOPPED
    last_error: str | None = None

    @property
    def accepting(self) -> bool:
        return self.state == SessionState.RUNNING

    def set_running(self) -> None:
        self.state = SessionState.RUNNING
        self.last_error = None

    def set_paused(self) -> None:
        if self.state == SessionState.RUNNING:
            self.state = SessionState.PAUSED

    def set_resumed(self) -> None:
        if self.state == SessionState.PAUSED:
            self.state = SessionState.RUNNING

    def set_stopped(self) -> None:
        self.state = SessionState.STOPPED

    def set_error(self, detail: str) -> None:
        self.state = SessionState.ERROR
        self.last_error = detail
