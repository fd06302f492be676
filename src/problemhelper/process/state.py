"""Lifecycle and stream identifiers for process sessions."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class StreamKind(enum.StrEnum):
    """The three standard streams of a child process."""

    STDIN = "stdin"
    STDOUT = "stdout"
    STDERR = "stderr"


class SessionStatus(enum.StrEnum):
    """Lifecycle states for a process session."""

    STARTING = "starting"
    RUNNING = "running"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class SessionState:
    """A lifecycle snapshot; ``exit_code`` is set once TERMINATED.

    Negative exit codes mean the process was killed by that signal.
    """

    status: SessionStatus
    exit_code: int | None = None

    @property
    def running(self) -> bool:
        return self.status == SessionStatus.RUNNING

    @property
    def terminated(self) -> bool:
        return self.status == SessionStatus.TERMINATED

    def __str__(self) -> str:
        if self.terminated:
            return f"{self.status}({self.exit_code})"
        return str(self.status)


STARTING = SessionState(SessionStatus.STARTING)
RUNNING = SessionState(SessionStatus.RUNNING)
