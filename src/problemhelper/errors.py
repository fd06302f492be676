"""Errors raised by the process harness."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from problemhelper.process.state import StreamKind


class HarnessError(Exception):
    """Base class for all harness errors."""


class LaunchError(HarnessError):
    """The child process could not be started.

    ``cause`` is the OS-level exception (``FileNotFoundError``,
    ``PermissionError``, ...) or ``None`` when the command itself was
    rejected before reaching the OS.
    """

    def __init__(self, command: str, cause: BaseException | None = None) -> None:
        self.command = command
        self.cause = cause
        reason = str(cause) if cause is not None else "empty command"
        super().__init__(f"Failed to launch {command!r}: {reason}")


class StreamFault(HarnessError):
    """A read or write failed while the child process was still alive."""

    def __init__(self, stream: StreamKind, cause: BaseException) -> None:
        self.stream = stream
        self.cause = cause
        super().__init__(f"{stream} fault: {cause}")


class ChannelClosedError(HarnessError):
    """Input was sent to a channel whose session is no longer running."""
