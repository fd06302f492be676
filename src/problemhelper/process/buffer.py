"""Append-only output buffer shared by the stdout and stderr pumps."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from problemhelper.process.state import StreamKind
from problemhelper.text import clean_line


@dataclass(frozen=True)
class OutputLine:
    """One line received from the child process."""

    stream: StreamKind
    text: str  # Raw text as decoded from the stream
    display: str  # ANSI-stripped, binary-sanitized text


class OutputBuffer:
    """Thread-safe, append-only record of child output lines.

    Both pumps append concurrently; appends are atomic with respect to
    each other. Lines from one stream keep their order, lines from
    different streams interleave in arrival order, which is not
    meaningful.

    The raw text is what the equivalence check compares; the display
    text is what UIs render.
    """

    def __init__(self) -> None:
        self._lines: list[OutputLine] = []
        self._lock = threading.Lock()
        self._appended = threading.Condition(self._lock)

    def append(self, stream: StreamKind, text: str) -> OutputLine:
        line = OutputLine(stream=stream, text=text, display=clean_line(text))
        with self._lock:
            self._lines.append(line)
            self._appended.notify_all()
        return line

    def lines(self, stream: StreamKind | None = None) -> list[OutputLine]:
        """Snapshot of the buffered lines, optionally for one stream only."""
        with self._lock:
            lines = list(self._lines)
        if stream is None:
            return lines
        return [line for line in lines if line.stream == stream]

    def read(
        self,
        offset: int = 0,
        limit: int = 500,
        stream: StreamKind | None = None,
    ) -> list[str]:
        """Read raw text lines.

        Args:
            offset: 0-based line offset (counted within ``stream`` if given).
            limit: Maximum number of lines to return.
            stream: Restrict to stdout or stderr.
        """
        lines = self.lines(stream)
        start = min(offset, len(lines))
        end = min(start + limit, len(lines))
        return [line.text for line in lines[start:end]]

    def read_all(self, stream: StreamKind | None = None) -> str:
        """All raw text joined with newlines."""
        return "\n".join(line.text for line in self.lines(stream))

    def read_all_display(self, stream: StreamKind | None = None) -> str:
        return "\n".join(line.display for line in self.lines(stream))

    def read_tail(self, n: int = 100, stream: StreamKind | None = None) -> list[str]:
        """Read the last N raw lines."""
        lines = self.lines(stream)
        return [line.text for line in lines[-n:]] if n > 0 else []

    def wait_for_lines(self, count: int, timeout: float | None = None) -> bool:
        """Block until at least ``count`` lines are buffered.

        Returns False if the timeout expired first.
        """
        with self._appended:
            return self._appended.wait_for(lambda: len(self._lines) >= count, timeout)

    @property
    def line_count(self) -> int:
        with self._lock:
            return len(self._lines)

    def __len__(self) -> int:
        return self.line_count
