"""Stream pumps — turn a child's raw output stream into line events."""

from __future__ import annotations

import codecs
import logging
import threading
from typing import BinaryIO, Callable

from problemhelper.errors import StreamFault
from problemhelper.process.state import StreamKind

logger = logging.getLogger(__name__)

LineCallback = Callable[[StreamKind, str], None]
FaultCallback = Callable[[StreamFault], None]


class LineSplitter:
    """Incremental bytes -> lines splitter.

    Multi-byte characters split across reads are decoded correctly;
    undecodable bytes become U+FFFD. A trailing ``\\r`` is dropped so
    CRLF output yields the same lines as LF output.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        # Pieces of the unterminated line, joined once its newline arrives
        self._pending: list[str] = []

    def feed(self, data: bytes) -> list[str]:
        """Feed raw bytes, return the lines they completed."""
        text = self._decoder.decode(data)
        if "\n" not in text:
            if text:
                self._pending.append(text)
            return []
        first, *rest = text.split("\n")
        self._pending.append(first)
        complete = ["".join(self._pending), *rest[:-1]]
        self._pending = [rest[-1]] if rest[-1] else []
        return [_chomp(line) for line in complete]

    def flush(self) -> str | None:
        """Return the final unterminated fragment, if there is one."""
        text = "".join(self._pending) + self._decoder.decode(b"", final=True)
        self._pending = []
        if not text:
            return None
        return _chomp(text)


def _chomp(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


class StreamPump:
    """Reads one output stream on its own thread and emits its lines.

    The thread blocks in ``read()`` until data arrives or the stream
    closes, so an idle child costs nothing. The pump ends at
    end-of-stream, after a read error, or once ``stop()`` has been
    called and the next read returns.

    ``stream`` must be an unbuffered binary stream (``Popen(bufsize=0)``
    pipes, ``os.fdopen(fd, "rb", buffering=0)``) so that ``read(n)``
    returns as soon as any bytes are available.

    The pump owns ``stream`` and closes it exactly once when it stops.
    """

    def __init__(
        self,
        stream: BinaryIO,
        kind: StreamKind,
        on_line: LineCallback,
        on_fault: FaultCallback | None = None,
        is_alive: Callable[[], bool] | None = None,
        encoding: str = "utf-8",
        chunk_size: int = 4096,
        name: str = "",
    ) -> None:
        self.kind = kind
        self._stream = stream
        self._on_line = on_line
        self._on_fault = on_fault
        self._is_alive = is_alive or (lambda: False)
        self._splitter = LineSplitter(encoding)
        self._chunk_size = chunk_size
        self._stopped = threading.Event()
        self._closed = False
        self._close_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._name = name or f"pump-{kind}"

    def start(self) -> None:
        """Run the pump on a daemon thread."""
        if self._thread is not None:
            raise RuntimeError(f"{self._name} already started")
        self._thread = threading.Thread(target=self.run, name=self._name, daemon=True)
        self._thread.start()

    def run(self) -> None:
        """Read until end-of-stream, emitting one callback per line."""
        try:
            while not self._stopped.is_set():
                try:
                    data = self._stream.read(self._chunk_size)
                except (OSError, ValueError) as e:
                    # ValueError: the stream was closed underneath us
                    self._read_failed(e)
                    break

                if not data:
                    break

                for line in self._splitter.feed(data):
                    self._emit(line)

            tail = self._splitter.flush()
            if tail is not None:
                self._emit(tail)
        finally:
            self._stopped.set()
            self._close()
            logger.debug("%s stopped", self._name)

    def stop(self) -> None:
        """Ask the pump to stop after its current read.

        The read itself is not interrupted; killing the child (which
        closes the write end of the pipe) is what wakes it up.
        """
        self._stopped.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the pump thread. Returns True if it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def active(self) -> bool:
        if self._thread is not None:
            return self._thread.is_alive()
        return not self._stopped.is_set()

    def _emit(self, line: str) -> None:
        try:
            self._on_line(self.kind, line)
        except Exception:
            logger.exception("Error in line callback for %s", self._name)

    def _read_failed(self, error: BaseException) -> None:
        if not self._is_alive():
            logger.debug("%s read ended after process exit: %s", self._name, error)
            return
        fault = StreamFault(self.kind, error)
        logger.warning("%s", fault)
        if self._on_fault is not None:
            try:
                self._on_fault(fault)
            except Exception:
                logger.exception("Error in fault callback for %s", self._name)

    def _close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._stream.close()
        except OSError as e:
            logger.warning("Error closing %s: %s", self._name, e)
