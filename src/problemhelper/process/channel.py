"""Input channel — forwards user input to the child's stdin."""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO, Callable

from problemhelper.errors import ChannelClosedError, StreamFault
from problemhelper.process.state import StreamKind

logger = logging.getLogger(__name__)


class InputChannel:
    """Writes text fragments to a child process's stdin.

    Every ``send`` is written and flushed immediately so interactive
    programs see each fragment as soon as the user emits it. Fragments
    are kept in an append-only transcript for display.

    The channel owns ``sink`` and closes it exactly once.
    """

    def __init__(
        self,
        sink: BinaryIO,
        encoding: str = "utf-8",
        is_running: Callable[[], bool] | None = None,
        on_fault: Callable[[StreamFault], None] | None = None,
    ) -> None:
        self._sink = sink
        self._encoding = encoding
        self._is_running = is_running or (lambda: True)
        self._on_fault = on_fault
        self._fragments: list[str] = []
        self._lock = threading.Lock()
        self._closed = False

    def send(self, text: str) -> None:
        """Write ``text`` verbatim and flush.

        Raises:
            ChannelClosedError: The channel is closed or the session is
                no longer running.
            StreamFault: The write failed (e.g. the child closed its
                stdin). The channel is closed afterwards.
        """
        data = text.encode(self._encoding)
        fault: StreamFault | None = None
        with self._lock:
            if self._closed or not self._is_running():
                raise ChannelClosedError("Cannot send input: the program is not running")
            try:
                self._write_all(data)
            except (OSError, ValueError) as e:
                fault = StreamFault(StreamKind.STDIN, e)
            else:
                self._fragments.append(text)
                return

        logger.warning("%s", fault)
        self.close()
        if self._on_fault is not None:
            self._on_fault(fault)
        raise fault

    def _write_all(self, data: bytes) -> None:
        # Raw pipes may accept only part of a large write
        view = memoryview(data)
        while view:
            written = self._sink.write(view)
            view = view[written:]
        self._sink.flush()

    def close(self) -> None:
        """Close the child's stdin. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._sink.close()
        except OSError as e:
            # Flushing leftovers into a dead pipe fails; the fd is released anyway
            logger.debug("Error closing stdin: %s", e)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def fragments(self) -> list[str]:
        with self._lock:
            return list(self._fragments)

    @property
    def transcript(self) -> str:
        """Everything sent so far, concatenated."""
        with self._lock:
            return "".join(self._fragments)
