"""Wire protocol — decouples the process harness from the UI.

Events flow from the harness (pump and watcher threads) to the UI. The
UI subscribes to the wire and renders events, so the TUI never touches
the harness threads directly.
"""

from __future__ import annotations

import asyncio
import enum
import threading
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    LINE = "line"
    INPUT = "input"
    STATE = "state"
    FAULT = "fault"
    CHECK = "check"
    ERROR = "error"
    STATUS = "status"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: harness -> UI subscribers.

    Multi-producer, multi-consumer broadcast. Producers may run on any
    thread: once ``attach_loop()`` has been called, events sent from
    other threads are posted to the loop with ``call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind the wire to the asyncio loop its subscribers run on.

        Must be called from the loop's thread.
        """
        self._loop = loop or asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()

    def send(self, event: WireEvent | None) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed and event is not None:
            return
        loop = self._loop
        if loop is not None and threading.get_ident() != self._loop_thread:
            if not loop.is_closed():
                loop.call_soon_threadsafe(self._broadcast, event)
            return
        self._broadcast(event)

    def _broadcast(self, event: WireEvent | None) -> None:
        for q in list(self._subscribers):
            q.put_nowait(event)

    def send_line(self, stream: str, text: str) -> None:
        self.send(WireEvent(type=EventType.LINE, data={"stream": stream, "text": text}))

    def send_input(self, text: str) -> None:
        self.send(WireEvent(type=EventType.INPUT, data={"text": text}))

    def send_state(self, status: str, exit_code: int | None = None) -> None:
        self.send(
            WireEvent(
                type=EventType.STATE,
                data={"status": status, "exit_code": exit_code},
            )
        )

    def send_fault(self, stream: str, message: str) -> None:
        self.send(
            WireEvent(type=EventType.FAULT, data={"stream": stream, "message": message})
        )

    def send_check(self, passed: bool, detail: str = "") -> None:
        self.send(WireEvent(type=EventType.CHECK, data={"passed": passed, "detail": detail}))

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        self.send(None)
