"""Harness — the interface the CLI and TUI drive runs through."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from problemhelper.check import check as tokens_match
from problemhelper.check import find_mismatch
from problemhelper.config import HarnessConfig
from problemhelper.errors import HarnessError, LaunchError, StreamFault
from problemhelper.process.buffer import OutputBuffer
from problemhelper.process.session import ProcessSession
from problemhelper.process.state import SessionState, StreamKind
from problemhelper.wire import Wire

logger = logging.getLogger(__name__)

LineCallback = Callable[[StreamKind, str], None]
StateCallback = Callable[[SessionState], None]
FaultCallback = Callable[[StreamFault], None]


class Harness:
    """Owns the current run: one session and the output it produced.

    - ``start()`` always creates a fresh session (and a fresh output
      buffer); a previous session that is still running is asked to
      terminate first. ``start()`` does not wait for it, so a previous
      child that ignores SIGTERM can outlive the new one's launch by up
      to ``terminate_grace_period`` before it is killed
    - subscribers registered with ``on_line`` / ``on_state_change`` /
      ``on_fault`` stay subscribed across runs
    - ``send()`` never raises: a closed or broken channel is reported as
      ``False`` plus a warning and a wire ERROR event
    - every event is mirrored onto the wire (if attached) for async UIs
    """

    def __init__(
        self,
        config: HarnessConfig | None = None,
        wire: Wire | None = None,
        cwd: str | None = None,
    ) -> None:
        self.config = config or HarnessConfig()
        self._wire = wire
        self._cwd = cwd
        self._session: ProcessSession | None = None
        self._output = OutputBuffer()
        self._line_listeners: list[LineCallback] = []
        self._state_listeners: list[StateCallback] = []
        self._fault_listeners: list[FaultCallback] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_line(self, callback: LineCallback) -> None:
        """Call ``callback(stream, text)`` for each output line (pump thread)."""
        with self._lock:
            self._line_listeners.append(callback)

    def on_state_change(self, callback: StateCallback) -> None:
        with self._lock:
            self._state_listeners.append(callback)

    def on_fault(self, callback: FaultCallback) -> None:
        with self._lock:
            self._fault_listeners.append(callback)

    # ------------------------------------------------------------------
    # Run control
    # ------------------------------------------------------------------

    def start(self, command: str) -> ProcessSession:
        """Launch ``command`` in a fresh session.

        Raises:
            LaunchError: The command could not be started; the previous
                run's output is left untouched.
        """
        previous = self._session
        if previous is not None and previous.alive:
            logger.warning("Session %s still running, terminating it", previous.id)
            previous.terminate()

        output = OutputBuffer()
        # Installed first: the new session's lines can arrive before start() returns
        previous_output, self._output = self._output, output
        try:
            session = ProcessSession.start(
                command,
                config=self.config.process,
                cwd=self._cwd,
                on_line=lambda kind, text: self._handle_line(output, kind, text),
                on_state_change=lambda state: self._handle_state(output, state),
                on_fault=lambda fault: self._handle_fault(output, fault),
            )
        except LaunchError:
            self._output = previous_output
            raise
        self._session = session
        return session

    def send(self, text: str) -> bool:
        """Forward ``text`` to the running program. Returns False if it was rejected."""
        session = self._session
        if session is None:
            self._reject("No program is running")
            return False
        try:
            session.send(text)
        except HarnessError as e:
            self._reject(str(e))
            return False
        if self._wire:
            self._wire.send_input(text)
        return True

    def close_input(self) -> None:
        """Send end-of-input to the running program."""
        if self._session is not None:
            self._session.close_input()

    def terminate(self) -> None:
        if self._session is not None:
            self._session.terminate()

    def wait(self, timeout: float | None = None) -> int | None:
        """Wait for the current session; None if nothing was started."""
        if self._session is None:
            return None
        return self._session.wait(timeout)

    def close(self, timeout: float | None = None) -> None:
        """Terminate the current program and wait for it. Called on shutdown."""
        session = self._session
        if session is None:
            return
        session.terminate()
        try:
            session.wait(timeout)
        except TimeoutError:
            logger.warning("Session %s did not stop within %ss", session.id, timeout)

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------

    def check(self, expected: str, actual: str | None = None) -> bool:
        """Compare ``actual`` (default: stdout so far) with ``expected`` by tokens."""
        if actual is None:
            actual = self._output.read_all(StreamKind.STDOUT)
        passed = tokens_match(actual, expected)
        if self._wire:
            mismatch = None if passed else find_mismatch(actual, expected)
            self._wire.send_check(passed, mismatch.describe() if mismatch else "")
        return passed

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def session(self) -> ProcessSession | None:
        return self._session

    @property
    def output(self) -> OutputBuffer:
        """Output of the current (or most recent) run."""
        return self._output

    @property
    def transcript(self) -> str:
        return self._session.transcript if self._session is not None else ""

    @property
    def running(self) -> bool:
        return self._session is not None and self._session.alive

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _handle_line(self, output: OutputBuffer, kind: StreamKind, text: str) -> None:
        output.append(kind, text)
        if output is not self._output:
            return  # superseded run
        with self._lock:
            listeners = list(self._line_listeners)
        for callback in listeners:
            try:
                callback(kind, text)
            except Exception:
                logger.exception("Error in line subscriber")
        if self._wire:
            self._wire.send_line(str(kind), text)

    def _handle_state(self, output: OutputBuffer, state: SessionState) -> None:
        if output is not self._output:
            return
        with self._lock:
            listeners = list(self._state_listeners)
        for callback in listeners:
            try:
                callback(state)
            except Exception:
                logger.exception("Error in state subscriber")
        if self._wire:
            self._wire.send_state(str(state.status), state.exit_code)

    def _handle_fault(self, output: OutputBuffer, fault: StreamFault) -> None:
        if output is not self._output:
            return
        with self._lock:
            listeners = list(self._fault_listeners)
        for callback in listeners:
            try:
                callback(fault)
            except Exception:
                logger.exception("Error in fault subscriber")
        if self._wire:
            self._wire.send_fault(str(fault.stream), str(fault.cause))

    def _reject(self, message: str) -> None:
        logger.warning("Input rejected: %s", message)
        if self._wire:
            self._wire.send_error(message)
