"""Process session — one child process with live stdin/stdout/stderr."""

from __future__ import annotations

import errno
import logging
import os
import shlex
import signal
import subprocess
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from problemhelper.config import ProcessConfig
from problemhelper.errors import LaunchError, StreamFault
from problemhelper.process.channel import InputChannel
from problemhelper.process.pump import LineCallback, StreamPump
from problemhelper.process.state import (
    RUNNING,
    STARTING,
    SessionState,
    SessionStatus,
    StreamKind,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState], None]
FaultCallback = Callable[[StreamFault], None]

_POSIX = os.name == "posix"
_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)

# fork()/CreateProcess can fail transiently when the OS is short on
# processes or memory; those are worth another try.
_TRANSIENT_ERRNOS = frozenset({errno.EAGAIN, errno.ENOMEM})


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and exc.errno in _TRANSIENT_ERRNOS


@dataclass
class ProcessSession:
    """A running child process wired to two pumps and an input channel.

    Lifecycle: STARTING -> RUNNING -> TERMINATED(exit_code). A session is
    never restarted; every run gets a fresh one via ``start()``.

    Threads:
    - one pump per output stream (stdout, stderr)
    - one watcher that waits for the process to exit, lets the pumps
      drain, closes stdin and publishes TERMINATED

    The child runs in its own process group (POSIX) so ``terminate()``
    reaches anything it spawned.
    """

    command: str
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    config: ProcessConfig = field(default_factory=ProcessConfig)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    _state: SessionState = field(default=STARTING, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _channel: InputChannel | None = field(default=None, init=False)
    _pumps: list[StreamPump] = field(default_factory=list, init=False)
    _faults: dict[StreamKind, StreamFault] = field(default_factory=dict, init=False)
    _line_listeners: list[LineCallback] = field(default_factory=list, init=False)
    _state_listeners: list[StateCallback] = field(default_factory=list, init=False)
    _fault_listeners: list[FaultCallback] = field(default_factory=list, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _terminated: threading.Event = field(default_factory=threading.Event, init=False)
    _terminate_requested: bool = field(default=False, init=False)
    _kill_timer: threading.Timer | None = field(default=None, init=False)

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    @classmethod
    def start(
        cls,
        command: str,
        *,
        config: ProcessConfig | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        on_line: LineCallback | None = None,
        on_state_change: StateCallback | None = None,
        on_fault: FaultCallback | None = None,
    ) -> ProcessSession:
        """Launch ``command`` and return its running session.

        Listeners given here are registered before the pumps start, so
        no output line can be missed.

        Raises:
            LaunchError: The command is empty or malformed, or the OS
                could not start it. Nothing is left running.
        """
        session = cls(
            command=command,
            cwd=cwd,
            env=env or {},
            config=config or ProcessConfig(),
        )
        if on_line is not None:
            session.add_line_listener(on_line)
        if on_state_change is not None:
            session.add_state_listener(on_state_change)
        if on_fault is not None:
            session.add_fault_listener(on_fault)
        session._launch()
        return session

    def _launch(self) -> None:
        if not self.command or not self.command.strip():
            raise LaunchError(self.command)

        if self.config.use_shell:
            args: str | list[str] = self.command
        else:
            try:
                args = shlex.split(self.command, posix=_POSIX)
            except ValueError as e:
                raise LaunchError(self.command, e) from e
            if not args:
                raise LaunchError(self.command)

        try:
            self._proc = self._spawn(args)
        except (OSError, ValueError) as e:
            logger.info("Launch failed for %r: %s", self.command, e)
            raise LaunchError(self.command, e) from e

        try:
            self._wire_streams()
        except BaseException:
            self._abandon()
            raise

    def _wire_streams(self) -> None:
        assert self._proc is not None
        assert self._proc.stdin and self._proc.stdout and self._proc.stderr
        encoding = self.config.encoding

        self._channel = InputChannel(
            self._proc.stdin,
            encoding=encoding,
            is_running=lambda: self._state.running,
            on_fault=self._handle_fault,
        )
        self._pumps = [
            StreamPump(
                stream,
                kind,
                on_line=self._dispatch_line,
                on_fault=self._handle_fault,
                is_alive=self._process_alive,
                encoding=encoding,
                chunk_size=self.config.read_chunk_size,
                name=f"pump-{self.id}-{kind}",
            )
            for stream, kind in (
                (self._proc.stdout, StreamKind.STDOUT),
                (self._proc.stderr, StreamKind.STDERR),
            )
        ]

        self._set_state(RUNNING)
        logger.info(
            "Session %s started: pid=%d cmd=%s", self.id, self._proc.pid, self.command
        )

        for pump in self._pumps:
            pump.start()
        threading.Thread(
            target=self._watch, name=f"watch-{self.id}", daemon=True
        ).start()

    def _spawn(self, args: str | list[str]) -> subprocess.Popen:
        env = {**os.environ, **self.env} if self.env else None
        for attempt in Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.config.launch_attempts),
            wait=wait_exponential(multiplier=0.05, max=1.0),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return subprocess.Popen(
                    args,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    bufsize=0,
                    shell=self.config.use_shell,
                    cwd=self.cwd,
                    env=env,
                    start_new_session=_POSIX,
                )
        raise AssertionError("unreachable")  # pragma: no cover

    def _abandon(self) -> None:
        """Kill a half-wired child and release its pipes."""
        assert self._proc is not None
        logger.error("Session %s failed while starting, killing pid %d", self.id, self._proc.pid)
        self._signal(_SIGKILL)
        for stream in (self._proc.stdin, self._proc.stdout, self._proc.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError as e:
                logger.warning("Error closing pipe of session %s: %s", self.id, e)
        try:
            self._proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            logger.warning("Session %s: pid %d not reaped", self.id, self._proc.pid)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def add_line_listener(self, callback: LineCallback) -> None:
        """Call ``callback(stream, text)`` for every output line (pump thread)."""
        with self._lock:
            self._line_listeners.append(callback)

    def add_state_listener(self, callback: StateCallback) -> None:
        """Call ``callback(state)`` on every lifecycle transition."""
        with self._lock:
            self._state_listeners.append(callback)

    def add_fault_listener(self, callback: FaultCallback) -> None:
        with self._lock:
            self._fault_listeners.append(callback)

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def send(self, text: str) -> None:
        """Forward ``text`` to the child's stdin (see ``InputChannel.send``)."""
        self._require_channel().send(text)

    def close_input(self) -> None:
        """Close the child's stdin so it sees end-of-input."""
        self._require_channel().close()

    def wait(self, timeout: float | None = None) -> int:
        """Block until TERMINATED and return the exit code.

        Must not be called from a UI event loop.

        Raises:
            TimeoutError: ``timeout`` expired first.
        """
        if not self._terminated.wait(timeout):
            raise TimeoutError(f"Session {self.id} still running after {timeout}s")
        assert self._state.exit_code is not None
        return self._state.exit_code

    def terminate(self) -> None:
        """Ask the child to stop; escalate to SIGKILL after the grace period.

        Returns immediately. No-op once terminated or already requested.
        """
        with self._lock:
            if self._state.terminated or self._terminate_requested:
                return
            self._terminate_requested = True

        logger.info("Terminating session %s", self.id)
        self._signal(signal.SIGTERM)

        timer = threading.Timer(self.config.terminate_grace_period, self._escalate)
        timer.daemon = True
        self._kill_timer = timer
        timer.start()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def alive(self) -> bool:
        return self._state.running

    @property
    def exit_code(self) -> int | None:
        return self._state.exit_code

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def degraded(self) -> bool:
        """True once any stream has faulted."""
        return bool(self._faults)

    @property
    def faults(self) -> dict[StreamKind, StreamFault]:
        with self._lock:
            return dict(self._faults)

    @property
    def transcript(self) -> str:
        return self._channel.transcript if self._channel is not None else ""

    @property
    def input_closed(self) -> bool:
        return self._channel is None or self._channel.closed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_channel(self) -> InputChannel:
        if self._channel is None:
            raise RuntimeError(f"Session {self.id} was never started")
        return self._channel

    def _process_alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def _watch(self) -> None:
        assert self._proc is not None
        exit_code = self._proc.wait()
        logger.debug("Session %s process exited (code=%s)", self.id, exit_code)

        if not self._drain(self.config.drain_timeout):
            # Something the child spawned still holds the pipes open
            logger.warning(
                "Session %s: output still open after exit, killing process group",
                self.id,
            )
            self._signal(_SIGKILL)
            if not self._drain(1.0):
                logger.warning("Session %s: output pumps did not drain", self.id)

        if self._kill_timer is not None:
            self._kill_timer.cancel()
        if self._channel is not None:
            self._channel.close()

        self._set_state(SessionState(SessionStatus.TERMINATED, exit_code))
        self._terminated.set()
        logger.info("Session %s terminated (code=%s)", self.id, exit_code)

    def _drain(self, timeout: float) -> bool:
        drained = True
        for pump in self._pumps:
            drained = pump.join(timeout) and drained
        return drained

    def _escalate(self) -> None:
        if self._process_alive():
            logger.warning(
                "Session %s ignored SIGTERM for %.1fs, killing",
                self.id,
                self.config.terminate_grace_period,
            )
            self._signal(_SIGKILL)

    def _signal(self, sig: int) -> None:
        if self._proc is None:
            return
        try:
            if _POSIX:
                # start_new_session made the child its own group leader
                os.killpg(self._proc.pid, sig)
            elif sig == signal.SIGTERM:
                self._proc.terminate()
            else:
                self._proc.kill()
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._proc.pid)
        except OSError as e:
            logger.warning("Error signalling session %s: %s", self.id, e)

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            self._state = state
            listeners = list(self._state_listeners)
        for callback in listeners:
            try:
                callback(state)
            except Exception:
                logger.exception("Error in state callback for session %s", self.id)

    def _dispatch_line(self, kind: StreamKind, text: str) -> None:
        with self._lock:
            listeners = list(self._line_listeners)
        for callback in listeners:
            try:
                callback(kind, text)
            except Exception:
                logger.exception("Error in line callback for session %s", self.id)

    def _handle_fault(self, fault: StreamFault) -> None:
        with self._lock:
            self._faults[fault.stream] = fault
            all_failed = len(self._faults) == len(StreamKind)
            listeners = list(self._fault_listeners)
        logger.warning("Session %s degraded: %s", self.id, fault)
        for callback in listeners:
            try:
                callback(fault)
            except Exception:
                logger.exception("Error in fault callback for session %s", self.id)
        if all_failed:
            logger.warning("Session %s lost all streams, terminating", self.id)
            self.terminate()
