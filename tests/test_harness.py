"""Tests for problemhelper.process.harness.Harness."""

from __future__ import annotations

import contextlib
import os
import threading

import pytest

from problemhelper.config import HarnessConfig, ProcessConfig
from problemhelper.errors import HarnessError, LaunchError
from problemhelper.process.harness import Harness
from problemhelper.process.state import SessionStatus, StreamKind
from problemhelper.wire import EventType, Wire, WireEvent

from programs import (
    ADD_TWO,
    BOTH_STREAMS,
    ECHO,
    IGNORE_SIGTERM,
    SLEEP_FOREVER,
    python_command,
)


def _config() -> HarnessConfig:
    return HarnessConfig(process=ProcessConfig(terminate_grace_period=0.5))


def _drain(q) -> list[WireEvent]:
    events = []
    while not q.empty():
        event = q.get_nowait()
        if event is not None:
            events.append(event)
    return events


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


class TestRuns:
    def test_output_collected(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command(BOTH_STREAMS))
        assert harness.wait(timeout=10) == 0
        assert harness.output.read_all(StreamKind.STDOUT) == "out 1\nout 2\nno newline"
        assert harness.output.read_all(StreamKind.STDERR) == "err 1"

    def test_wait_without_session(self) -> None:
        assert Harness().wait() is None
        assert Harness().running is False
        assert Harness().transcript == ""

    def test_each_start_is_a_fresh_session(self) -> None:
        harness = Harness(config=_config())
        first = harness.start(python_command("print('first')"))
        harness.wait(timeout=10)
        second = harness.start(python_command("print('second')"))
        harness.wait(timeout=10)
        assert first is not second
        assert first.id != second.id
        assert harness.session is second
        assert harness.output.read_all() == "second"

    def test_start_terminates_previous_run(self) -> None:
        harness = Harness(config=_config())
        first = harness.start(python_command(SLEEP_FOREVER))
        harness.start(python_command("print('next')"))
        assert first.wait(timeout=10) is not None
        assert first.status == SessionStatus.TERMINATED
        harness.wait(timeout=10)

    @pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
    def test_previous_run_ignoring_sigterm_is_killed(self) -> None:
        harness = Harness(config=_config())
        seen_ready = threading.Event()

        def on_line(kind: StreamKind, text: str) -> None:
            if text == "ready":
                seen_ready.set()

        harness.on_line(on_line)
        first = harness.start(python_command(IGNORE_SIGTERM))
        assert seen_ready.wait(timeout=10)
        harness.start(python_command("print('next')"))
        # SIGTERM is ignored, so only the escalation stops it
        assert first.alive
        assert first.wait(timeout=10) == -9
        assert harness.wait(timeout=10) == 0

    def test_superseded_lines_not_forwarded(self) -> None:
        seen: list[str] = []
        harness = Harness(config=_config())
        harness.on_line(lambda kind, text: seen.append(text))
        first = harness.start(python_command(ECHO))
        harness.start(python_command("print('new')"))
        harness.wait(timeout=10)
        # stdin of the first run is still open until it dies
        with contextlib.suppress(HarnessError):
            first.send("old\n")
        first.wait(timeout=10)
        assert "old" not in seen
        assert "old" not in harness.output.read_all()

    def test_launch_failure_keeps_previous_output(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command("print('kept')"))
        harness.wait(timeout=10)
        with pytest.raises(LaunchError):
            harness.start("/nonexistent/definitely-not-a-program")
        assert harness.output.read_all() == "kept"

    def test_close_stops_program(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command(SLEEP_FOREVER))
        harness.close(timeout=10)
        assert harness.running is False


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class TestSend:
    def test_send_without_session(self) -> None:
        assert Harness().send("1\n") is False

    def test_interactive_input(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command(ADD_TWO))
        assert harness.send("20\n")
        assert harness.send("22\n")
        harness.wait(timeout=10)
        assert harness.output.read_all(StreamKind.STDOUT) == "42"
        assert harness.transcript == "20\n22\n"

    def test_send_after_exit_rejected(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command("pass"))
        harness.wait(timeout=10)
        assert harness.send("late\n") is False

    def test_send_after_close_input_rejected(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command(ECHO))
        harness.close_input()
        assert harness.send("x\n") is False
        harness.wait(timeout=10)


# ---------------------------------------------------------------------------
# Checking
# ---------------------------------------------------------------------------


class TestCheck:
    def test_check_uses_stdout_only(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command(BOTH_STREAMS))
        harness.wait(timeout=10)
        assert harness.check("out 1 out 2 no newline")
        assert not harness.check("out 1 err 1 out 2 no newline")

    def test_check_explicit_actual(self) -> None:
        harness = Harness()
        assert harness.check("1 2\n3", actual="1\n2 3\n")
        assert not harness.check("1 2", actual="1 2 3")

    def test_echo_matches_transcript(self) -> None:
        harness = Harness(config=_config())
        harness.start(python_command(ECHO))
        harness.send("5 6\n")
        harness.send("7\n")
        harness.close_input()
        harness.wait(timeout=10)
        assert harness.check(harness.transcript)


# ---------------------------------------------------------------------------
# Wire mirroring
# ---------------------------------------------------------------------------


class TestWireMirror:
    def test_events_mirrored(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        harness = Harness(config=_config(), wire=wire)
        harness.start(python_command(ECHO))
        harness.send("hello\n")
        harness.close_input()
        harness.wait(timeout=10)
        harness.check("hello")

        events = _drain(q)
        types = [e.type for e in events]
        assert types[0] == EventType.STATE
        assert events[0].data["status"] == "running"
        assert EventType.INPUT in types
        lines = [e.data for e in events if e.type == EventType.LINE]
        assert lines == [{"stream": "stdout", "text": "hello"}]
        states = [e for e in events if e.type == EventType.STATE]
        assert states[-1].data == {"status": "terminated", "exit_code": 0}
        assert types[-1] == EventType.CHECK
        assert events[-1].data["passed"] is True

    def test_rejected_input_reported(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        harness = Harness(wire=wire)
        harness.send("1\n")
        events = _drain(q)
        assert [e.type for e in events] == [EventType.ERROR]

    def test_wrong_answer_detail(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        harness = Harness(wire=wire)
        harness.check("1 2 3", actual="1 2 4")
        (event,) = _drain(q)
        assert event.data["passed"] is False
        assert event.data["detail"] == "token 3: expected '3', got '4'"
