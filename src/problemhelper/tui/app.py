"""Main Textual application for the problemhelper TUI."""

from __future__ import annotations

import asyncio
import logging
import queue
from functools import partial
from typing import Callable

from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.widgets import Button, Footer, Header, Label, RichLog, Static, TextArea
from textual.worker import get_current_worker

from problemhelper.errors import LaunchError
from problemhelper.process.harness import Harness
from problemhelper.text import clean_line
from problemhelper.wire import EventType, Wire, WireEvent

logger = logging.getLogger(__name__)


class TUILogHandler(logging.Handler):
    """Logging handler that captures the last log message for the status bar.

    Writing to stderr would corrupt the Textual display, so records are
    kept here and the status bar is refreshed from the app thread.
    """

    def __init__(self, app: HarnessApp) -> None:
        super().__init__()
        self._app = app
        self.last_message: str = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.last_message = self.format(record)
            # post_message is thread-safe and never waits for the app loop
            self._app.post_message(HarnessApp.LogRecorded())
        except Exception:
            self.handleError(record)


class HarnessApp(App):
    """Run a program interactively and check its output."""

    TITLE = "problemhelper"
    CSS = """
    #main-layout {
        layout: horizontal;
        height: 1fr;
    }

    #input-side, #output-side {
        width: 1fr;
    }

    #input-area, #expected-area {
        height: 1fr;
        border: solid $secondary;
    }

    #transcript-log, #output-log {
        height: 2fr;
        border: solid $primary;
    }

    .pane-title {
        color: $text-muted;
        padding: 0 1;
    }

    .pane-buttons {
        height: auto;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """

    class LogRecorded(Message):
        """A log record reached the status-bar handler."""

    BINDINGS = [
        Binding("ctrl+e", "emit", "Emit", priority=True),
        Binding("ctrl+t", "check", "Check", priority=True),
        Binding("ctrl+k", "kill", "Kill", priority=True),
        Binding("ctrl+r", "rerun", "Re-run", priority=True),
        Binding("ctrl+q", "quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        command: str,
        harness: Harness,
        wire: Wire,
        expected: str = "",
    ) -> None:
        super().__init__()
        self.command = command
        self.harness = harness
        self.wire = wire
        self._expected = expected
        self._state_label = "starting"
        self._log_handler: TUILogHandler | None = None
        # Writes to the child's stdin can block, so they run on a worker thread
        self._outbox: queue.Queue[Callable[[], object] | None] = queue.Queue()

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="input-side"):
                yield Label("Input", classes="pane-title")
                yield TextArea(id="input-area")
                with Horizontal(classes="pane-buttons"):
                    yield Button("Emit", id="emit-button", variant="primary")
                    yield Button("EOF", id="eof-button")
                yield Label("Sent", classes="pane-title")
                yield RichLog(id="transcript-log", wrap=True)
            with Vertical(id="output-side"):
                yield Label("Output", classes="pane-title")
                yield RichLog(id="output-log", wrap=True)
                yield Label("Expected", classes="pane-title")
                yield TextArea(self._expected, id="expected-area")
                with Horizontal(classes="pane-buttons"):
                    yield Button("Check", id="check-button")
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = self.command
        self._install_log_handler()
        self.wire.attach_loop()
        # Subscribed before the first run so its RUNNING event is delivered
        self._listen_wire(self.wire.subscribe())
        self._write_input()
        self._start_run()

    def on_unmount(self) -> None:
        grace = self.harness.config.process.terminate_grace_period
        self.harness.close(timeout=grace + 1.0)
        self._outbox.put(None)
        self.wire.close()
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)

    def _install_log_handler(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        self._log_handler = TUILogHandler(self)
        self._log_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(self._log_handler)

    def _start_run(self) -> None:
        self._discard_pending_input()
        self.query_one("#output-log", RichLog).clear()
        self.query_one("#transcript-log", RichLog).clear()
        self._reset_check_button()
        try:
            session = self.harness.start(self.command)
        except LaunchError as e:
            self._state_label = "launch failed"
            self._write_output(Text(str(e), style="bold red"))
        else:
            self.title = f"problemhelper - session {session.id}"
        self._update_status()

    # --- Status bar ---

    @property
    def state_label(self) -> str:
        """Lifecycle state shown in the status bar."""
        return self._state_label

    def on_harness_app_log_recorded(self, message: LogRecorded) -> None:
        self._update_status()

    def _update_status(self) -> None:
        try:
            status = self.query_one("#status-bar", Static)
        except Exception:
            return
        parts = [f"State: {self._state_label}"]
        session = self.harness.session
        if session is not None and session.degraded:
            parts.append("[yellow]degraded[/yellow]")
        if self._log_handler and self._log_handler.last_message:
            last_log = self._log_handler.last_message
            if len(last_log) > 80:
                last_log = last_log[:77] + "..."
            parts.append(f"[dim]{last_log}[/dim]")
        status.update(" | ".join(parts))

    # --- Wire event loop ---

    @work(exclusive=True)
    async def _listen_wire(self, events: asyncio.Queue[WireEvent | None]) -> None:
        try:
            while True:
                event = await events.get()
                if event is None:
                    break
                self._handle_event(event)
        finally:
            self.wire.unsubscribe(events)

    # --- Input writer ---

    @work(thread=True, exclusive=True, group="input")
    def _write_input(self) -> None:
        """Run queued stdin operations in order, off the event loop."""
        worker = get_current_worker()
        while not worker.is_cancelled:
            try:
                operation = self._outbox.get(timeout=0.1)
            except queue.Empty:
                continue
            if operation is None:
                return
            try:
                operation()
            except Exception:
                logger.exception("Error while writing program input")

    def _discard_pending_input(self) -> None:
        while True:
            try:
                operation = self._outbox.get_nowait()
            except queue.Empty:
                return
            if operation is None:
                # Shutting down; keep the stop marker for the writer
                self._outbox.put(None)
                return

    def _close_input(self) -> None:
        self.harness.close_input()
        self.wire.send_status("Input closed")

    def _handle_event(self, event: WireEvent) -> None:
        handlers = {
            EventType.LINE: self._on_line,
            EventType.INPUT: self._on_input,
            EventType.STATE: self._on_state,
            EventType.FAULT: self._on_fault,
            EventType.CHECK: self._on_check,
            EventType.ERROR: self._on_error,
            EventType.STATUS: self._on_status,
        }
        handler = handlers.get(event.type)
        if handler:
            handler(event.data)

    def _write_output(self, text: Text) -> None:
        self.query_one("#output-log", RichLog).write(text)

    def _on_line(self, data: dict) -> None:
        line = clean_line(data.get("text", ""))
        style = "red" if data.get("stream") == "stderr" else ""
        self._write_output(Text(line, style=style))

    def _on_input(self, data: dict) -> None:
        text = data.get("text", "")
        self.query_one("#transcript-log", RichLog).write(Text(text.rstrip("\n")))

    def _on_state(self, data: dict) -> None:
        status = data.get("status", "?")
        exit_code = data.get("exit_code")
        if exit_code is not None:
            self._state_label = f"{status} (code={exit_code})"
            self._write_output(
                Text(f"--- program stopped (code={exit_code}) ---", style="dim")
            )
        else:
            self._state_label = status
        self._update_status()

    def _on_fault(self, data: dict) -> None:
        stream = data.get("stream", "?")
        message = data.get("message", "")
        self.notify(f"{stream}: {message}", title="Stream fault", severity="warning")
        self._update_status()

    def _on_check(self, data: dict) -> None:
        button = self.query_one("#check-button", Button)
        if data.get("passed"):
            button.variant = "success"
            button.label = "AC"
        else:
            button.variant = "error"
            button.label = "WA"
            detail = data.get("detail", "")
            if detail:
                self.notify(detail, title="Wrong answer", severity="error")

    def _on_error(self, data: dict) -> None:
        self.notify(data.get("error", "Unknown error"), severity="error")

    def _on_status(self, data: dict) -> None:
        self.notify(data.get("message", ""))

    def _reset_check_button(self) -> None:
        button = self.query_one("#check-button", Button)
        button.variant = "default"
        button.label = "Check"

    # --- Actions ---

    def on_button_pressed(self, event: Button.Pressed) -> None:
        actions = {
            "emit-button": self.action_emit,
            "eof-button": self.action_eof,
            "check-button": self.action_check,
        }
        action = actions.get(event.button.id or "")
        if action:
            action()

    def action_emit(self) -> None:
        area = self.query_one("#input-area", TextArea)
        text = area.text
        if not text:
            return
        # Rejected input is reported through the wire ERROR event
        area.load_text("")
        self._outbox.put(partial(self.harness.send, text))

    def action_eof(self) -> None:
        if self.harness.running:
            self._outbox.put(self._close_input)

    def action_check(self) -> None:
        expected = self.query_one("#expected-area", TextArea).text
        self.harness.check(expected)

    def action_kill(self) -> None:
        self.harness.terminate()

    async def action_quit(self) -> None:
        # A stdin write blocked on the child ends once the child is gone
        self.harness.terminate()
        self.exit()

    def action_rerun(self) -> None:
        self._state_label = "starting"
        self._start_run()
