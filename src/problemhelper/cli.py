"""CLI entry point for problemhelper."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from problemhelper.check import check as tokens_match
from problemhelper.check import find_mismatch
from problemhelper.config import HarnessConfig
from problemhelper.errors import LaunchError
from problemhelper.process.harness import Harness
from problemhelper.process.state import StreamKind

app = typer.Typer(
    name="problemhelper",
    help="Run a program against interactive input and check its output.",
    no_args_is_help=True,
)

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _resolve_command(command: str | None, configured: str | None, what: str) -> str:
    resolved = command or configured
    if not resolved:
        err_console.print(
            f"[red]Error:[/red] no {what} command given and none configured."
        )
        raise typer.Exit(2)
    return resolved


def _read_file(path: str) -> str:
    file = Path(path)
    if not file.is_file():
        err_console.print(f"[red]Error:[/red] file not found: {escape(path)}")
        raise typer.Exit(2)
    return file.read_text()


def _print_line(kind: StreamKind, text: str) -> None:
    if kind == StreamKind.STDERR:
        err_console.print(escape(text), style="red")
    else:
        console.print(escape(text))


def _report_check(actual: str, expected: str) -> bool:
    if tokens_match(actual, expected):
        console.print("[bold green]AC[/bold green]")
        return True
    mismatch = find_mismatch(actual, expected)
    detail = f" ({escape(mismatch.describe())})" if mismatch else ""
    console.print(f"[bold red]WA[/bold red]{detail}")
    return False


def _forward_terminal_input(harness: Harness) -> None:
    """Copy the terminal's stdin to the program until either side closes."""
    for line in sys.stdin:
        if not harness.send(line):
            return
    if harness.running:
        harness.close_input()


@app.command()
def run(
    command: str | None = typer.Argument(
        None, help="Command that runs the program (default: from config)."
    ),
    input_file: str | None = typer.Option(
        None,
        "--input",
        "-i",
        help="Send this file's contents, then end-of-input, instead of reading the terminal.",
    ),
    expected_file: str | None = typer.Option(
        None,
        "--expected",
        "-e",
        help="Compare stdout with this file after the program exits.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run a program interactively, forwarding input and showing its output."""
    setup_logging(verbose)
    config = HarnessConfig.load(config_file)
    command = _resolve_command(command, config.run_command, "run")

    expected = _read_file(expected_file) if expected_file else None
    stdin_text = _read_file(input_file) if input_file is not None else None

    harness = Harness(config=config)
    harness.on_line(_print_line)

    try:
        harness.start(command)
    except LaunchError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if stdin_text is not None:
        if stdin_text:
            harness.send(stdin_text)
        harness.close_input()
    else:
        threading.Thread(
            target=_forward_terminal_input,
            args=(harness,),
            name="terminal-input",
            daemon=True,
        ).start()

    try:
        exit_code = harness.wait()
    except KeyboardInterrupt:
        harness.close(timeout=config.process.terminate_grace_period + 1.0)
        exit_code = harness.session.exit_code if harness.session else None

    console.print(f"[dim]Program stopped (exit code {exit_code})[/dim]")

    if expected is not None:
        passed = _report_check(harness.output.read_all(StreamKind.STDOUT), expected)
        raise typer.Exit(0 if passed else 1)


@app.command(name="compile")
def compile_(
    command: str | None = typer.Argument(
        None, help="Compile command (default: from config)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run a compile command to completion and show its output."""
    setup_logging(verbose)
    config = HarnessConfig.load(config_file)
    command = _resolve_command(command, config.compile_command, "compile")

    harness = Harness(config=config)
    try:
        harness.start(command)
    except LaunchError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    harness.close_input()
    exit_code = harness.wait()

    console.print("---Standard Output---")
    for line in harness.output.read(limit=sys.maxsize, stream=StreamKind.STDOUT):
        console.print(escape(line))
    console.print("---Standard Error---")
    for line in harness.output.read(limit=sys.maxsize, stream=StreamKind.STDERR):
        console.print(escape(line))
    console.print("---------------------")

    if exit_code:
        console.print(f"[red]Compile failed (exit code {exit_code})[/red]")
        raise typer.Exit(exit_code if exit_code > 0 else 1)


@app.command()
def check(
    actual_file: str = typer.Argument(help="File holding the program's output."),
    expected_file: str = typer.Argument(help="File holding the expected answer."),
) -> None:
    """Compare two files token by token, ignoring whitespace layout."""
    actual = _read_file(actual_file)
    expected = _read_file(expected_file)
    passed = _report_check(actual, expected)
    raise typer.Exit(0 if passed else 1)


@app.command()
def tui(
    command: str | None = typer.Argument(
        None, help="Command that runs the program (default: from config)."
    ),
    expected_file: str | None = typer.Option(
        None, "--expected", "-e", help="Pre-fill the expected answer from this file."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run a program in the interactive TUI."""
    # No basicConfig here: a stderr handler would corrupt the Textual
    # display. The app installs its own handler on mount.
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)

    config = HarnessConfig.load(config_file)
    command = _resolve_command(command, config.run_command, "run")
    expected = _read_file(expected_file) if expected_file else ""

    from problemhelper.tui.app import HarnessApp
    from problemhelper.wire import Wire

    wire = Wire()
    harness = Harness(config=config, wire=wire)
    HarnessApp(command=command, harness=harness, wire=wire, expected=expected).run()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
