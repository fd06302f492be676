"""Process harness — interactive child processes with live stdio.

A session spawns one external program, pumps its stdout and stderr on
background threads, forwards user input to its stdin, and reports its
lifecycle to subscribers.
"""

from problemhelper.process.buffer import OutputBuffer, OutputLine
from problemhelper.process.channel import InputChannel
from problemhelper.process.harness import Harness
from problemhelper.process.pump import LineSplitter, StreamPump
from problemhelper.process.session import ProcessSession
from problemhelper.process.state import SessionState, SessionStatus, StreamKind

__all__ = [
    "Harness",
    "InputChannel",
    "LineSplitter",
    "OutputBuffer",
    "OutputLine",
    "ProcessSession",
    "SessionState",
    "SessionStatus",
    "StreamKind",
    "StreamPump",
]
