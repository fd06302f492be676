"""problemhelper — run programs against interactive input and check their output."""

from problemhelper.check import check, find_mismatch, tokenize
from problemhelper.errors import ChannelClosedError, HarnessError, LaunchError, StreamFault
from problemhelper.process import Harness, ProcessSession, SessionState, SessionStatus, StreamKind

__version__ = "0.1.0"

__all__ = [
    "ChannelClosedError",
    "Harness",
    "HarnessError",
    "LaunchError",
    "ProcessSession",
    "SessionState",
    "SessionStatus",
    "StreamFault",
    "StreamKind",
    "check",
    "find_mismatch",
    "tokenize",
]
