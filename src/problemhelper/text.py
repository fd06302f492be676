"""Text cleanup for displaying child process output."""

from __future__ import annotations

import re

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)


def sanitize_binary_output(text: str) -> str:
    """Remove binary garbage from output.

    Keeps printable chars and tabs. Strips everything else (control chars,
    C1 controls, interlinear annotation format chars).
    """
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if ch == "\t":
            cleaned.append(ch)
        elif cp >= 32 and cp not in range(0x7F, 0xA0):
            if cp not in range(0xFFF9, 0xFFFC):
                cleaned.append(ch)
    return "".join(cleaned)


def clean_line(line: str) -> str:
    """Make a single output line safe to render."""
    return sanitize_binary_output(strip_ansi(line))
