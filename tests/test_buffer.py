"""Tests for problemhelper.process.buffer.OutputBuffer."""

from __future__ import annotations

import threading

from problemhelper.process.buffer import OutputBuffer
from problemhelper.process.state import StreamKind

OUT = StreamKind.STDOUT
ERR = StreamKind.STDERR


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.line_count == 0
        assert len(buf) == 0
        assert buf.read_all() == ""

    def test_append(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "hello")
        buf.append(ERR, "oops")
        assert buf.line_count == 2

    def test_append_returns_line(self) -> None:
        buf = OutputBuffer()
        line = buf.append(OUT, "\x1b[32mgreen\x1b[0m")
        assert line.stream == OUT
        assert line.text == "\x1b[32mgreen\x1b[0m"
        assert line.display == "green"

    def test_read_all(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "a")
        buf.append(OUT, "b")
        buf.append(OUT, "c")
        assert buf.read_all() == "a\nb\nc"

    def test_read_all_display(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "\x1b[1ma\x1b[0m")
        buf.append(OUT, "b\x00")
        assert buf.read_all_display() == "a\nb"
        assert buf.read_all() == "\x1b[1ma\x1b[0m\nb\x00"


class TestOutputBufferStreams:
    def test_filter_by_stream(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "1")
        buf.append(ERR, "warning")
        buf.append(OUT, "2")
        assert buf.read_all(OUT) == "1\n2"
        assert buf.read_all(ERR) == "warning"

    def test_lines_snapshot(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "x")
        lines = buf.lines()
        buf.append(OUT, "y")
        assert [line.text for line in lines] == ["x"]


class TestOutputBufferRead:
    def test_read_with_offset(self) -> None:
        buf = OutputBuffer()
        for i in range(10):
            buf.append(OUT, f"line {i}")
        assert buf.read(offset=5, limit=3) == ["line 5", "line 6", "line 7"]

    def test_read_beyond_end(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "only line")
        assert buf.read(offset=5, limit=10) == []

    def test_read_offset_within_stream(self) -> None:
        buf = OutputBuffer()
        buf.append(ERR, "e0")
        buf.append(OUT, "o0")
        buf.append(ERR, "e1")
        buf.append(OUT, "o1")
        assert buf.read(offset=1, stream=OUT) == ["o1"]

    def test_read_tail(self) -> None:
        buf = OutputBuffer()
        for i in range(10):
            buf.append(OUT, f"line {i}")
        assert buf.read_tail(3) == ["line 7", "line 8", "line 9"]

    def test_read_tail_more_than_available(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "a")
        buf.append(OUT, "b")
        assert buf.read_tail(10) == ["a", "b"]

    def test_read_tail_zero(self) -> None:
        buf = OutputBuffer()
        buf.append(OUT, "a")
        assert buf.read_tail(0) == []


class TestOutputBufferConcurrency:
    def test_concurrent_appends_keep_per_stream_order(self) -> None:
        buf = OutputBuffer()

        def produce(kind: StreamKind) -> None:
            for i in range(500):
                buf.append(kind, f"{kind}-{i}")

        threads = [threading.Thread(target=produce, args=(k,)) for k in (OUT, ERR)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert buf.line_count == 1000
        assert buf.read(limit=1000, stream=OUT) == [f"stdout-{i}" for i in range(500)]
        assert buf.read(limit=1000, stream=ERR) == [f"stderr-{i}" for i in range(500)]

    def test_wait_for_lines(self) -> None:
        buf = OutputBuffer()
        timer = threading.Timer(0.05, buf.append, args=(OUT, "late"))
        timer.start()
        assert buf.wait_for_lines(1, timeout=5) is True
        timer.join()

    def test_wait_for_lines_timeout(self) -> None:
        buf = OutputBuffer()
        assert buf.wait_for_lines(1, timeout=0.01) is False
