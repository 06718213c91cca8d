"""Tests for the subprocess runner."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import List

import pytest

from dynlint.core.streaming import StreamEvent, StreamHandler, StreamType
from dynlint.core.subprocess_runner import run_command, run_with_streaming


class RecordingHandler(StreamHandler):
    def __init__(self) -> None:
        self.events: List[StreamEvent] = []
        self.finished: List[bool] = []

    def emit(self, event: StreamEvent) -> None:
        self.events.append(event)

    def start_tool(self, tool_name: str) -> None:
        pass

    def end_tool(self, tool_name: str, success: bool) -> None:
        self.finished.append(success)


class TestRunCommand:
    """Tests for run_command."""

    def test_captures_output(self, tmp_path: Path) -> None:
        result = run_command([sys.executable, "-c", "print('hi')"], cwd=tmp_path)
        assert result.returncode == 0
        assert result.stdout.strip() == "hi"

    def test_raw_bytes(self, tmp_path: Path) -> None:
        script = "import sys; sys.stdout.buffer.write(b'a\\r\\n\\xff')"
        result = run_command([sys.executable, "-c", script], cwd=tmp_path, text=False)
        assert result.stdout == b"a\r\n\xff"

    def test_missing_executable_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            run_command(["definitely-not-a-real-command-dynlint"], cwd=tmp_path)


class TestRunWithStreaming:
    """Tests for run_with_streaming."""

    def test_streams_and_captures(self, tmp_path: Path) -> None:
        handler = RecordingHandler()
        script = "import sys; print('out'); print('err', file=sys.stderr)"
        result = run_with_streaming(
            [sys.executable, "-c", script], cwd=tmp_path, tool_name="t", stream_handler=handler
        )

        assert result.returncode == 0
        assert result.stdout == "out"
        assert result.stderr == "err"
        contents = {(e.stream_type, e.content) for e in handler.events}
        assert contents == {(StreamType.STDOUT, "out"), (StreamType.STDERR, "err")}
        assert handler.finished == [True]

    def test_deadline_kills_child(self, tmp_path: Path) -> None:
        handler = RecordingHandler()
        with pytest.raises(subprocess.TimeoutExpired):
            run_with_streaming(
                [sys.executable, "-c", "import time; time.sleep(30)"],
                cwd=tmp_path,
                tool_name="t",
                stream_handler=handler,
                timeout=0.5,
            )
        assert handler.finished == [False]
