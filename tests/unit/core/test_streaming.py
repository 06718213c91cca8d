"""Tests for stream handlers."""

from __future__ import annotations

import io

from dynlint.core.streaming import CLIStreamHandler, StreamEvent, StreamType


class TestCLIStreamHandler:
    """Tests for CLIStreamHandler."""

    def test_raw_lines_written_unchanged(self) -> None:
        output = io.StringIO()
        handler = CLIStreamHandler(output=output)
        handler.emit(StreamEvent("t", StreamType.STDERR, "warning: [dynlint] `x`"))
        assert output.getvalue() == "warning: [dynlint] `x`\n"

    def test_hidden_output(self) -> None:
        output = io.StringIO()
        handler = CLIStreamHandler(output=output, show_output=False)
        handler.emit(StreamEvent("t", StreamType.STDOUT, "line"))
        assert output.getvalue() == ""

    def test_status_lines(self) -> None:
        output = io.StringIO()
        handler = CLIStreamHandler(output=output)
        handler.start_tool("nightly")
        handler.end_tool("nightly", False)
        assert output.getvalue().splitlines() == ["[nightly] Running", "[nightly] Failed"]

    def test_rich_status_escapes_markup(self) -> None:
        output = io.StringIO()
        handler = CLIStreamHandler(output=output, use_rich=True)
        handler.start_tool("[bold]x")
        assert "[bold]x] Running" in output.getvalue()
