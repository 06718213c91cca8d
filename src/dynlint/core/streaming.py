"""Stream handler abstraction for live output of cargo and the driver.

Provides a unified interface for streaming subprocess output:
- CLI: print to the console, optionally through Rich
- Null: no-op, output is only captured
"""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO

from rich.console import Console
from rich.markup import escape


class StreamType(str, Enum):
    """Type of stream output."""

    STDOUT = "stdout"
    STDERR = "stderr"
    STATUS = "status"


@dataclass
class StreamEvent:
    """A streaming event from a subprocess."""

    tool_name: str
    stream_type: StreamType
    content: str
    line_number: Optional[int] = None


class StreamHandler(ABC):
    """Abstract base class for stream handlers.

    Implementations must be thread-safe as several builds may emit
    events concurrently from different threads.
    """

    @abstractmethod
    def emit(self, event: StreamEvent) -> None:
        """Emit a stream event.

        Args:
            event: The stream event to emit.
        """

    @abstractmethod
    def start_tool(self, tool_name: str) -> None:
        """Signal that a subprocess has started.

        Args:
            tool_name: Label of the subprocess that started.
        """

    @abstractmethod
    def end_tool(self, tool_name: str, success: bool) -> None:
        """Signal that a subprocess has finished.

        Args:
            tool_name: Label of the subprocess that finished.
            success: Whether it exited with status zero.
        """


class NullStreamHandler(StreamHandler):
    """No-op handler; output is captured but never shown."""

    def emit(self, event: StreamEvent) -> None:
        pass

    def start_tool(self, tool_name: str) -> None:
        pass

    def end_tool(self, tool_name: str, success: bool) -> None:
        pass


class CLIStreamHandler(StreamHandler):
    """Thread-safe console stream handler.

    Raw lines are written unchanged so compiler diagnostics keep their
    layout; status lines are decorated when Rich is enabled.
    """

    def __init__(
        self,
        output: TextIO = sys.stderr,
        show_output: bool = True,
        use_rich: bool = False,
    ):
        """Initialize CLIStreamHandler.

        Args:
            output: Output stream to write to (default: stderr).
            show_output: Whether to show raw subprocess output lines.
            use_rich: Whether to use Rich for status lines.
        """
        self._output = output
        self._show_output = show_output
        self._lock = threading.Lock()
        self._console: Optional[Console] = Console(file=output) if use_rich else None

    def emit(self, event: StreamEvent) -> None:
        with self._lock:
            if event.stream_type == StreamType.STATUS:
                self._print_status(f"[{event.tool_name}] {event.content}")
            elif self._show_output:
                print(event.content, file=self._output, flush=True)

    def start_tool(self, tool_name: str) -> None:
        with self._lock:
            self._print_status(f"[{tool_name}] Running")

    def end_tool(self, tool_name: str, success: bool) -> None:
        with self._lock:
            self._print_status(f"[{tool_name}] {'Done' if success else 'Failed'}")

    def _print_status(self, message: str) -> None:
        if self._console is not None:
            self._console.print(f"[bold cyan]{escape(message)}[/bold cyan]")
        else:
            print(message, file=self._output, flush=True)
