"""Subprocess runner with streaming support.

Provides utilities for running cargo, git and the compiler driver with
real-time output streaming.
"""

from __future__ import annotations

import queue
import subprocess
import threading
import time
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from dynlint.core.logging import get_logger
from dynlint.core.streaming import (
    NullStreamHandler,
    StreamEvent,
    StreamHandler,
    StreamType,
)

LOGGER = get_logger(__name__)

# How often the streaming loop wakes up to check the deadline.
_POLL_SECONDS = 0.1


def run_command(
    cmd: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    text: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command to completion and capture its output.

    Args:
        cmd: Command and arguments to run.
        cwd: Working directory for the command.
        env: Complete environment for the child (inherits ours if None).
        timeout: Optional timeout in seconds.
        text: Decode output as UTF-8; when False stdout/stderr are the raw
            bytes the child wrote.

    Returns:
        CompletedProcess with stdout/stderr captured.

    Raises:
        subprocess.TimeoutExpired: If the command times out.
        OSError: If the command fails to start.
    """
    LOGGER.debug(f"Running {' '.join(cmd)} (cwd={cwd})")
    if not text:
        return subprocess.run(
            list(cmd),
            capture_output=True,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            timeout=timeout,
        )
    return subprocess.run(
        list(cmd),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        timeout=timeout,
    )


def run_with_streaming(
    cmd: Sequence[str],
    cwd: Union[str, Path],
    tool_name: str,
    stream_handler: Optional[StreamHandler] = None,
    timeout: Optional[float] = None,
    env: Optional[Mapping[str, str]] = None,
) -> subprocess.CompletedProcess:
    """Run a command while streaming its output line by line.

    Output is still captured and returned in the CompletedProcess, so callers
    can inspect it after the process exits (e.g. to recognise a compiler
    panic).

    Args:
        cmd: Command and arguments to run.
        cwd: Working directory for the command.
        tool_name: Name used in stream events.
        stream_handler: Handler for streaming output. If None or
            NullStreamHandler, uses :func:`run_command`.
        timeout: Hard deadline in seconds; the child is killed when it passes.
        env: Complete environment for the child (inherits ours if None).

    Returns:
        CompletedProcess with stdout/stderr captured.

    Raises:
        subprocess.TimeoutExpired: If the deadline passes.
        OSError: If the command fails to start.
    """
    handler = stream_handler or NullStreamHandler()

    if isinstance(handler, NullStreamHandler):
        return run_command(cmd, cwd=cwd, env=env, timeout=timeout)

    LOGGER.debug(f"Streaming {' '.join(cmd)} (cwd={cwd})")

    stdout_lines: List[str] = []
    stderr_lines: List[str] = []

    # Popen raises OSError here if the executable cannot be started; the
    # handler has not been told about the tool yet, so nothing to undo.
    proc = subprocess.Popen(
        list(cmd),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=str(cwd),
        env=dict(env) if env is not None else None,
    )

    handler.start_tool(tool_name)
    output_queue: queue.Queue = queue.Queue()

    def read_stream(stream, stream_type: StreamType, lines_list: List[str]) -> None:
        """Read lines from a stream and put them in the queue."""
        try:
            for line_num, line in enumerate(stream, 1):
                line = line.rstrip("\n\r")
                lines_list.append(line)
                output_queue.put((stream_type, line, line_num))
        except (OSError, ValueError) as e:
            LOGGER.debug(f"{tool_name}: stopped reading {stream_type.value}: {e}")
        finally:
            output_queue.put((stream_type, None, None))

    readers = [
        threading.Thread(
            target=read_stream,
            args=(proc.stdout, StreamType.STDOUT, stdout_lines),
            daemon=True,
        ),
        threading.Thread(
            target=read_stream,
            args=(proc.stderr, StreamType.STDERR, stderr_lines),
            daemon=True,
        ),
    ]
    for reader in readers:
        reader.start()

    deadline = time.monotonic() + timeout if timeout is not None else None

    with proc:
        try:
            streams_closed = 0
            while streams_closed < 2:
                if deadline is not None and time.monotonic() > deadline:
                    proc.kill()
                    raise subprocess.TimeoutExpired(
                        list(cmd),
                        timeout,
                        output="\n".join(stdout_lines),
                        stderr="\n".join(stderr_lines),
                    )
                try:
                    stream_type, line, line_num = output_queue.get(timeout=_POLL_SECONDS)
                except queue.Empty:
                    continue
                if line is None:
                    streams_closed += 1
                else:
                    handler.emit(
                        StreamEvent(
                            tool_name=tool_name,
                            stream_type=stream_type,
                            content=line,
                            line_number=line_num,
                        )
                    )

            for reader in readers:
                reader.join(timeout=1)

            remaining = None if deadline is None else max(deadline - time.monotonic(), 0)
            try:
                proc.wait(timeout=remaining)
            except subprocess.TimeoutExpired:
                proc.kill()
                raise
        except BaseException:
            handler.end_tool(tool_name, False)
            raise

    handler.end_tool(tool_name, proc.returncode == 0)

    return subprocess.CompletedProcess(
        args=list(cmd),
        returncode=proc.returncode,
        stdout="\n".join(stdout_lines),
        stderr="\n".join(stderr_lines),
    )
