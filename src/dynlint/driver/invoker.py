"""Driver invocation.

Runs ``cargo check`` (or ``cargo fix``) with the driver installed as the
workspace wrapper and the resolved lint libraries passed through the
environment. Each (target, toolchain) invocation moves through::

    IDLE -> BUILDING -> INVOKING -> SUCCEEDED | FAILED | CRASHED

where BUILDING provisions the driver.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Mapping, Optional, Sequence

from dynlint.bootstrap.paths import safe_component
from dynlint.core import env
from dynlint.core.errors import (
    Crash,
    FixVerificationError,
    InvocationError,
    RuntimeFailure,
)
from dynlint.core.logging import get_logger
from dynlint.core.streaming import NullStreamHandler, StreamHandler
from dynlint.core.subprocess_runner import run_command, run_with_streaming
from dynlint.driver.provision import DriverProvisioner

LOGGER = get_logger(__name__)

# Markers of a compiler or driver panic in its output.
PANIC_MARKERS = ("internal compiler error", "panicked at")


class InvocationState(str, Enum):
    """Lifecycle of one driver invocation."""

    IDLE = "idle"
    BUILDING = "building"
    INVOKING = "invoking"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CRASHED = "crashed"


_TRANSITIONS = {
    InvocationState.IDLE: {InvocationState.BUILDING},
    InvocationState.BUILDING: {InvocationState.INVOKING},
    InvocationState.INVOKING: {
        InvocationState.SUCCEEDED,
        InvocationState.FAILED,
        InvocationState.CRASHED,
    },
}


@dataclass
class InvocationRequest:
    """Everything needed to run the driver once.

    Attributes:
        libraries: Artifact paths, in load order.
        toolchain: Toolchain all libraries were built with.
        target_dir: Package or workspace directory to check.
        target_root: Cargo target directory of the checked workspace.
        rustflags: Extra compiler flags from the caller.
        env: Environment overrides, applied last.
        cargo_args: Package selection arguments (``-p``, ``--workspace``...).
        passthrough: Arguments given after ``--``, passed to cargo as is.
        message_format: ``--message-format`` value, if any.
        metadata_json: Workspace ``dynlint`` table, JSON-encoded.
        no_deps: Only lint the selected packages.
        fix: Apply suggested fixes, then verify the result compiles.
        timeout: Seconds before the driver is killed.
    """

    libraries: List[Path]
    toolchain: str
    target_dir: Path
    target_root: Optional[Path] = None
    rustflags: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cargo_args: List[str] = field(default_factory=list)
    passthrough: List[str] = field(default_factory=list)
    message_format: Optional[str] = None
    metadata_json: Optional[str] = None
    no_deps: bool = False
    fix: bool = False
    timeout: Optional[float] = None

    @property
    def structured_output(self) -> bool:
        return bool(self.message_format) and self.message_format.startswith("json")

    def cargo_target_dir(self) -> Path:
        """Per-toolchain target directory for driver builds."""
        root = self.target_root
        if root is None:
            override = os.environ.get(env.CARGO_TARGET_DIR)
            root = Path(override) if override else self.target_dir / "target"
        return root / "dynlint" / "target" / safe_component(self.toolchain)


@dataclass
class InvocationResult:
    """Outcome of one driver invocation."""

    toolchain: str
    state: InvocationState = InvocationState.IDLE
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    detail: str = ""
    history: List[InvocationState] = field(default_factory=lambda: [InvocationState.IDLE])

    def transition(self, state: InvocationState) -> None:
        if state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"invalid driver state change {self.state.value} -> {state.value}")
        LOGGER.debug(f"[{self.toolchain}] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


def merged_rustflags(
    base: Optional[str], extra: Sequence[str], dynlint_flags: Optional[str]
) -> str:
    """``RUSTFLAGS`` followed by caller flags, then ``DYNLINT_RUSTFLAGS``.

    Inherited values are split on whitespace only, as cargo does, so quotes
    reach the compiler unchanged.
    """
    parts: List[str] = []
    if base:
        parts.extend(base.split())
    parts.extend(extra)
    if dynlint_flags:
        parts.extend(dynlint_flags.split())
    return " ".join(parts)


def build_environment(
    request: InvocationRequest,
    driver: Path,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Environment for the driver run.

    Args:
        request: The invocation.
        driver: Driver executable, installed as the workspace wrapper.
        base: Environment to start from (default ``os.environ``).
    """
    inherited = dict(os.environ if base is None else base)
    result = env.sanitized_environ(inherited)

    rustflags = merged_rustflags(
        inherited.get(env.RUSTFLAGS), request.rustflags, inherited.get(env.DYNLINT_RUSTFLAGS)
    )
    if rustflags:
        result[env.RUSTFLAGS] = rustflags
    else:
        result.pop(env.RUSTFLAGS, None)

    result[env.CLIPPY_DISABLE_DOCS_LINKS] = json.dumps(inherited.get(env.CLIPPY_DISABLE_DOCS_LINKS))
    result[env.DYNLINT_LIBS] = json.dumps([str(p) for p in request.libraries])
    if request.metadata_json is not None:
        result[env.DYNLINT_METADATA] = request.metadata_json
    if request.no_deps:
        result[env.DYNLINT_NO_DEPS] = "1"
    result[env.RUSTC_WORKSPACE_WRAPPER] = str(driver)
    result[env.RUSTUP_TOOLCHAIN] = request.toolchain

    result.update(request.env)
    return result


def build_command(request: InvocationRequest, subcommand: str) -> List[str]:
    cmd = ["cargo", subcommand, "--target-dir", str(request.cargo_target_dir())]
    cmd.extend(request.cargo_args)
    if request.message_format:
        cmd.extend(["--message-format", request.message_format])
    if subcommand == "fix":
        cmd.extend(["--allow-dirty", "--allow-staged"])
    cmd.extend(request.passthrough)
    return cmd


def _panicked(result: subprocess.CompletedProcess) -> bool:
    text = f"{result.stdout or ''}\n{result.stderr or ''}".lower()
    return any(marker in text for marker in PANIC_MARKERS)


class DriverInvoker:
    """Runs the driver for one toolchain at a time.

    Args:
        provisioner: Supplies the driver executable.
        stream_handler: Receives live output when output is not structured.
        runner: Capturing runner (signature of ``run_command``).
        streamer: Streaming runner (signature of ``run_with_streaming``).
        stdout: Binary stream structured output is copied to
            (default: ``sys.stdout.buffer``).
    """

    def __init__(
        self,
        provisioner: DriverProvisioner,
        stream_handler: Optional[StreamHandler] = None,
        runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
        streamer: Optional[Callable[..., subprocess.CompletedProcess]] = None,
        stdout: Optional[BinaryIO] = None,
    ):
        self.provisioner = provisioner
        self.stream_handler = stream_handler or NullStreamHandler()
        self._runner = runner or run_command
        self._streamer = streamer or run_with_streaming
        self._stdout = stdout

    def invoke(self, request: InvocationRequest) -> InvocationResult:
        """Run the driver for ``request``.

        Raises:
            InvocationError: If the subprocess cannot be started.
            BuildError: If the driver cannot be provisioned.
            FixVerificationError: If applied fixes leave code that does not build.
        """
        result = InvocationResult(toolchain=request.toolchain)
        result.transition(InvocationState.BUILDING)
        driver = self.provisioner.ensure(request.toolchain)

        result.transition(InvocationState.INVOKING)
        driver_env = build_environment(request, driver)
        cmd = build_command(request, "fix" if request.fix else "check")
        LOGGER.info(
            f"Checking {request.target_dir} with {len(request.libraries)} libraries "
            f"({request.toolchain})"
        )

        try:
            completed = self._run(cmd, request, driver_env)
        except subprocess.TimeoutExpired:
            result.detail = f"killed after {request.timeout}s timeout"
            result.exit_code = 124
            result.transition(InvocationState.CRASHED)
            return result

        result.exit_code = completed.returncode
        result.stdout = completed.stdout or ""
        result.stderr = completed.stderr or ""

        if completed.returncode < 0:
            result.detail = f"terminated by signal {-completed.returncode}"
            result.transition(InvocationState.CRASHED)
        elif completed.returncode != 0 and _panicked(completed):
            result.detail = "the compiler or a lint library panicked"
            result.transition(InvocationState.CRASHED)
        elif completed.returncode != 0:
            result.transition(InvocationState.FAILED)
        else:
            if request.fix:
                self._verify_fix(request)
            result.transition(InvocationState.SUCCEEDED)
        return result

    def _run(
        self, cmd: List[str], request: InvocationRequest, run_env: Mapping[str, str]
    ) -> subprocess.CompletedProcess:
        try:
            if request.structured_output:
                raw = self._runner(
                    cmd, cwd=request.target_dir, env=run_env, timeout=request.timeout, text=False
                )
                sink = self._stdout or sys.stdout.buffer
                sink.write(raw.stdout or b"")
                sink.flush()
                if raw.stderr:
                    sys.stderr.buffer.write(raw.stderr)
                    sys.stderr.buffer.flush()
                return subprocess.CompletedProcess(
                    raw.args,
                    raw.returncode,
                    (raw.stdout or b"").decode("utf-8", errors="replace"),
                    (raw.stderr or b"").decode("utf-8", errors="replace"),
                )
            return self._streamer(
                cmd,
                cwd=request.target_dir,
                tool_name=request.toolchain,
                stream_handler=self.stream_handler,
                timeout=request.timeout,
                env=run_env,
            )
        except OSError as e:
            raise InvocationError(f"Could not run `{' '.join(cmd)}`: {e}") from e

    def _verify_fix(self, request: InvocationRequest) -> None:
        """Check that the fixed sources still compile without the driver."""
        verify_env = env.sanitized_environ()
        verify_env[env.RUSTUP_TOOLCHAIN] = request.toolchain
        verify_root = request.cargo_target_dir().parents[1]
        verify_dir = verify_root / "verify" / safe_component(request.toolchain)
        cmd = ["cargo", "check", "--target-dir", str(verify_dir), *request.cargo_args]
        LOGGER.info(f"Verifying fixes with {request.toolchain}")
        try:
            completed = self._runner(
                cmd, cwd=request.target_dir, env=verify_env, timeout=request.timeout
            )
        except subprocess.TimeoutExpired as e:
            raise FixVerificationError(request.toolchain, f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise InvocationError(f"Could not run `{' '.join(cmd)}`: {e}") from e
        if completed.returncode != 0:
            raise FixVerificationError(request.toolchain, completed.stderr or completed.stdout or "")


def invoke_all(
    invoker: DriverInvoker,
    requests: Sequence[InvocationRequest],
    keep_going: bool = False,
) -> List[InvocationResult]:
    """Invoke the driver once per toolchain.

    Without ``keep_going`` the first failing toolchain stops the loop.

    Raises:
        Crash: If any invocation crashed.
        RuntimeFailure: If any invocation failed; carries the first failing
            invocation's exit code.
    """
    results: List[InvocationResult] = []
    for request in requests:
        result = invoker.invoke(request)
        results.append(result)
        if result.state in (InvocationState.FAILED, InvocationState.CRASHED) and not keep_going:
            break

    crashed = [r for r in results if r.state == InvocationState.CRASHED]
    if crashed:
        raise Crash(crashed[0].toolchain, crashed[0].detail)
    failed = [r for r in results if r.state == InvocationState.FAILED]
    if failed:
        raise RuntimeFailure([r.toolchain for r in failed], failed[0].exit_code)
    return results
