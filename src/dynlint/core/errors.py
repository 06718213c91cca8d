"""Error taxonomy for the dynlint engine.

Configuration and ambiguity errors abort a request immediately. Not-found,
fetch and build errors may be collected across a batch and reported together
through :class:`BatchError`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence


class DynlintError(Exception):
    """Base class for all errors raised by the engine."""

    pass


class ConfigurationError(DynlintError):
    """Malformed workspace metadata, unknown keys or an invalid glob."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class AmbiguityError(DynlintError):
    """A library name matched more than one artifact within one tier."""

    def __init__(self, name: str, candidates: Iterable[Path], tier: str = ""):
        self.name = name
        self.candidates = sorted({Path(c) for c in candidates})
        self.tier = tier
        where = f" in {tier}" if tier else ""
        listing = "".join(f"\n    {c}" for c in self.candidates)
        super().__init__(f"Found multiple libraries matching `{name}`{where}:{listing}")


class NotFoundError(DynlintError):
    """One or more requested library names could not be found."""

    def __init__(self, names: Iterable[str]):
        self.names = sorted(set(names))
        listing = "".join(f"\n    {name}" for name in self.names)
        super().__init__(f"Could not find the following libraries:{listing}")


class FetchError(DynlintError):
    """A source could not be materialized, or a pattern escaped its root."""

    def __init__(self, entry: str, reason: str):
        self.entry = entry
        self.reason = reason
        super().__init__(f"Could not fetch {entry}: {reason}")


class BuildError(DynlintError):
    """The package manager failed to build a library package."""

    def __init__(self, package: str, toolchain: str, output: str = "", reason: str = ""):
        self.package = package
        self.toolchain = toolchain
        self.output = output
        message = f"Could not build `{package}` with toolchain `{toolchain}`"
        if reason:
            message += f": {reason}"
        if output.strip():
            message += f"\n{output.rstrip()}"
        super().__init__(message)


class InvocationError(DynlintError):
    """The driver subprocess could not be started."""

    pass


class RuntimeFailure(DynlintError):
    """The driver ran and reported diagnostics or compile errors."""

    def __init__(self, toolchains: Sequence[str], exit_code: int):
        self.toolchains = list(toolchains)
        self.exit_code = exit_code
        names = ", ".join(f"`{t}`" for t in self.toolchains)
        super().__init__(f"Compilation failed with the following toolchains: {names}")


class Crash(DynlintError):
    """The driver terminated abnormally (signal, panic or timeout kill)."""

    def __init__(self, toolchain: str, detail: str):
        self.toolchain = toolchain
        self.detail = detail
        super().__init__(f"Driver crashed with toolchain `{toolchain}`: {detail}")


class FixVerificationError(DynlintError):
    """Automatically applied fixes left the package in a non-compiling state."""

    def __init__(self, toolchain: str, output: str = ""):
        self.toolchain = toolchain
        self.output = output
        message = f"Fixes applied with toolchain `{toolchain}` do not compile"
        if output.strip():
            message += f"\n{output.rstrip()}"
        super().__init__(message)


class UsageError(DynlintError):
    """Options that cannot be combined, or a missing required option."""

    pass


class BatchError(DynlintError):
    """Several independent failures collected from one request."""

    def __init__(self, errors: Iterable[DynlintError]):
        unique = {}
        for error in errors:
            unique.setdefault(str(error), error)
        self.errors: List[DynlintError] = [unique[key] for key in sorted(unique)]
        super().__init__("\n".join(str(error) for error in self.errors))


def raise_collected(errors: Sequence[DynlintError]) -> None:
    """Raise the collected errors, if any.

    A single error is raised as-is so callers can match on its class.
    """
    if not errors:
        return
    batch = BatchError(errors)
    if len(batch.errors) == 1:
        raise batch.errors[0]
    raise batch
