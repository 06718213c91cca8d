"""Process exit codes and their mapping from engine errors."""

from __future__ import annotations

from dynlint.core.errors import (
    ConfigurationError,
    Crash,
    DynlintError,
    FixVerificationError,
    RuntimeFailure,
    UsageError,
)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INVALID_USAGE = 3
EXIT_CRASH = 4
EXIT_FIX_VERIFICATION = 5


def exit_code_for(error: DynlintError) -> int:
    """Exit code reported for ``error``.

    Driver diagnostic failures keep the driver's own exit code.
    """
    if isinstance(error, UsageError):
        return EXIT_INVALID_USAGE
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIG_ERROR
    if isinstance(error, Crash):
        return EXIT_CRASH
    if isinstance(error, FixVerificationError):
        return EXIT_FIX_VERIFICATION
    if isinstance(error, RuntimeFailure):
        return error.exit_code or EXIT_FAILURE
    return EXIT_FAILURE
