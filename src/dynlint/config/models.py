"""Typed tool settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_DRIVER_CRATE = "dynlint_driver"
DEFAULT_DRIVER_VERSION = "0.3.0"


@dataclass
class FetchSettings:
    """Retry policy for remote sources."""

    retries: int = 3
    backoff_seconds: float = 1.0


@dataclass
class BuildSettings:
    """Library build pool and lock tuning."""

    max_workers: int = 4
    lock_stale_seconds: float = 300.0
    heartbeat_seconds: float = 10.0


@dataclass
class DriverSettings:
    """Crate installed to provide the compiler driver."""

    crate: str = DEFAULT_DRIVER_CRATE
    version: str = DEFAULT_DRIVER_VERSION


@dataclass
class CheckSettings:
    """Defaults for ``dynlint check``."""

    keep_going: bool = False
    timeout: Optional[float] = None


@dataclass
class DynlintSettings:
    """All tool settings, with built-in defaults."""

    fetch: FetchSettings = field(default_factory=FetchSettings)
    build: BuildSettings = field(default_factory=BuildSettings)
    driver: DriverSettings = field(default_factory=DriverSettings)
    check: CheckSettings = field(default_factory=CheckSettings)

    # Files the settings were read from, for `dynlint status`.
    sources: List[str] = field(default_factory=list)
