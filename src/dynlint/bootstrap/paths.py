"""Path management for the dynlint cache.

Handles the ~/.dynlint directory structure and path resolution.
Fetched sources, built libraries, drivers and lock files all live under it.
"""

from __future__ import annotations

import hashlib
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

# Default directory name under user home
DEFAULT_HOME_DIR_NAME = ".dynlint"

# Environment variable to override home directory
DYNLINT_HOME_ENV = "DYNLINT_HOME"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def get_dynlint_home() -> Path:
    """Get the dynlint home directory path.

    Resolution order:
    1. DYNLINT_HOME environment variable (if set)
    2. ~/.dynlint (default)

    Returns:
        Path to the dynlint home directory.
    """
    env_home = os.environ.get(DYNLINT_HOME_ENV)
    if env_home:
        return Path(env_home)
    return Path.home() / DEFAULT_HOME_DIR_NAME


def safe_component(value: str) -> str:
    """Make ``value`` usable as a single path component."""
    return _UNSAFE_CHARS.sub("_", value).strip("_") or "_"


def short_hash(value: str, length: int = 12) -> str:
    """Hex digest prefix of ``value``, used to keep cache keys distinct."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


@dataclass
class DynlintPaths:
    """Manages paths within the dynlint home directory.

    Directory structure:
        ~/.dynlint/
            git/<ident>-<hash>/                    - Fetched checkouts
            libraries/<slug>/<toolchain>/          - Cargo target dirs and build.json
            drivers/<toolchain>/bin/               - Compiler drivers
            locks/                                 - build-, fetch- and driver- locks
            config/config.yml                      - Global settings
    """

    home: Path

    _GIT_DIR: ClassVar[str] = "git"
    _LIBRARIES_DIR: ClassVar[str] = "libraries"
    _DRIVERS_DIR: ClassVar[str] = "drivers"
    _LOCKS_DIR: ClassVar[str] = "locks"
    _CONFIG_DIR: ClassVar[str] = "config"

    @classmethod
    def default(cls) -> "DynlintPaths":
        """Create paths from the default dynlint home."""
        return cls(get_dynlint_home())

    @property
    def git_dir(self) -> Path:
        """Directory containing fetched git checkouts."""
        return self.home / self._GIT_DIR

    @property
    def libraries_dir(self) -> Path:
        """Directory containing per-package build output."""
        return self.home / self._LIBRARIES_DIR

    @property
    def drivers_dir(self) -> Path:
        """Directory containing installed compiler drivers."""
        return self.home / self._DRIVERS_DIR

    @property
    def locks_dir(self) -> Path:
        """Directory containing cross-process lock files."""
        return self.home / self._LOCKS_DIR

    @property
    def config_dir(self) -> Path:
        """Directory for configuration files."""
        return self.home / self._CONFIG_DIR

    def checkout_dir(self, ident: str, key: str) -> Path:
        """Checkout directory for a fetched source.

        Args:
            ident: Human-readable part, usually the repository name.
            key: Cache key the hash is derived from.
        """
        return self.git_dir / f"{safe_component(ident)}-{short_hash(key)}"

    def library_target_dir(self, package_slug: str, toolchain: str) -> Path:
        """Cargo target directory for one package built with one toolchain."""
        return self.libraries_dir / package_slug / safe_component(toolchain)

    def driver_dir(self, toolchain: str) -> Path:
        """Install root of the driver for ``toolchain``."""
        return self.drivers_dir / safe_component(toolchain)

    def lock_path(self, kind: str, key: str) -> Path:
        """Lock file for ``kind`` (build, fetch, driver) and ``key``."""
        return self.locks_dir / f"{kind}-{safe_component(key)}.lock"
