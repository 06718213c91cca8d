"""Toolchain resolution for a target directory.

The toolchain for a directory comes from the nearest ``rust-toolchain.toml``
or ``rust-toolchain`` file in it or one of its ancestors. Without a usable
pin, the host's active toolchain is used.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Optional, Sequence

from dynlint.core.logging import get_logger
from dynlint.core.manifest import TOMLDecodeError, loads_toml
from dynlint.core.subprocess_runner import run_command
from dynlint.toolchain.platform import host_triple

LOGGER = get_logger(__name__)

PIN_FILE_NAMES = ("rust-toolchain.toml", "rust-toolchain")

DEFAULT_CHANNEL = "stable"

Runner = Callable[..., subprocess.CompletedProcess]


def find_pin_file(start: Path) -> Optional[Path]:
    """Nearest toolchain pin file in ``start`` or its ancestors."""
    start = start.resolve()
    for directory in (start, *start.parents):
        for name in PIN_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def parse_pin_file(path: Path) -> Optional[str]:
    """Channel named by a pin file, or None if it cannot be read.

    ``rust-toolchain`` may hold either a bare channel or TOML; the ``.toml``
    variant is always TOML.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        LOGGER.warning(f"Could not read {path}: {e}")
        return None

    stripped = text.strip()
    if path.suffix != ".toml" and stripped and "\n" not in stripped and "=" not in stripped:
        return stripped

    try:
        document = loads_toml(text)
    except TOMLDecodeError as e:
        LOGGER.warning(f"Could not parse {path}: {e}")
        return None

    toolchain = document.get("toolchain")
    channel = toolchain.get("channel") if isinstance(toolchain, dict) else None
    if not isinstance(channel, str) or not channel.strip():
        LOGGER.warning(f"{path} does not name a toolchain channel")
        return None
    return channel.strip()


def qualify(channel: str, triple: Optional[str] = None) -> str:
    """Append the host target triple to ``channel`` unless already present."""
    triple = triple or host_triple()
    if channel.endswith(f"-{triple}"):
        return channel
    return f"{channel}-{triple}"


class ToolchainResolver:
    """Resolves and caches the toolchain identifier for directories.

    Args:
        runner: Callable with the signature of ``run_command``; used to ask
            rustup for the active toolchain when no pin file applies.
        triple: Target triple to qualify channels with (default: host).
    """

    def __init__(self, runner: Optional[Runner] = None, triple: Optional[str] = None):
        self._runner = runner or run_command
        self._triple = triple
        self._host_toolchain: Optional[str] = None

    def resolve(self, target_dir: Path) -> str:
        """Toolchain identifier for ``target_dir``. Never raises."""
        pin = find_pin_file(target_dir)
        if pin is not None:
            channel = parse_pin_file(pin)
            if channel is not None:
                LOGGER.debug(f"Toolchain for {target_dir} pinned by {pin}: {channel}")
                return qualify(channel, self._triple)
        return self.host_toolchain(target_dir)

    def host_toolchain(self, cwd: Optional[Path] = None) -> str:
        """The active toolchain reported by rustup, or ``stable-<triple>``."""
        if self._host_toolchain is None:
            self._host_toolchain = self._query_rustup(cwd) or qualify(
                DEFAULT_CHANNEL, self._triple
            )
        return self._host_toolchain

    def _query_rustup(self, cwd: Optional[Path]) -> Optional[str]:
        cmd: Sequence[str] = ["rustup", "show", "active-toolchain"]
        try:
            result = self._runner(cmd, cwd=cwd, timeout=30)
        except (OSError, subprocess.SubprocessError) as e:
            LOGGER.debug(f"rustup unavailable: {e}")
            return None
        if result.returncode != 0:
            LOGGER.debug(f"rustup show active-toolchain failed: {result.stderr.strip()}")
            return None
        words = result.stdout.split()
        return words[0] if words else None

