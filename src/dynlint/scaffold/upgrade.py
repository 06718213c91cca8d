"""Upgrading a library package's pinned clippy_utils and toolchain."""

from __future__ import annotations

import datetime
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dynlint.core.errors import ConfigurationError, UsageError
from dynlint.core.logging import get_logger

LOGGER = get_logger(__name__)

CLIPPY_UTILS_PATTERN = re.compile(r'(?m)^(clippy_utils\b.*?)\b(?:rev|tag) = "[^"]*"')
CHANNEL_PATTERN = re.compile(r'(?m)^channel = "([^"]*)"')


@dataclass
class UpgradePlan:
    """What an upgrade changes."""

    old_channel: str
    new_channel: str
    rev: str


def parse_as_nightly(channel: str) -> Optional[datetime.date]:
    """Date of a ``nightly-YYYY-MM-DD`` channel, else None."""
    if not channel.startswith("nightly-"):
        return None
    try:
        return datetime.datetime.strptime(channel[len("nightly-"):], "%Y-%m-%d").date()
    except ValueError:
        return None


def read_channel(package: Path) -> str:
    """Channel pinned by the package's ``rust-toolchain`` file.

    Raises:
        ConfigurationError: If the file is missing or names no channel.
    """
    rust_toolchain = package / "rust-toolchain"
    try:
        text = rust_toolchain.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"could not read: {e}", source=str(rust_toolchain)) from e
    match = CHANNEL_PATTERN.search(text)
    if match is None:
        raise ConfigurationError(
            "could not determine the toolchain channel", source=str(rust_toolchain)
        )
    return match.group(1)


def _write(path: Path, text: str) -> None:
    staging = path.with_name(f".{path.name}.dynlint-upgrade")
    staging.write_text(text, encoding="utf-8")
    os.replace(staging, path)


def upgrade_package(
    package: Path,
    rev: str,
    channel: Optional[str] = None,
    allow_downgrade: bool = False,
) -> UpgradePlan:
    """Point ``clippy_utils`` at ``rev`` and, optionally, pin ``channel``.

    Both files are rewritten only after both edits succeed.

    Raises:
        ConfigurationError: If either file lacks the expected entry.
        UsageError: If ``channel`` is an older nightly and downgrades are
            not allowed.
    """
    old_channel = read_channel(package)
    new_channel = channel or old_channel

    old_nightly = parse_as_nightly(old_channel)
    new_nightly = parse_as_nightly(new_channel)
    if (
        not allow_downgrade
        and old_nightly is not None
        and new_nightly is not None
        and new_nightly < old_nightly
    ):
        raise UsageError(
            f"Refusing to downgrade toolchain from `{old_channel}` to `{new_channel}`. "
            "Use `--allow-downgrade` to override."
        )

    cargo_toml = package / "Cargo.toml"
    try:
        manifest = cargo_toml.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"could not read: {e}", source=str(cargo_toml)) from e
    manifest, count = CLIPPY_UTILS_PATTERN.subn(
        lambda m: f'{m.group(1)}rev = "{rev}"', manifest
    )
    if count == 0:
        raise ConfigurationError(
            "no `clippy_utils` dependency with a `rev` or `tag`", source=str(cargo_toml)
        )

    rust_toolchain = package / "rust-toolchain"
    toolchain_text = CHANNEL_PATTERN.sub(
        lambda _m: f'channel = "{new_channel}"',
        rust_toolchain.read_text(encoding="utf-8"),
    )

    _write(cargo_toml, manifest)
    _write(rust_toolchain, toolchain_text)
    LOGGER.info(f"Upgraded {package}: clippy_utils {rev}, channel {new_channel}")
    return UpgradePlan(old_channel=old_channel, new_channel=new_channel, rev=rev)
