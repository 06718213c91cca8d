"""TOML reading for Cargo.toml, dynlint.toml and toolchain pin files."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

TOMLDecodeError = tomllib.TOMLDecodeError


def loads_toml(text: str) -> Dict[str, Any]:
    """Parse TOML text.

    Raises:
        TOMLDecodeError: If the text is not valid TOML.
    """
    return tomllib.loads(text)


def load_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        OSError: If the file cannot be read.
        TOMLDecodeError: If the file is not valid TOML.
    """
    with open(path, "rb") as f:
        return tomllib.load(f)
