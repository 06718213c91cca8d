"""Toolchain-qualified artifact file names.

A built lint library is stored as ``PREFIX name '@' toolchain SUFFIX``, for
example ``libquestion_mark@nightly-2024-05-02-x86_64-unknown-linux-gnu.so``.
The toolchain is part of the name so that libraries built by different
compilers can sit in the same directory.
"""

from __future__ import annotations

from typing import Optional, Tuple

from dynlint.toolchain.platform import dll_affixes

SEPARATOR = "@"

REQUIRED_FORM = (
    "`{prefix}<library name>@<toolchain>{suffix}`, "
    "where `<library name>` is the crate's library name"
)


def required_form(os_name: Optional[str] = None) -> str:
    """Human-readable description of a valid artifact file name."""
    prefix, suffix = dll_affixes(os_name)
    return REQUIRED_FORM.format(prefix=prefix, suffix=suffix)


def _check_component(kind: str, value: str) -> None:
    if not value:
        raise ValueError(f"{kind} must not be empty")
    if "/" in value or "\\" in value:
        raise ValueError(f"{kind} `{value}` must not contain a path separator")


def encode(name: str, toolchain: str, os_name: Optional[str] = None) -> str:
    """Build the file name for library ``name`` compiled with ``toolchain``.

    Args:
        name: Library (logical) name.
        toolchain: Toolchain identifier.
        os_name: Platform whose affixes to use (default: host).

    Returns:
        The artifact's base file name.

    Raises:
        ValueError: If either component is empty, contains a path separator,
            or the name contains the separator character.
    """
    _check_component("library name", name)
    _check_component("toolchain", toolchain)
    if SEPARATOR in name:
        raise ValueError(f"library name `{name}` must not contain `{SEPARATOR}`")
    prefix, suffix = dll_affixes(os_name)
    return f"{prefix}{name}{SEPARATOR}{toolchain}{suffix}"


def decode(filename: str, os_name: Optional[str] = None) -> Optional[Tuple[str, str]]:
    """Split an artifact file name into (name, toolchain).

    Returns None, never raising, when ``filename`` does not have the form
    produced by :func:`encode`.
    """
    prefix, suffix = dll_affixes(os_name)
    if not filename.startswith(prefix) or not filename.endswith(suffix):
        return None
    stem = filename[len(prefix):len(filename) - len(suffix)]
    name, sep, toolchain = stem.partition(SEPARATOR)
    if not sep or not name or not toolchain:
        return None
    if "/" in stem or "\\" in stem:
        return None
    return name, toolchain


def cargo_output_name(lib_name: str, os_name: Optional[str] = None) -> str:
    """File name cargo gives a cdylib called ``lib_name``."""
    prefix, suffix = dll_affixes(os_name)
    return f"{prefix}{lib_name}{suffix}"
