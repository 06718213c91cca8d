"""Library package discovery.

Turns fetched source roots plus an entry's patterns into the list of cargo
packages that build lint libraries.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from dynlint.core.errors import FetchError
from dynlint.core.logging import get_logger
from dynlint.core.manifest import TOMLDecodeError, load_toml
from dynlint.library.fetcher import expand_within
from dynlint.library.metadata import MANIFEST_NAME, MetadataEntry

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class LibraryPackage:
    """A cargo package producing a ``cdylib`` lint library.

    Attributes:
        root: Package directory (holds Cargo.toml).
        name: Package name.
        lib_name: Library name; also the logical name users request.
        version: Package version, if declared.
        source: Description of the metadata entry it came from.
    """

    root: Path
    name: str
    lib_name: str
    version: Optional[str] = None
    source: str = ""


def lib_name_for(package_name: str, lib_table: Optional[dict]) -> str:
    """``[lib] name`` or the package name with ``-`` replaced by ``_``."""
    if isinstance(lib_table, dict) and isinstance(lib_table.get("name"), str):
        return lib_table["name"]
    return package_name.replace("-", "_")


def read_package(directory: Path, source: str = "") -> Optional[LibraryPackage]:
    """Describe the library package in ``directory``.

    Returns None (after logging a warning) when the directory has no manifest,
    the manifest is unreadable, or it does not build a ``cdylib``.
    """
    manifest = directory / MANIFEST_NAME
    if not manifest.is_file():
        LOGGER.warning(f"Skipping {directory}: it does not contain a package")
        return None
    try:
        document = load_toml(manifest)
    except (OSError, TOMLDecodeError) as e:
        LOGGER.warning(f"Skipping {directory}: could not parse {MANIFEST_NAME}: {e}")
        return None

    package = document.get("package")
    if not isinstance(package, dict) or not isinstance(package.get("name"), str):
        LOGGER.warning(f"Skipping {directory}: {MANIFEST_NAME} has no [package] name")
        return None

    lib = document.get("lib")
    crate_types = lib.get("crate-type", []) if isinstance(lib, dict) else []
    if "cdylib" not in crate_types:
        LOGGER.warning(f"Skipping {directory}: package `{package['name']}` is not a cdylib")
        return None

    version = package.get("version")
    return LibraryPackage(
        root=directory,
        name=package["name"],
        lib_name=lib_name_for(package["name"], lib),
        version=version if isinstance(version, str) else None,
        source=source,
    )


def discover(entry: MetadataEntry, roots: Iterable[Path]) -> List[LibraryPackage]:
    """Library packages selected by ``entry`` under its fetched ``roots``.

    Raises:
        FetchError: If a pattern escapes its root or matches nothing.
    """
    patterns = entry.patterns or ("",)
    found = {}
    for root in roots:
        for pattern in patterns:
            for directory in expand_within(root, pattern, entry.describe()):
                if not directory.is_dir() or directory in found:
                    continue
                package = read_package(directory, entry.describe())
                if package is not None:
                    found[directory] = package
    return [found[d] for d in sorted(found)]
