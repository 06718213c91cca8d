"""Search-path scanning.

Lists directories for files whose names decode as toolchain-qualified
artifacts and indexes them by library name.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

from dynlint.core import env
from dynlint.core.errors import ConfigurationError
from dynlint.core.logging import get_logger
from dynlint.toolchain.naming import decode

LOGGER = get_logger(__name__)


@dataclass(frozen=True, order=True)
class Artifact:
    """A built library file."""

    name: str
    toolchain: str
    path: Path


class ResolvedIndex:
    """Library name -> candidate artifacts found by one scan pass.

    Several candidates for a name is not an error here; the name resolver
    decides what an ambiguity means.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Set[Artifact]] = {}
        self._seen: Set[Path] = set()

    def add(self, artifact: Artifact) -> None:
        """Record ``artifact``; the same real file is recorded once."""
        try:
            real = artifact.path.resolve()
        except OSError:
            real = artifact.path
        if real in self._seen:
            return
        self._seen.add(real)
        self._entries.setdefault(artifact.name, set()).add(artifact)

    def merge(self, other: "ResolvedIndex") -> None:
        for artifact in other:
            self.add(artifact)

    def names(self) -> List[str]:
        return sorted(self._entries)

    def candidates(self, name: str) -> List[Artifact]:
        """Candidates for ``name``, sorted by path."""
        return sorted(self._entries.get(name, ()), key=lambda a: (a.path, a.toolchain))

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[Artifact]:
        for name in self.names():
            yield from self.candidates(name)

    def __len__(self) -> int:
        return sum(len(artifacts) for artifacts in self._entries.values())


def scan_directory(directory: Path, os_name: Optional[str] = None) -> ResolvedIndex:
    """Index the artifacts directly inside ``directory``.

    Subdirectories and files that do not decode are ignored. A missing or
    unreadable directory yields an empty index.
    """
    index = ResolvedIndex()
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        LOGGER.debug(f"Skipping {directory}: {e}")
        return index

    for path in entries:
        decoded = decode(path.name, os_name)
        if decoded is None or not path.is_file():
            continue
        name, toolchain = decoded
        index.add(Artifact(name=name, toolchain=toolchain, path=path.absolute()))
    return index


def scan(dirs: Iterable[Path], os_name: Optional[str] = None) -> ResolvedIndex:
    """Index the artifacts in every directory of ``dirs``."""
    index = ResolvedIndex()
    for directory in dirs:
        index.merge(scan_directory(directory, os_name))
    return index


def library_path_dirs(value: Optional[str] = None) -> List[Path]:
    """Directories listed in ``DYNLINT_LIBRARY_PATH``.

    Args:
        value: Path list to parse instead of the environment variable.

    Raises:
        ConfigurationError: If an entry is not an absolute directory.
    """
    if value is None:
        value = os.environ.get(env.DYNLINT_LIBRARY_PATH, "")
    dirs = []
    for entry in value.split(os.pathsep):
        if not entry:
            continue
        path = Path(entry)
        if not path.is_absolute():
            raise ConfigurationError(
                f"`{entry}` is not an absolute path", source=env.DYNLINT_LIBRARY_PATH
            )
        if not path.is_dir():
            raise ConfigurationError(
                f"`{entry}` is not a directory", source=env.DYNLINT_LIBRARY_PATH
            )
        dirs.append(path)
    return dirs
