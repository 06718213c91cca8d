"""Name resolution.

Each requested name is looked up in four tiers, and the first tier that
knows the name wins:

1. the ad-hoc source given with the request (``--git``/``--path``), built;
2. the directories in ``DYNLINT_LIBRARY_PATH``, used as they are;
3. the workspace metadata entries, built;
4. the name taken literally as a path to an artifact.

Two different artifacts for a name within one tier is an ambiguity and
aborts the request. Names no tier knows are reported together.
"""

from __future__ import annotations

import os
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from dynlint.core.errors import (
    AmbiguityError,
    ConfigurationError,
    FetchError,
    NotFoundError,
    raise_collected,
)
from dynlint.core.logging import get_logger
from dynlint.library.metadata import MetadataEntry
from dynlint.library.packages import LibraryPackage, discover
from dynlint.library.parallel import ParallelBuildExecutor
from dynlint.library.scanner import Artifact, ResolvedIndex, library_path_dirs, scan
from dynlint.resolution.context import ResolutionContext
from dynlint.toolchain.naming import decode, required_form

LOGGER = get_logger(__name__)

TIER_AD_HOC = "the given source"
TIER_LIBRARY_PATH = "DYNLINT_LIBRARY_PATH"
TIER_METADATA = "workspace metadata"

LIB = "lib"
PATH = "path"
EITHER = "either"


def is_valid_lib_name(name: str) -> bool:
    """A library name is its own base name."""
    if not name or name in (".", ".."):
        return False
    separators = [os.sep, "/"] + ([os.altsep] if os.altsep else [])
    return not any(sep in name for sep in separators)


def _has_separator(name: str) -> bool:
    return not is_valid_lib_name(name) and name not in ("", ".", "..")


@dataclass
class Resolution:
    """The artifacts selected by one request, in request order."""

    artifacts: List[Artifact] = field(default_factory=list)

    def by_toolchain(self) -> "OrderedDict[str, List[Path]]":
        """Artifact paths grouped by toolchain, toolchains sorted."""
        grouped: Dict[str, List[Path]] = {}
        for artifact in self.artifacts:
            paths = grouped.setdefault(artifact.toolchain, [])
            if artifact.path not in paths:
                paths.append(artifact.path)
        return OrderedDict((t, grouped[t]) for t in sorted(grouped))


@dataclass(frozen=True, order=True)
class ListedLibrary:
    """One row of ``dynlint list``."""

    name: str
    toolchain: str
    path: Path
    built: bool


class NameResolver:
    """Resolves the libraries selected in a :class:`ResolutionContext`."""

    def __init__(self, context: ResolutionContext):
        self.context = context
        self.selection = context.selection
        # Library names whose only candidates failed to build.
        self._failed: Set[str] = set()

    def resolve(self) -> Resolution:
        """Resolve every requested library.

        Raises:
            UsageError: On conflicting options.
            ConfigurationError: On malformed names or metadata.
            AmbiguityError: If a tier holds several candidates for a name.
            NotFoundError, FetchError, BuildError, BatchError: For the
                collected recoverable failures.
        """
        sel = self.selection
        sel.validate()

        requests: List[Tuple[str, str]] = (
            [(name, LIB) for name in sel.libs]
            + [(name, PATH) for name in sel.lib_paths]
            + [(name, EITHER) for name in sel.names]
        )
        for name, kind in requests:
            if kind == LIB and not is_valid_lib_name(name):
                raise ConfigurationError(f"`{name}` is not a valid library name")

        artifacts: List[Artifact] = []
        if sel.all:
            artifacts.extend(self._resolve_all())

        wanted = list(
            OrderedDict.fromkeys(
                name for name, kind in requests if kind != PATH and is_valid_lib_name(name)
            )
        )
        by_name = self._resolve_names(wanted)

        missing: List[str] = []
        for name, kind in requests:
            artifact = by_name.get(name) if kind != PATH else None
            if artifact is None and kind != LIB:
                artifact = self._as_path(name, kind)
            if artifact is not None:
                artifacts.append(artifact)
            elif name not in self._failed:
                missing.append(name)

        if missing:
            self.context.errors.append(NotFoundError(missing))
        raise_collected(self.context.errors)

        unique = list(OrderedDict((a.path, a) for a in artifacts).values())
        LOGGER.debug(f"Resolved {len(unique)} libraries")
        return Resolution(unique)

    def _resolve_names(self, wanted: List[str]) -> Dict[str, Artifact]:
        resolved: Dict[str, Artifact] = {}
        pending = list(wanted)

        def take(index: ResolvedIndex, tier: str) -> None:
            nonlocal pending
            remaining = []
            for name in pending:
                candidates = index.candidates(name)
                if len(candidates) > 1:
                    raise AmbiguityError(name, [c.path for c in candidates], tier)
                if candidates:
                    resolved[name] = candidates[0]
                else:
                    remaining.append(name)
            pending = remaining

        if pending and self.selection.has_ad_hoc_source:
            take(self._ad_hoc_index(set(pending)), TIER_AD_HOC)
        if pending:
            take(scan(library_path_dirs()), TIER_LIBRARY_PATH)
        if pending:
            take(self._metadata_index(set(pending)), TIER_METADATA)
        return resolved

    def _resolve_all(self) -> List[Artifact]:
        if self.selection.has_ad_hoc_source:
            return list(self._ad_hoc_index(None))
        index = scan(library_path_dirs())
        index.merge(self._metadata_index(None))
        return list(index)

    def _as_path(self, name: str, kind: str) -> Optional[Artifact]:
        path = Path(name)
        if not path.is_absolute():
            path = self.context.cwd / path
        if not path.is_file():
            return None
        decoded = decode(path.name)
        if decoded is None:
            if kind == PATH:
                raise ConfigurationError(
                    f"`--lib-path {name}` was used, but the filename does not have "
                    f"the required form: {required_form()}"
                )
            if _has_separator(name):
                raise ConfigurationError(
                    f"`{name}` is a valid path, but the filename does not have "
                    f"the required form: {required_form()}"
                )
            return None
        return Artifact(name=decoded[0], toolchain=decoded[1], path=path.resolve())

    def _ad_hoc_roots(self, entry: MetadataEntry) -> List[Path]:
        if entry.is_remote:
            return self.context.fetcher.fetch(entry)
        root = Path(entry.path or ".")
        if not root.is_absolute():
            root = self.context.cwd / root
        if not root.is_dir():
            raise FetchError(entry.describe(), f"{root} is not a directory")
        return [root.resolve()]

    def ad_hoc_packages(self) -> List[LibraryPackage]:
        """Library packages of the ad-hoc source; failures are recorded."""
        entry = self.selection.ad_hoc_entry()
        if entry is None:
            return []
        try:
            return discover(entry, self._ad_hoc_roots(entry))
        except FetchError as e:
            self.context.record(e)
            return []

    def metadata_packages(self) -> List[LibraryPackage]:
        """Library packages of every metadata entry; failures are recorded."""
        packages: List[LibraryPackage] = []
        for entry in self.context.metadata.entries:
            try:
                packages.extend(discover(entry, self.context.fetcher.fetch(entry)))
            except FetchError as e:
                self.context.record(e)
        return packages

    def _ad_hoc_index(self, wanted: Optional[Set[str]]) -> ResolvedIndex:
        return self._build_index(self.ad_hoc_packages(), wanted, TIER_AD_HOC, build=True)

    def _metadata_index(self, wanted: Optional[Set[str]]) -> ResolvedIndex:
        return self._build_index(
            self.metadata_packages(), wanted, TIER_METADATA, build=not self.selection.no_build
        )

    def _build_index(
        self,
        packages: Iterable[LibraryPackage],
        wanted: Optional[Set[str]],
        tier: str,
        build: bool,
    ) -> ResolvedIndex:
        selected = [p for p in packages if wanted is None or p.lib_name in wanted]

        if wanted is not None:
            roots: Dict[str, Set[Path]] = {}
            for package in selected:
                roots.setdefault(package.lib_name, set()).add(package.root)
            for name in sorted(roots):
                if len(roots[name]) > 1:
                    raise AmbiguityError(name, roots[name], tier)

        jobs = [(p, self.context.toolchains.resolve(p.root)) for p in selected]
        index = ResolvedIndex()
        if not build:
            for package, toolchain in jobs:
                expected = self.context.builder.expected_path(package, toolchain)
                if expected.is_file():
                    index.add(Artifact(package.lib_name, toolchain, expected))
            return index

        executor = ParallelBuildExecutor(
            self.context.builder,
            max_workers=self.context.settings.build.max_workers,
            fail_fast=self.selection.fail_fast,
        )
        for result in executor.execute(jobs):
            if result.error is not None:
                self._failed.add(result.package.lib_name)
                self.context.record(result.error)
                continue
            for path in result.artifacts:
                index.add(Artifact(result.package.lib_name, result.toolchain, path))
        return index

    def list_libraries(self) -> List[ListedLibrary]:
        """Every discoverable library, without building anything.

        Raises:
            FetchError, BatchError: For sources that could not be fetched.
        """
        rows = {
            ListedLibrary(a.name, a.toolchain, a.path, True) for a in scan(library_path_dirs())
        }
        if self.selection.has_ad_hoc_source:
            packages = self.ad_hoc_packages()
        else:
            packages = self.metadata_packages()
        for package in packages:
            toolchain = self.context.toolchains.resolve(package.root)
            expected = self.context.builder.expected_path(package, toolchain)
            rows.add(ListedLibrary(package.lib_name, toolchain, expected, expected.is_file()))
        raise_collected(self.context.errors)
        return sorted(rows)
