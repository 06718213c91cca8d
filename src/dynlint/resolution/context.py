"""Request-scoped resolution state.

Everything a single resolution needs (options, workspace, cache layout,
settings, fetcher and builder) is gathered in one object created per
request and discarded afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.config.models import DynlintSettings
from dynlint.core.errors import DynlintError, UsageError
from dynlint.library.builder import PackageBuilder
from dynlint.library.fetcher import SourceFetcher
from dynlint.library.metadata import MetadataEntry, WorkspaceMetadata, find_workspace_root, load
from dynlint.toolchain.resolver import ToolchainResolver


@dataclass
class LibrarySelection:
    """Which libraries a request asks for, and where to look.

    Attributes:
        libs: ``--lib`` values; each must be a library name.
        lib_paths: ``--lib-path`` values; each must be a path to an artifact.
        names: Positional names; tried as library names, then as paths.
        all: Select every discoverable library.
        git: Ad-hoc remote source.
        branch: Branch of the ad-hoc remote source.
        tag: Tag of the ad-hoc remote source.
        rev: Revision of the ad-hoc remote source.
        path: Ad-hoc local source directory.
        patterns: Globs applied under the ad-hoc source's root.
        no_build: Do not build metadata entries.
        no_metadata: Ignore workspace metadata.
        fail_fast: Stop at the first fetch or build error.
        manifest_path: Manifest locating the workspace.
    """

    libs: List[str] = field(default_factory=list)
    lib_paths: List[str] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    all: bool = False
    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None
    path: Optional[str] = None
    patterns: List[str] = field(default_factory=list)
    no_build: bool = False
    no_metadata: bool = False
    fail_fast: bool = False
    manifest_path: Optional[Path] = None

    @property
    def has_ad_hoc_source(self) -> bool:
        return self.git is not None or self.path is not None

    @property
    def has_requests(self) -> bool:
        return bool(self.all or self.libs or self.lib_paths or self.names)

    def validate(self) -> None:
        """Reject option combinations that make no sense.

        Raises:
            UsageError: On an invalid combination.
        """
        if self.all and self.libs:
            raise UsageError("`--lib` cannot be used with `--all`")
        if self.git is not None and self.path is not None:
            raise UsageError("`--git` and `--path` cannot be used together")
        selectors = [s for s in (self.branch, self.tag, self.rev) if s is not None]
        if selectors and self.git is None:
            raise UsageError("`--branch`, `--tag` and `--rev` require `--git`")
        if len(selectors) > 1:
            raise UsageError("at most one of `--branch`, `--tag` or `--rev` may be given")
        if self.patterns and not self.has_ad_hoc_source:
            raise UsageError("`--pattern` requires `--git` or `--path`")

    def ad_hoc_entry(self) -> Optional[MetadataEntry]:
        """The ad-hoc source as a metadata entry, if one was given."""
        if not self.has_ad_hoc_source:
            return None
        return MetadataEntry(
            git=self.git,
            branch=self.branch,
            tag=self.tag,
            rev=self.rev,
            path=self.path,
            patterns=tuple(self.patterns),
            source="command line",
        )


class ResolutionContext:
    """State shared by the tiers of one resolution request.

    Args:
        selection: Requested libraries and options.
        cwd: Directory the request was made from.
        paths: Cache layout.
        settings: Tool settings.
        toolchains: Toolchain resolver for package directories.
        fetcher: Source fetcher; created from the other arguments if None.
        builder: Package builder; created from the other arguments if None.
    """

    def __init__(
        self,
        selection: LibrarySelection,
        cwd: Path,
        paths: DynlintPaths,
        settings: DynlintSettings,
        toolchains: Optional[ToolchainResolver] = None,
        fetcher: Optional[SourceFetcher] = None,
        builder: Optional[PackageBuilder] = None,
    ):
        self.selection = selection
        self.cwd = cwd.resolve()
        self.paths = paths
        self.settings = settings
        self.toolchains = toolchains or ToolchainResolver()
        start = selection.manifest_path.parent if selection.manifest_path else self.cwd
        self.workspace_root = find_workspace_root(start)
        self.fetcher = fetcher or SourceFetcher(
            paths,
            self.workspace_root,
            fetch_settings=settings.fetch,
            build_settings=settings.build,
        )
        self.builder = builder or PackageBuilder(paths, settings.build)
        self.errors: List[DynlintError] = []
        self._metadata: Optional[WorkspaceMetadata] = None

    @property
    def metadata(self) -> WorkspaceMetadata:
        """Workspace metadata, loaded on first use.

        Raises:
            ConfigurationError: If the metadata is malformed.
        """
        if self._metadata is None:
            if self.selection.no_metadata or self.workspace_root is None:
                self._metadata = WorkspaceMetadata(root=self.workspace_root or self.cwd)
            else:
                self._metadata = load(self.workspace_root)
        return self._metadata

    def record(self, error: DynlintError) -> None:
        """Collect a recoverable error, or raise it under fail-fast."""
        if self.selection.fail_fast:
            raise error
        self.errors.append(error)
