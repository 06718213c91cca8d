"""Workspace metadata loading.

Library sources are declared in ``[workspace.metadata.dynlint]`` of the
workspace's ``Cargo.toml`` and of an optional ``dynlint.toml`` beside it::

    [workspace.metadata.dynlint]
    libraries = [
        { git = "https://github.com/org/lints", pattern = "examples/*" },
        { path = "lints/question_mark" },
    ]

Every entry is either remote (``git`` plus at most one of ``branch``,
``tag``, ``rev``) or local (``path``). ``pattern`` is a glob or a list of
globs relative to the source's root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dynlint.core import env
from dynlint.core.errors import ConfigurationError
from dynlint.core.logging import get_logger
from dynlint.core.manifest import TOMLDecodeError, load_toml, loads_toml

LOGGER = get_logger(__name__)

MANIFEST_NAME = "Cargo.toml"
DYNLINT_TOML_NAME = "dynlint.toml"
METADATA_KEY = "dynlint"

ENTRY_KEYS = frozenset({"git", "branch", "tag", "rev", "path", "pattern"})
SELECTOR_KEYS = ("branch", "tag", "rev")


@dataclass(frozen=True)
class MetadataEntry:
    """One declared library source.

    Attributes:
        git: Repository URL for a remote source.
        branch: Branch to check out (remote only).
        tag: Tag to check out (remote only).
        rev: Revision to check out (remote only).
        path: Path, possibly a glob, of a local source relative to the
            workspace root.
        patterns: Globs selecting package directories under the source root;
            empty means the root itself.
        source: File the entry was declared in.
    """

    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None
    path: Optional[str] = None
    patterns: Tuple[str, ...] = ()
    source: str = field(default="", compare=False)

    @property
    def is_remote(self) -> bool:
        return self.git is not None

    @property
    def selector(self) -> Optional[Tuple[str, str]]:
        """(kind, value) of the revision selector, if any."""
        for kind in SELECTOR_KEYS:
            value = getattr(self, kind)
            if value is not None:
                return kind, value
        return None

    @property
    def source_key(self) -> Tuple[str, ...]:
        """Identity used to merge entries from several files."""
        if self.git is not None:
            selector = self.selector or ("", "")
            return ("git", self.git, *selector)
        return ("path", self.path or "")

    def describe(self) -> str:
        """Short human-readable form used in messages."""
        if self.git is not None:
            selector = self.selector
            return f"{self.git}" + (f" ({selector[0]} {selector[1]})" if selector else "")
        return f"{self.path}"


@dataclass
class WorkspaceMetadata:
    """Entries declared for a workspace plus the raw ``dynlint`` table."""

    root: Path
    entries: List[MetadataEntry] = field(default_factory=list)
    table: Dict[str, Any] = field(default_factory=dict)


def find_workspace_root(start: Path) -> Optional[Path]:
    """Root of the cargo workspace containing ``start``.

    The nearest ancestor manifest declaring ``[workspace]`` wins; otherwise
    the nearest manifest's directory. Returns None outside any package.
    """
    start = start.resolve()
    if start.is_file():
        start = start.parent
    nearest: Optional[Path] = None
    for directory in (start, *start.parents):
        manifest = directory / MANIFEST_NAME
        if not manifest.is_file():
            continue
        if nearest is None:
            nearest = directory
        try:
            document = load_toml(manifest)
        except (OSError, TOMLDecodeError) as e:
            LOGGER.debug(f"Ignoring unreadable {manifest}: {e}")
            continue
        if isinstance(document.get("workspace"), dict):
            return directory
    return nearest


def parse_entry(raw: Any, source: str) -> MetadataEntry:
    """Validate one ``libraries`` element.

    Raises:
        ConfigurationError: On unknown keys, wrong types, or an entry that is
            not exactly one of remote or local.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"library entries must be tables, got {type(raw).__name__}", source=source
        )

    unknown = sorted(set(raw) - ENTRY_KEYS)
    if unknown:
        listing = "".join(f"\n    {key}" for key in unknown)
        raise ConfigurationError(f"Unknown library keys:{listing}", source=source)

    for key in ("git", "path", *SELECTOR_KEYS):
        if key in raw and not isinstance(raw[key], str):
            raise ConfigurationError(f"`{key}` must be a string", source=source)

    git = raw.get("git")
    path = raw.get("path")
    if (git is None) == (path is None):
        raise ConfigurationError(
            "library entries must set exactly one of `git` or `path`", source=source
        )

    selectors = [key for key in SELECTOR_KEYS if key in raw]
    if selectors and git is None:
        raise ConfigurationError(
            f"`{selectors[0]}` is only allowed with `git` (entry `{path}`)", source=source
        )
    if len(selectors) > 1:
        raise ConfigurationError(
            f"at most one of `branch`, `tag` or `rev` may be set (entry `{git}`)",
            source=source,
        )

    return MetadataEntry(
        git=git,
        branch=raw.get("branch"),
        tag=raw.get("tag"),
        rev=raw.get("rev"),
        path=path,
        patterns=_parse_patterns(raw.get("pattern"), source),
        source=source,
    )


def _parse_patterns(value: Any, source: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        # Union of the listed globs, in first-seen order.
        return tuple(dict.fromkeys(value))
    raise ConfigurationError("`pattern` must be a string or an array of strings", source=source)


def parse_table(table: Any, source: str) -> List[MetadataEntry]:
    """Entries of one ``dynlint`` metadata table.

    Raises:
        ConfigurationError: If the table is malformed.
    """
    if not isinstance(table, dict):
        raise ConfigurationError(f"`{METADATA_KEY}` value must be a table", source=source)

    for key in sorted(table):
        if key != "libraries":
            raise ConfigurationError(f"Unknown key `{key}`", source=source)

    libraries = table.get("libraries", [])
    if not isinstance(libraries, list):
        raise ConfigurationError("`libraries` must be an array", source=source)
    return [parse_entry(raw, source) for raw in libraries]


def _metadata_table(document: Dict[str, Any]) -> Optional[Any]:
    workspace = document.get("workspace")
    if not isinstance(workspace, dict):
        return None
    metadata = workspace.get("metadata")
    if not isinstance(metadata, dict):
        return None
    return metadata.get(METADATA_KEY)


def _read_document(path: Path, text: Optional[str] = None) -> Dict[str, Any]:
    try:
        return loads_toml(text) if text is not None else load_toml(path)
    except OSError as e:
        raise ConfigurationError(f"could not read: {e}", source=str(path)) from e
    except TOMLDecodeError as e:
        raise ConfigurationError(f"invalid TOML: {e}", source=str(path)) from e


def merge_entries(
    base: List[MetadataEntry], overlay: List[MetadataEntry]
) -> List[MetadataEntry]:
    """Merge entries per source key; ``overlay`` replaces matching ``base`` entries."""
    merged: Dict[Tuple[str, ...], MetadataEntry] = {}
    for entry in base:
        merged[entry.source_key] = entry
    for entry in overlay:
        if entry.source_key in merged:
            LOGGER.debug(f"{entry.source} overrides {entry.describe()}")
        merged[entry.source_key] = entry
    return list(merged.values())


def load(workspace_root: Path, dynlint_toml: Optional[str] = None) -> WorkspaceMetadata:
    """Load the library entries declared for a workspace.

    Args:
        workspace_root: Directory holding the workspace manifest.
        dynlint_toml: Contents to use instead of ``dynlint.toml``; defaults
            to ``DYNLINT_TOML`` when that variable is set.

    Returns:
        The merged entries and the effective ``dynlint`` table.

    Raises:
        ConfigurationError: If either file is malformed.
    """
    metadata = WorkspaceMetadata(root=workspace_root)

    manifest = workspace_root / MANIFEST_NAME
    manifest_entries: List[MetadataEntry] = []
    if manifest.is_file():
        table = _metadata_table(_read_document(manifest))
        if table is not None:
            manifest_entries = parse_table(table, str(manifest))
            metadata.table = dict(table)

    if dynlint_toml is None:
        dynlint_toml = os.environ.get(env.DYNLINT_TOML)
    config_path = workspace_root / DYNLINT_TOML_NAME
    config_entries: List[MetadataEntry] = []
    if dynlint_toml is not None or config_path.is_file():
        source = env.DYNLINT_TOML if dynlint_toml is not None else str(config_path)
        table = _metadata_table(_read_document(config_path, dynlint_toml))
        if table is not None:
            config_entries = parse_table(table, source)
            metadata.table = {**metadata.table, **table}

    metadata.entries = merge_entries(manifest_entries, config_entries)
    if metadata.table:
        # Entries are re-serialised so the driver sees the merged view.
        metadata.table["libraries"] = [entry_to_table(e) for e in metadata.entries]
    LOGGER.debug(f"Loaded {len(metadata.entries)} library entries for {workspace_root}")
    return metadata


def entry_to_table(entry: MetadataEntry) -> Dict[str, Any]:
    """Inverse of :func:`parse_entry`."""
    table: Dict[str, Any] = {}
    for key in ("git", *SELECTOR_KEYS, "path"):
        value = getattr(entry, key)
        if value is not None:
            table[key] = value
    if len(entry.patterns) == 1:
        table["pattern"] = entry.patterns[0]
    elif entry.patterns:
        table["pattern"] = list(entry.patterns)
    return table
