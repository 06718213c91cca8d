"""Source fingerprints for skipping up-to-date builds."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Iterator, Optional

import pathspec

# Never part of the sources, whatever .gitignore says.
ALWAYS_EXCLUDED = frozenset({"target", ".git"})


def _load_gitignore(root: Path) -> Optional[pathspec.PathSpec]:
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return None
    lines = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def iter_source_files(root: Path) -> Iterator[Path]:
    """Files under ``root`` that affect a build, as sorted relative paths."""
    spec = _load_gitignore(root)
    collected = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root)
        kept = []
        for name in dirnames:
            rel = (rel_dir / name).as_posix()
            if name in ALWAYS_EXCLUDED or (spec is not None and spec.match_file(rel + "/")):
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in filenames:
            rel = (rel_dir / name).as_posix()
            if spec is not None and spec.match_file(rel):
                continue
            collected.append(Path(rel))
    yield from sorted(collected)


def fingerprint(root: Path, toolchain: str) -> str:
    """Digest of the sources under ``root`` as built by ``toolchain``.

    Covers relative path, size and modification time of every source file.
    """
    digest = hashlib.sha256()
    digest.update(f"toolchain={toolchain}\n".encode("utf-8"))
    for rel in iter_source_files(root):
        stat = (root / rel).stat()
        digest.update(f"{rel.as_posix()}\0{stat.st_size}\0{stat.st_mtime_ns}\n".encode("utf-8"))
    return digest.hexdigest()
