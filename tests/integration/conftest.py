"""Pytest configuration and fixtures for integration tests."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from dynlint.scaffold.template import new_package


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=dynlint", "-c", "user.email=dynlint@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "dynlint-home"
    monkeypatch.setenv("DYNLINT_HOME", str(home))
    monkeypatch.delenv("DYNLINT_LIBRARY_PATH", raising=False)
    return home


@pytest.fixture
def source_repo(tmp_path: Path) -> Path:
    """A local git repository holding two library packages under lints/.

    The first commit is tagged ``v1`` and holds only ``first_lint``.
    """
    repo = tmp_path / "source"
    repo.mkdir()
    _git(repo, "init", "--quiet")
    new_package(repo / "lints" / "first_lint")
    _git(repo, "add", "-A")
    _git(repo, "commit", "--quiet", "-m", "first")
    _git(repo, "tag", "v1")
    new_package(repo / "lints" / "second_lint")
    _git(repo, "add", "-A")
    _git(repo, "commit", "--quiet", "-m", "second")
    return repo
