"""Shared fixtures for unit tests."""

from __future__ import annotations

import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.library.packages import read_package
from dynlint.toolchain.naming import cargo_output_name, encode
from dynlint.toolchain.resolver import ToolchainResolver

TEST_TRIPLE = "x86_64-unknown-linux-gnu"
HOST_TOOLCHAIN = f"stable-{TEST_TRIPLE}"

_ISOLATED_VARS = (
    "CARGO",
    "CARGO_TARGET_DIR",
    "CLIPPY_DISABLE_DOCS_LINKS",
    "DYNLINT_DRIVER_PATH",
    "DYNLINT_LIBRARY_PATH",
    "DYNLINT_RUSTFLAGS",
    "DYNLINT_TOML",
    "RUSTC",
    "RUSTC_WRAPPER",
    "RUSTFLAGS",
    "RUSTUP_TOOLCHAIN",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Point DYNLINT_HOME at a temp dir and clear inherited compiler variables."""
    for name in _ISOLATED_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "dynlint-home"
    monkeypatch.setenv("DYNLINT_HOME", str(home))
    return home


@pytest.fixture
def paths(isolated_env: Path) -> DynlintPaths:
    return DynlintPaths(isolated_env)


def completed(cmd, returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(list(cmd), returncode, stdout, stderr)


class FakeCargo:
    """Stands in for ``run_command`` when building library packages.

    ``cargo build`` writes the cdylib cargo would produce into the target
    directory; packages listed in ``fail`` exit non-zero instead.
    """

    def __init__(self, fail: Optional[List[str]] = None, delay: float = 0.0):
        self.fail = set(fail or [])
        self.delay = delay
        self.calls: List[List[str]] = []
        self.built: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, cmd, cwd=None, env=None, timeout=None) -> subprocess.CompletedProcess:
        cmd = list(cmd)
        with self._lock:
            self.calls.append(cmd)
        package = read_package(Path(cwd))
        assert package is not None, f"no package in {cwd}"
        if self.delay:
            time.sleep(self.delay)
        if package.name in self.fail:
            return completed(cmd, 101, "", f"error: could not compile `{package.name}`")
        target_dir = Path(cmd[cmd.index("--target-dir") + 1])
        release = target_dir / "release"
        release.mkdir(parents=True, exist_ok=True)
        (release / cargo_output_name(package.lib_name)).write_bytes(b"\x7fELF")
        with self._lock:
            self.built.append(f"{package.lib_name}@{env.get('RUSTUP_TOOLCHAIN') if env else None}")
        return completed(cmd)


@pytest.fixture
def fake_cargo() -> FakeCargo:
    return FakeCargo()


@pytest.fixture
def toolchains() -> ToolchainResolver:
    """Resolver that never calls rustup; unpinned directories get the host toolchain."""

    def rustup(cmd, cwd=None, env=None, timeout=None):
        return completed(cmd, 0, f"{HOST_TOOLCHAIN} (default)\n")

    return ToolchainResolver(runner=rustup, triple=TEST_TRIPLE)


@pytest.fixture
def write_package() -> Callable[..., Path]:
    """Factory writing a cargo package to a directory."""

    def _write(
        directory: Path,
        name: str,
        lib_name: Optional[str] = None,
        cdylib: bool = True,
        channel: Optional[str] = None,
    ) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        lines = ["[package]", f'name = "{name}"', 'version = "0.1.0"', ""]
        lib_lines = []
        if lib_name is not None:
            lib_lines.append(f'name = "{lib_name}"')
        if cdylib:
            lib_lines.append('crate-type = ["cdylib"]')
        if lib_lines:
            lines += ["[lib]", *lib_lines, ""]
        (directory / "Cargo.toml").write_text("\n".join(lines), encoding="utf-8")
        (directory / "src").mkdir(exist_ok=True)
        (directory / "src" / "lib.rs").write_text("// lints\n", encoding="utf-8")
        if channel is not None:
            (directory / "rust-toolchain").write_text(f"{channel}\n", encoding="utf-8")
        return directory

    return _write


def make_artifact(directory: Path, name: str, toolchain: str) -> Path:
    """Create an empty toolchain-qualified library file."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / encode(name, toolchain)
    path.write_bytes(b"")
    return path


@pytest.fixture
def artifact_factory() -> Callable[[Path, str, str], Path]:
    return make_artifact


@pytest.fixture
def library_path(monkeypatch: pytest.MonkeyPatch) -> Callable[..., None]:
    """Set DYNLINT_LIBRARY_PATH from directories."""

    def _set(*dirs: Path) -> None:
        monkeypatch.setenv("DYNLINT_LIBRARY_PATH", os.pathsep.join(str(d) for d in dirs))

    return _set


@pytest.fixture
def cargo_factory() -> Callable[..., FakeCargo]:
    """FakeCargo constructor, for tests needing failures or delays."""
    return FakeCargo
