"""Library package builds.

Each (package, toolchain) pair has its own cargo target directory under
``$DYNLINT_HOME/libraries`` and its own lock file, so builds of different
pairs proceed in parallel while builds of the same pair are serialized, even
across processes.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from dynlint.bootstrap.paths import DynlintPaths, safe_component, short_hash
from dynlint.config.models import BuildSettings
from dynlint.core import env
from dynlint.core.errors import BuildError
from dynlint.core.logging import get_logger
from dynlint.core.subprocess_runner import run_command
from dynlint.library.fingerprint import fingerprint
from dynlint.library.lock import FileLock
from dynlint.library.packages import LibraryPackage
from dynlint.toolchain.naming import cargo_output_name, encode

LOGGER = get_logger(__name__)

BUILD_RECORD_NAME = "build.json"

BUILD_TIMEOUT = 3600

Runner = Callable[..., subprocess.CompletedProcess]


def package_slug(package: LibraryPackage) -> str:
    """Cache directory name for ``package``; unique per source location."""
    return f"{safe_component(package.name)}-{short_hash(str(package.root.resolve()))}"


class PackageBuilder:
    """Builds library packages and names their output by toolchain.

    Args:
        paths: Cache layout.
        settings: Lock tuning.
        runner: Callable with the signature of ``run_command``.
    """

    def __init__(
        self,
        paths: DynlintPaths,
        settings: Optional[BuildSettings] = None,
        runner: Optional[Runner] = None,
    ):
        self.paths = paths
        self.settings = settings or BuildSettings()
        self._runner = runner or run_command

    def target_dir(self, package: LibraryPackage, toolchain: str) -> Path:
        return self.paths.library_target_dir(package_slug(package), toolchain)

    def expected_path(self, package: LibraryPackage, toolchain: str) -> Path:
        """Where the toolchain-qualified artifact lives once built."""
        return self.target_dir(package, toolchain) / "release" / encode(package.lib_name, toolchain)

    def build(self, package: LibraryPackage, toolchain: str) -> List[Path]:
        """Build ``package`` with ``toolchain`` unless it is up to date.

        Returns:
            The toolchain-qualified artifact paths.

        Raises:
            BuildError: If cargo fails or produces no library.
        """
        target_dir = self.target_dir(package, toolchain)
        lock = FileLock(
            self.paths.lock_path("build", f"{package_slug(package)}-{toolchain}"),
            stale_after=self.settings.lock_stale_seconds,
            heartbeat_interval=self.settings.heartbeat_seconds,
        )
        with lock:
            current = fingerprint(package.root, toolchain)
            cached = self._up_to_date(target_dir, current)
            if cached is not None:
                LOGGER.debug(f"{package.name} is up to date for {toolchain}")
                return cached

            self._compile(package, toolchain, target_dir)
            artifact = self._install(package, toolchain, target_dir)
            record = {"fingerprint": current, "artifacts": [str(artifact)]}
            (target_dir / BUILD_RECORD_NAME).write_text(json.dumps(record, indent=2), encoding="utf-8")
            return [artifact]

    @staticmethod
    def _up_to_date(target_dir: Path, current: str) -> Optional[List[Path]]:
        try:
            record = json.loads((target_dir / BUILD_RECORD_NAME).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(record, dict) or record.get("fingerprint") != current:
            return None
        artifacts = [Path(p) for p in record.get("artifacts", [])]
        if not artifacts or not all(p.is_file() for p in artifacts):
            return None
        return artifacts

    def _compile(self, package: LibraryPackage, toolchain: str, target_dir: Path) -> None:
        build_env = env.sanitized_environ()
        build_env.pop(env.RUSTFLAGS, None)
        build_env[env.RUSTUP_TOOLCHAIN] = toolchain
        cmd = ["cargo", "build", "--release", "--target-dir", str(target_dir)]

        LOGGER.info(f"Building {package.name} with {toolchain}")
        target_dir.mkdir(parents=True, exist_ok=True)
        try:
            result = self._runner(cmd, cwd=package.root, env=build_env, timeout=BUILD_TIMEOUT)
        except subprocess.TimeoutExpired as e:
            raise BuildError(package.name, toolchain, reason=f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise BuildError(package.name, toolchain, reason=f"could not run cargo: {e}") from e
        if result.returncode != 0:
            output = "\n".join(part for part in (result.stdout, result.stderr) if part)
            raise BuildError(package.name, toolchain, output=output)

    @staticmethod
    def _install(package: LibraryPackage, toolchain: str, target_dir: Path) -> Path:
        release = target_dir / "release"
        built = release / cargo_output_name(package.lib_name)
        if not built.is_file():
            raise BuildError(package.name, toolchain, reason=f"cargo did not produce {built}")
        destination = release / encode(package.lib_name, toolchain)
        shutil.copy2(built, destination)
        return destination
