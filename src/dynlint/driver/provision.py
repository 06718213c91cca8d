"""Compiler driver provisioning.

The driver is the ``RUSTC_WORKSPACE_WRAPPER`` that loads lint libraries. One
is needed per toolchain; missing drivers are installed with ``cargo install``.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Optional

from dynlint.bootstrap.paths import DynlintPaths, safe_component
from dynlint.config.models import BuildSettings, DriverSettings
from dynlint.core import env
from dynlint.core.errors import BuildError
from dynlint.core.logging import get_logger
from dynlint.core.subprocess_runner import run_command
from dynlint.library.lock import FileLock

LOGGER = get_logger(__name__)

DRIVER_NAME = "dynlint-driver"

INSTALL_TIMEOUT = 3600

Runner = Callable[..., subprocess.CompletedProcess]


def driver_filename() -> str:
    return f"{DRIVER_NAME}.exe" if sys.platform == "win32" else DRIVER_NAME


class DriverProvisioner:
    """Locates, and if necessary installs, the driver for a toolchain.

    Args:
        paths: Cache layout.
        driver_settings: Crate and version to install.
        build_settings: Lock tuning.
        runner: Callable with the signature of ``run_command``.
    """

    def __init__(
        self,
        paths: DynlintPaths,
        driver_settings: Optional[DriverSettings] = None,
        build_settings: Optional[BuildSettings] = None,
        runner: Optional[Runner] = None,
    ):
        self.paths = paths
        self.driver_settings = driver_settings or DriverSettings()
        self.build_settings = build_settings or BuildSettings()
        self._runner = runner or run_command

    def install_root(self, toolchain: str) -> Path:
        """``cargo install --root`` directory for ``toolchain``."""
        override = os.environ.get(env.DYNLINT_DRIVER_PATH)
        if override:
            return Path(override) / safe_component(toolchain)
        return self.paths.driver_dir(toolchain)

    def driver_path(self, toolchain: str) -> Path:
        return self.install_root(toolchain) / "bin" / driver_filename()

    def ensure(self, toolchain: str) -> Path:
        """Path of an installed driver for ``toolchain``.

        Raises:
            BuildError: If installation fails.
        """
        driver = self.driver_path(toolchain)
        if driver.is_file():
            return driver

        lock = FileLock(
            self.paths.lock_path("driver", toolchain),
            stale_after=self.build_settings.lock_stale_seconds,
            heartbeat_interval=self.build_settings.heartbeat_seconds,
        )
        with lock:
            # Another process may have installed it while we waited.
            if driver.is_file():
                return driver
            self._install(toolchain)
        if not driver.is_file():
            raise BuildError(
                self.driver_settings.crate, toolchain, reason=f"{driver} missing after install"
            )
        return driver

    def _install(self, toolchain: str) -> None:
        root = self.install_root(toolchain)
        root.mkdir(parents=True, exist_ok=True)
        settings = self.driver_settings
        cmd = [
            "cargo",
            "install",
            "--root",
            str(root),
            settings.crate,
            "--version",
            settings.version,
        ]
        install_env = env.sanitized_environ()
        install_env.pop(env.RUSTFLAGS, None)
        install_env[env.RUSTUP_TOOLCHAIN] = toolchain

        LOGGER.info(f"Installing {settings.crate} {settings.version} for {toolchain}")
        try:
            result = self._runner(cmd, env=install_env, timeout=INSTALL_TIMEOUT)
        except subprocess.TimeoutExpired as e:
            raise BuildError(settings.crate, toolchain, reason=f"timed out after {e.timeout}s") from e
        except OSError as e:
            raise BuildError(settings.crate, toolchain, reason=f"could not run cargo: {e}") from e
        if result.returncode != 0:
            output = "\n".join(part for part in (result.stdout, result.stderr) if part)
            raise BuildError(settings.crate, toolchain, output=output)
