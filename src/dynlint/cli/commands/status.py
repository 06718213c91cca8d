"""Status command implementation."""

from __future__ import annotations

import os
from argparse import Namespace
from pathlib import Path
from typing import Optional

from dynlint.bootstrap.paths import DynlintPaths, get_dynlint_home
from dynlint.cli.commands import Command
from dynlint.cli.exit_codes import EXIT_SUCCESS
from dynlint.config.models import DynlintSettings
from dynlint.core import env
from dynlint.core.errors import ConfigurationError
from dynlint.driver.provision import DriverProvisioner
from dynlint.library.scanner import library_path_dirs
from dynlint.toolchain.platform import host_triple
from dynlint.toolchain.resolver import ToolchainResolver


class StatusCommand(Command):
    """Shows version, toolchain and cache information."""

    def __init__(self, version: str):
        """Initialize StatusCommand.

        Args:
            version: Current dynlint version string.
        """
        self._version = version

    @property
    def name(self) -> str:
        """Command identifier."""
        return "status"

    def execute(self, args: Namespace, settings: Optional[DynlintSettings] = None) -> int:
        """Execute the status command.

        Returns:
            Exit code (always 0 for status).
        """
        settings = settings or DynlintSettings()
        home = get_dynlint_home()
        paths = DynlintPaths(home)
        toolchain = ToolchainResolver().resolve(Path.cwd())

        print(f"dynlint version: {self._version}")
        print(f"Host: {host_triple()}")
        print(f"Toolchain: {toolchain}")
        print(f"Cache: {home}")
        print(f"  sources:   {paths.git_dir}")
        print(f"  libraries: {paths.libraries_dir}")
        print(f"  drivers:   {paths.drivers_dir}")
        print()

        driver = DriverProvisioner(paths, settings.driver).driver_path(toolchain)
        state = "installed" if driver.is_file() else "not installed"
        print(f"Driver ({settings.driver.crate} {settings.driver.version}): {driver} [{state}]")

        print(f"{env.DYNLINT_LIBRARY_PATH}:")
        try:
            dirs = library_path_dirs()
        except ConfigurationError as e:
            print(f"  invalid: {e}")
        else:
            for directory in dirs:
                print(f"  {directory}")
            if not dirs:
                print("  (not set)")

        if settings.sources:
            print("Settings files:")
            for source in settings.sources:
                print(f"  {source}")

        rustflags = os.environ.get(env.DYNLINT_RUSTFLAGS)
        if rustflags:
            print(f"{env.DYNLINT_RUSTFLAGS}: {rustflags}")
        return EXIT_SUCCESS
