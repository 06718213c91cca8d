"""CLI runner orchestration.

This module handles command dispatch and execution for the dynlint CLI.
"""

from __future__ import annotations

import sys
import traceback
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from dynlint.cli.arguments import build_parser
from dynlint.cli.config_bridge import ConfigBridge
from dynlint.cli.commands import Command
from dynlint.cli.commands.check import CheckCommand
from dynlint.cli.commands.list import ListCommand
from dynlint.cli.commands.new import NewCommand
from dynlint.cli.commands.status import StatusCommand
from dynlint.cli.commands.upgrade import UpgradeCommand
from dynlint.cli.exit_codes import (
    EXIT_CRASH,
    EXIT_INVALID_USAGE,
    EXIT_SUCCESS,
    exit_code_for,
)
from dynlint.config import load_settings
from dynlint.core.errors import DynlintError
from dynlint.core.logging import configure_logging, get_logger

LOGGER = get_logger(__name__)

# Commands that read tool settings before running.
_NEEDS_SETTINGS = frozenset({"check", "list", "status"})


def get_version() -> str:
    """Get dynlint version.

    Returns:
        Version string from package metadata or fallback.
    """
    try:
        return version("dynlint")
    except PackageNotFoundError:
        # Fallback for editable installs that have not yet built metadata.
        from dynlint import __version__
        return __version__


def split_passthrough(argv: List[str]) -> Tuple[List[str], List[str]]:
    """Split ``argv`` at the first bare ``--``."""
    if "--" in argv:
        index = argv.index("--")
        return argv[:index], argv[index + 1:]
    return argv, []


class CLIRunner:
    """Orchestrates CLI execution with subcommand dispatch."""

    def __init__(self) -> None:
        """Initialize CLIRunner with parser and commands."""
        self.parser = build_parser()
        self._version = get_version()
        commands: List[Command] = [
            CheckCommand(),
            ListCommand(),
            NewCommand(),
            UpgradeCommand(),
            StatusCommand(version=self._version),
        ]
        self.commands: Dict[str, Command] = {cmd.name: cmd for cmd in commands}

    def run(self, argv: Optional[Iterable[str]] = None) -> int:
        """Run the CLI.

        Args:
            argv: Command-line arguments (defaults to sys.argv).

        Returns:
            Exit code.
        """
        argv_list = sys.argv[1:] if argv is None else list(argv)
        own_args, passthrough = split_passthrough(argv_list)

        try:
            args = self.parser.parse_args(own_args)
        except SystemExit as e:
            # argparse exits on --help (0) and on bad usage (2).
            return EXIT_SUCCESS if e.code in (0, None) else EXIT_INVALID_USAGE
        args.passthrough = passthrough

        # Configure logging as early as possible
        configure_logging(
            debug=args.debug,
            verbose=args.verbose,
            quiet=args.quiet,
        )

        if args.version:
            print(self._version)
            return EXIT_SUCCESS

        command = self.commands.get(getattr(args, "command", None) or "")
        if command is None:
            # No command specified - show help
            self.parser.print_help()
            return EXIT_SUCCESS

        try:
            settings = None
            if command.name in _NEEDS_SETTINGS:
                manifest_path = getattr(args, "manifest_path", None)
                settings = load_settings(
                    manifest_path.parent if manifest_path else Path.cwd(),
                    overrides=ConfigBridge.args_to_overrides(args),
                )
            return command.execute(args, settings)
        except DynlintError as e:
            LOGGER.error(str(e))
            return exit_code_for(e)
        except Exception as e:
            if args.debug:
                traceback.print_exc()
            LOGGER.error(f"{command.name} failed: {e}")
            return EXIT_CRASH
