"""New command implementation."""

from __future__ import annotations

import sys
from argparse import Namespace
from typing import Optional

import questionary
from questionary import Style

from dynlint.cli.commands import Command
from dynlint.cli.exit_codes import EXIT_SUCCESS
from dynlint.config.models import DynlintSettings
from dynlint.core.logging import get_logger
from dynlint.scaffold.template import conflicts, new_package

LOGGER = get_logger(__name__)

STYLE = Style([
    ("qmark", "fg:cyan bold"),
    ("question", "bold"),
    ("answer", "fg:cyan"),
])


class NewCommand(Command):
    """Creates a lint library package from the built-in template."""

    @property
    def name(self) -> str:
        """Command identifier."""
        return "new"

    def execute(self, args: Namespace, settings: Optional[DynlintSettings] = None) -> int:
        """Execute the new command.

        Existing files are only overwritten with ``--force`` or after the
        user confirms interactively.
        """
        path = args.path.resolve()
        force = args.force

        existing = conflicts(path)
        if existing and not force and sys.stdin.isatty():
            force = bool(
                questionary.confirm(
                    f"{len(existing)} template files already exist in {path}. Overwrite?",
                    default=False,
                    style=STYLE,
                ).ask()
            )
            if not force:
                print("Aborted.")
                return EXIT_SUCCESS

        written = new_package(path, force=force)
        print(f"Created {path} ({len(written)} files)")
        return EXIT_SUCCESS
