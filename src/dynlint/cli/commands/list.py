"""List command implementation."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path
from typing import List, Optional

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.cli.commands import Command
from dynlint.cli.config_bridge import ConfigBridge
from dynlint.cli.exit_codes import EXIT_SUCCESS
from dynlint.config.models import DynlintSettings
from dynlint.resolution import NameResolver, ResolutionContext
from dynlint.resolution.resolver import ListedLibrary

UNBUILT = "<unbuilt>"


def format_rows(libraries: List[ListedLibrary]) -> List[str]:
    """Name, toolchain and location columns, left-aligned."""
    rows = [
        (lib.name, lib.toolchain, str(lib.path.parent) if lib.built else UNBUILT)
        for lib in libraries
    ]
    if not rows:
        return []
    name_width = max(len(r[0]) for r in rows)
    toolchain_width = max(len(r[1]) for r in rows)
    return [
        f"{name:<{name_width}}  {toolchain:<{toolchain_width}}  {location}".rstrip()
        for name, toolchain, location in rows
    ]


class ListCommand(Command):
    """Lists every discoverable lint library."""

    @property
    def name(self) -> str:
        """Command identifier."""
        return "list"

    def execute(self, args: Namespace, settings: Optional[DynlintSettings] = None) -> int:
        context = ResolutionContext(
            ConfigBridge.args_to_selection(args),
            Path.cwd(),
            DynlintPaths.default(),
            settings or DynlintSettings(),
        )
        context.selection.validate()
        libraries = NameResolver(context).list_libraries()
        if not libraries:
            print("No libraries found.")
        for line in format_rows(libraries):
            print(line)
        return EXIT_SUCCESS
