"""Upgrade command implementation."""

from __future__ import annotations

from argparse import Namespace
from typing import Optional

from dynlint.cli.commands import Command
from dynlint.cli.exit_codes import EXIT_SUCCESS
from dynlint.config.models import DynlintSettings
from dynlint.scaffold.upgrade import upgrade_package


class UpgradeCommand(Command):
    """Repins a library package's clippy_utils revision and toolchain."""

    @property
    def name(self) -> str:
        """Command identifier."""
        return "upgrade"

    def execute(self, args: Namespace, settings: Optional[DynlintSettings] = None) -> int:
        plan = upgrade_package(
            args.path,
            rev=args.rev,
            channel=args.channel,
            allow_downgrade=args.allow_downgrade,
        )
        if plan.old_channel != plan.new_channel:
            print(f"Toolchain: {plan.old_channel} -> {plan.new_channel}")
        print(f"clippy_utils: {plan.rev}")
        return EXIT_SUCCESS
