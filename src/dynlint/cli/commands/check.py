"""Check command implementation."""

from __future__ import annotations

import json
import os
import sys
from argparse import Namespace
from pathlib import Path
from typing import List, Optional

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.cli.commands import Command
from dynlint.cli.config_bridge import ConfigBridge
from dynlint.cli.exit_codes import EXIT_SUCCESS
from dynlint.config.models import DynlintSettings
from dynlint.core import env
from dynlint.core.errors import UsageError
from dynlint.core.logging import get_logger
from dynlint.core.streaming import CLIStreamHandler
from dynlint.driver.invoker import DriverInvoker, InvocationRequest, invoke_all
from dynlint.driver.provision import DriverProvisioner
from dynlint.resolution import NameResolver, ResolutionContext

LOGGER = get_logger(__name__)


class CheckCommand(Command):
    """Resolves lint libraries and runs them against a package."""

    @property
    def name(self) -> str:
        """Command identifier."""
        return "check"

    def execute(self, args: Namespace, settings: Optional[DynlintSettings] = None) -> int:
        """Execute the check command.

        Args:
            args: Parsed command-line arguments.
            settings: Tool settings.

        Returns:
            EXIT_SUCCESS; failures are raised as DynlintError.
        """
        settings = settings or DynlintSettings()
        selection = ConfigBridge.args_to_selection(args)
        if not selection.has_requests:
            raise UsageError("No libraries selected; name some, or use `--all`")
        if args.workspace and args.packages:
            raise UsageError("`--workspace` cannot be used with `--package`")

        paths = DynlintPaths.default()
        context = ResolutionContext(selection, Path.cwd(), paths, settings)
        resolution = NameResolver(context).resolve()

        by_toolchain = resolution.by_toolchain()
        if not by_toolchain:
            LOGGER.warning("Nothing to do: no libraries were found")
            return EXIT_SUCCESS

        target_dir = context.workspace_root or context.cwd
        if selection.manifest_path is not None:
            target_dir = selection.manifest_path.resolve().parent
        target_root = self._target_root(context.workspace_root or target_dir)
        metadata_json = json.dumps(context.metadata.table) if context.metadata.table else None

        requests = [
            InvocationRequest(
                libraries=libraries,
                toolchain=toolchain,
                target_dir=target_dir,
                target_root=target_root,
                cargo_args=self._cargo_args(args),
                passthrough=list(getattr(args, "passthrough", [])),
                message_format=args.message_format,
                metadata_json=metadata_json,
                no_deps=args.no_deps,
                fix=args.fix,
                timeout=settings.check.timeout,
            )
            for toolchain, libraries in by_toolchain.items()
        ]

        invoker = DriverInvoker(
            DriverProvisioner(paths, settings.driver, settings.build),
            stream_handler=CLIStreamHandler(use_rich=sys.stderr.isatty()),
        )
        invoke_all(invoker, requests, keep_going=settings.check.keep_going)
        return EXIT_SUCCESS

    @staticmethod
    def _target_root(workspace_root: Path) -> Path:
        override = os.environ.get(env.CARGO_TARGET_DIR)
        return Path(override) if override else workspace_root / "target"

    @staticmethod
    def _cargo_args(args: Namespace) -> List[str]:
        cargo_args: List[str] = []
        if args.manifest_path is not None:
            cargo_args += ["--manifest-path", str(args.manifest_path)]
        for spec in args.packages:
            cargo_args += ["--package", spec]
        if args.workspace:
            cargo_args.append("--workspace")
        return cargo_args
