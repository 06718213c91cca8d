"""Bridge between CLI arguments and settings/selection objects."""

from __future__ import annotations

import argparse
from typing import Any, Dict

from dynlint.resolution.context import LibrarySelection


class ConfigBridge:
    """Translates CLI arguments to settings overrides and library selections."""

    @staticmethod
    def args_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
        """Convert CLI arguments to a settings override dict.

        Only options given explicitly on the command line are included, so
        settings files keep their values otherwise.
        """
        check: Dict[str, Any] = {}

        if getattr(args, "keep_going", None):
            check["keep_going"] = True
        if getattr(args, "fail_fast", False):
            check["keep_going"] = False
        timeout = getattr(args, "timeout", None)
        if timeout is not None:
            check["timeout"] = timeout

        return {"check": check} if check else {}

    @staticmethod
    def args_to_selection(args: argparse.Namespace) -> LibrarySelection:
        """Library selection described by ``args``.

        Commands without selection options (``list``) get an empty selection
        with only the source options filled in.
        """
        return LibrarySelection(
            libs=list(getattr(args, "libs", None) or []),
            lib_paths=list(getattr(args, "lib_paths", None) or []),
            names=list(getattr(args, "names", None) or []),
            all=bool(getattr(args, "all", False)),
            git=getattr(args, "git", None),
            branch=getattr(args, "branch", None),
            tag=getattr(args, "tag", None),
            rev=getattr(args, "rev", None),
            path=getattr(args, "path", None),
            patterns=list(getattr(args, "patterns", None) or []),
            no_build=bool(getattr(args, "no_build", False)),
            no_metadata=bool(getattr(args, "no_metadata", False)),
            fail_fast=bool(getattr(args, "fail_fast", False)),
            manifest_path=getattr(args, "manifest_path", None),
        )
