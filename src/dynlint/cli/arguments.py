"""Argument parser construction for the dynlint CLI.

This module builds the argument parser with subcommands:
- dynlint check   - Run lint libraries against a package
- dynlint list    - List discoverable lint libraries
- dynlint new     - Create a lint library package
- dynlint upgrade - Move a library package to a newer clippy_utils
- dynlint status  - Show version, toolchain and cache locations

Arguments after a bare ``--`` are not parsed; the runner passes them to
cargo unchanged.
"""

from __future__ import annotations

import argparse
from pathlib import Path


def _add_global_options(parser: argparse.ArgumentParser) -> None:
    """Add global options available to all commands."""
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show dynlint version and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (info-level) logging.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging output to errors only.",
    )


def _add_source_options(parser: argparse.ArgumentParser) -> None:
    """Options naming where libraries come from."""
    group = parser.add_argument_group("library sources")
    group.add_argument(
        "--git",
        metavar="URL",
        help="Git repository containing library packages.",
    )
    group.add_argument("--branch", help="Branch to use with --git.")
    group.add_argument("--tag", help="Tag to use with --git.")
    group.add_argument("--rev", help="Revision to use with --git.")
    group.add_argument(
        "--path",
        metavar="DIR",
        help="Local directory containing library packages.",
    )
    group.add_argument(
        "--pattern",
        action="append",
        dest="patterns",
        default=[],
        metavar="GLOB",
        help="Subdirectories of --git/--path holding packages (repeatable).",
    )
    group.add_argument(
        "--no-build",
        action="store_true",
        help="Do not build workspace metadata libraries.",
    )
    group.add_argument(
        "--no-metadata",
        action="store_true",
        help="Ignore workspace metadata.",
    )
    group.add_argument(
        "--manifest-path",
        type=Path,
        metavar="PATH",
        help="Path to Cargo.toml of the workspace to use.",
    )


def _add_selection_options(parser: argparse.ArgumentParser) -> None:
    """Options naming which libraries to load."""
    group = parser.add_argument_group("library selection")
    group.add_argument(
        "names",
        nargs="*",
        metavar="NAME",
        help="Libraries to load: a library name, or a path to a built library.",
    )
    group.add_argument(
        "--lib",
        action="append",
        dest="libs",
        default=[],
        metavar="NAME",
        help="Library to load by name (repeatable).",
    )
    group.add_argument(
        "--lib-path",
        action="append",
        dest="lib_paths",
        default=[],
        metavar="PATH",
        help="Library to load by path (repeatable).",
    )
    group.add_argument(
        "--all",
        action="store_true",
        help="Load every discoverable library.",
    )


def _build_check_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'check' subcommand parser."""
    check_parser = subparsers.add_parser(
        "check",
        help="Run lint libraries against a package.",
        description=(
            "Resolve and build the selected lint libraries, then check the "
            "package with them. Arguments after -- are passed to cargo."
        ),
    )
    _add_selection_options(check_parser)
    _add_source_options(check_parser)

    target_group = check_parser.add_argument_group("target")
    target_group.add_argument(
        "--package", "-p",
        action="append",
        dest="packages",
        default=[],
        metavar="SPEC",
        help="Package to check (repeatable).",
    )
    target_group.add_argument(
        "--workspace",
        action="store_true",
        help="Check all packages in the workspace.",
    )
    target_group.add_argument(
        "--no-deps",
        action="store_true",
        help="Lint only the selected packages, not their dependencies.",
    )

    run_group = check_parser.add_argument_group("execution")
    run_group.add_argument(
        "--fix",
        action="store_true",
        help="Apply suggested fixes, then verify the result still builds.",
    )
    failure = run_group.add_mutually_exclusive_group()
    failure.add_argument(
        "--keep-going",
        action="store_true",
        default=None,
        help="Continue with other toolchains after one fails.",
    )
    failure.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop at the first fetch, build or check failure.",
    )
    run_group.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Kill the driver after this many seconds.",
    )
    run_group.add_argument(
        "--message-format",
        metavar="FMT",
        help="Cargo message format; json output is passed through unchanged.",
    )


def _build_list_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'list' subcommand parser."""
    list_parser = subparsers.add_parser(
        "list",
        help="List discoverable lint libraries.",
        description="Show each library's name, toolchain and location.",
    )
    _add_source_options(list_parser)


def _build_new_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'new' subcommand parser."""
    new_parser = subparsers.add_parser(
        "new",
        help="Create a lint library package.",
        description="Write a library package template; the directory name is the library name.",
    )
    new_parser.add_argument("path", type=Path, help="Directory of the new package.")
    new_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing files.",
    )


def _build_upgrade_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'upgrade' subcommand parser."""
    upgrade_parser = subparsers.add_parser(
        "upgrade",
        help="Upgrade a library package's clippy_utils and toolchain.",
    )
    upgrade_parser.add_argument("path", type=Path, help="Library package directory.")
    upgrade_parser.add_argument(
        "--rev",
        required=True,
        help="clippy_utils git revision to pin.",
    )
    upgrade_parser.add_argument(
        "--channel",
        help="Toolchain channel to pin, e.g. nightly-2025-01-09.",
    )
    upgrade_parser.add_argument(
        "--allow-downgrade",
        action="store_true",
        help="Allow pinning an older nightly than the current one.",
    )


def _build_status_parser(subparsers: argparse._SubParsersAction) -> None:
    """Build the 'status' subcommand parser."""
    subparsers.add_parser(
        "status",
        help="Show version, toolchain and cache locations.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser for the dynlint CLI.

    Returns:
        Configured ArgumentParser instance with subcommands.
    """
    parser = argparse.ArgumentParser(
        prog="dynlint",
        description="dynlint - build and run dynamically loaded lint libraries.",
        epilog=(
            "Examples:\n"
            "  dynlint check --all                      # Run every workspace library\n"
            "  dynlint check question_mark              # Run one library by name\n"
            "  dynlint check --git URL --pattern 'examples/*' --all\n"
            "  dynlint check --all -- --all-targets     # Pass arguments to cargo\n"
            "  dynlint list                             # Show known libraries\n"
            "  dynlint new lints/my_lint                # Create a library package\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    _add_global_options(parser)

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands:",
        metavar="COMMAND",
    )

    _build_check_parser(subparsers)
    _build_list_parser(subparsers)
    _build_new_parser(subparsers)
    _build_upgrade_parser(subparsers)
    _build_status_parser(subparsers)

    return parser
