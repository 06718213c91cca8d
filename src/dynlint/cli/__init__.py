"""Command-line interface for dynlint."""

from __future__ import annotations

from typing import Iterable, Optional

from dynlint.cli.runner import CLIRunner


def main(argv: Optional[Iterable[str]] = None) -> int:
    """CLI entry point."""
    runner = CLIRunner()
    return runner.run(argv)


__all__ = ["CLIRunner", "main"]
