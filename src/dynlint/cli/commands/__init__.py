"""CLI commands package.

This module provides the base Command class that every command implements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from argparse import Namespace
from typing import Optional

from dynlint.config.models import DynlintSettings


class Command(ABC):
    """Base class for CLI commands.

    All CLI commands should inherit from this class and implement
    the execute method.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Command identifier.

        Returns:
            String name of the command.
        """

    @abstractmethod
    def execute(self, args: Namespace, settings: Optional[DynlintSettings] = None) -> int:
        """Execute the command.

        Args:
            args: Parsed command-line arguments.
            settings: Tool settings, for commands that use them.

        Returns:
            Exit code (0 for success, non-zero for error).

        Raises:
            DynlintError: Mapped to an exit code by the runner.
        """


__all__ = ["Command"]
