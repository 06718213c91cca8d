"""Tests for the new command."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from dynlint.cli.arguments import build_parser
from dynlint.cli.commands.new import NewCommand
from dynlint.core.errors import UsageError


def _args(path: Path, *extra: str):
    return build_parser().parse_args(["new", str(path), *extra])


@pytest.fixture
def existing(tmp_path: Path) -> Path:
    target = tmp_path / "my_lint"
    target.mkdir()
    (target / "Cargo.toml").write_text("[package]\n")
    return target


class TestNewCommand:
    """Tests for NewCommand."""

    def test_creates_package(self, tmp_path: Path, capsys) -> None:
        assert NewCommand().execute(_args(tmp_path / "my_lint")) == 0
        assert (tmp_path / "my_lint" / "src" / "lib.rs").is_file()
        assert "Created" in capsys.readouterr().out

    def test_non_interactive_refuses(self, existing: Path) -> None:
        with patch("dynlint.cli.commands.new.sys.stdin") as stdin:
            stdin.isatty.return_value = False
            with pytest.raises(UsageError):
                NewCommand().execute(_args(existing))

    def test_force(self, existing: Path) -> None:
        NewCommand().execute(_args(existing, "--force"))
        assert 'name = "my-lint"' in (existing / "Cargo.toml").read_text()

    def test_interactive_decline(self, existing: Path, capsys) -> None:
        prompt = MagicMock()
        prompt.ask.return_value = False
        with patch("dynlint.cli.commands.new.sys.stdin") as stdin, patch(
            "dynlint.cli.commands.new.questionary.confirm", return_value=prompt
        ):
            stdin.isatty.return_value = True
            assert NewCommand().execute(_args(existing)) == 0

        assert "Aborted." in capsys.readouterr().out
        assert (existing / "Cargo.toml").read_text() == "[package]\n"

    def test_interactive_accept(self, existing: Path) -> None:
        prompt = MagicMock()
        prompt.ask.return_value = True
        with patch("dynlint.cli.commands.new.sys.stdin") as stdin, patch(
            "dynlint.cli.commands.new.questionary.confirm", return_value=prompt
        ) as confirm:
            stdin.isatty.return_value = True
            assert NewCommand().execute(_args(existing)) == 0

        assert "1 template files already exist" in confirm.call_args[0][0]
        assert 'name = "my-lint"' in (existing / "Cargo.toml").read_text()
