"""Tests for the status command."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from dynlint.cli.arguments import build_parser
from dynlint.cli.commands.status import StatusCommand
from dynlint.config.models import DynlintSettings


class TestStatusCommand:
    """Tests for StatusCommand."""

    def _run(self, capsys, settings=None) -> str:
        with patch(
            "dynlint.cli.commands.status.ToolchainResolver.resolve",
            return_value="stable-x86_64-unknown-linux-gnu",
        ):
            code = StatusCommand(version="9.9.9").execute(
                build_parser().parse_args(["status"]), settings
            )
        assert code == 0
        return capsys.readouterr().out

    def test_reports_basics(self, capsys, isolated_env: Path) -> None:
        out = self._run(capsys)
        assert "dynlint version: 9.9.9" in out
        assert "Toolchain: stable-x86_64-unknown-linux-gnu" in out
        assert f"Cache: {isolated_env}" in out
        assert "[not installed]" in out
        assert "(not set)" in out

    def test_reports_library_path(self, capsys, tmp_path: Path, library_path) -> None:
        library_path(tmp_path)
        assert f"  {tmp_path}" in self._run(capsys)

    def test_reports_invalid_library_path(self, capsys, monkeypatch) -> None:
        monkeypatch.setenv("DYNLINT_LIBRARY_PATH", "relative")
        assert "invalid:" in self._run(capsys)

    def test_reports_settings_sources(self, capsys) -> None:
        settings = DynlintSettings(sources=["/etc/dynlint.yml"])
        assert "/etc/dynlint.yml" in self._run(capsys, settings)
