"""Tests for host platform detection."""

from __future__ import annotations

from unittest.mock import patch

from dynlint.toolchain.platform import (
    PlatformInfo,
    dll_affixes,
    get_platform_info,
    host_triple,
    normalize_arch,
)


class TestNormalizeArch:
    """Tests for normalize_arch."""

    def test_known_aliases(self) -> None:
        assert normalize_arch("AMD64") == "x86_64"
        assert normalize_arch("arm64") == "aarch64"
        assert normalize_arch("i386") == "i686"

    def test_unknown_returns_none(self) -> None:
        assert normalize_arch("sparc") is None


class TestPlatformInfo:
    """Tests for PlatformInfo and host detection."""

    def test_target_triples(self) -> None:
        assert PlatformInfo("linux", "x86_64").target_triple == "x86_64-unknown-linux-gnu"
        assert PlatformInfo("darwin", "aarch64").target_triple == "aarch64-apple-darwin"
        assert PlatformInfo("windows", "x86_64").target_triple == "x86_64-pc-windows-msvc"

    def test_host_detection(self) -> None:
        with patch("platform.system", return_value="Darwin"), patch(
            "platform.machine", return_value="arm64"
        ):
            assert get_platform_info() == PlatformInfo("darwin", "aarch64")
            assert host_triple() == "aarch64-apple-darwin"

    def test_unrecognised_machine_kept(self) -> None:
        with patch("platform.system", return_value="Linux"), patch(
            "platform.machine", return_value="RISCV64"
        ):
            assert get_platform_info().arch == "riscv64"


class TestDllAffixes:
    """Tests for dll_affixes."""

    def test_known_systems(self) -> None:
        assert dll_affixes("linux") == ("lib", ".so")
        assert dll_affixes("darwin") == ("lib", ".dylib")
        assert dll_affixes("windows") == ("", ".dll")

    def test_unknown_system_is_linux_like(self) -> None:
        assert dll_affixes("freebsd") == ("lib", ".so")
