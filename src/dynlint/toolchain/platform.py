"""Host platform detection.

Maps the running interpreter's OS and CPU onto a compiler target triple and
the platform's dynamic library filename affixes.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass
from typing import Optional, Tuple

# Architecture normalization map
_ARCH_MAP = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "i386": "i686",
    "i686": "i686",
}

_OS_SUFFIX = {
    "linux": "unknown-linux-gnu",
    "darwin": "apple-darwin",
    "windows": "pc-windows-msvc",
}

# (prefix, suffix) of dynamic library file names
_DLL_AFFIXES = {
    "linux": ("lib", ".so"),
    "darwin": ("lib", ".dylib"),
    "windows": ("", ".dll"),
}


def normalize_arch(machine: str) -> Optional[str]:
    """Normalize architecture string to its target-triple form.

    Args:
        machine: Raw architecture string from platform.machine()

    Returns:
        Normalized architecture string or None if unknown.
    """
    return _ARCH_MAP.get(machine.lower())


def detect_os() -> str:
    """Lowercase name of the running OS (darwin, linux, windows, ...)."""
    return platform.system().lower()


def dll_affixes(os_name: Optional[str] = None) -> Tuple[str, str]:
    """Dynamic library (prefix, suffix) for ``os_name`` (default: host).

    Unknown systems are treated like Linux.
    """
    return _DLL_AFFIXES.get(os_name or detect_os(), _DLL_AFFIXES["linux"])


@dataclass(frozen=True)
class PlatformInfo:
    """Information about the current platform.

    Attributes:
        os: Operating system (darwin, linux, windows).
        arch: CPU architecture in target-triple form (x86_64, aarch64).
    """

    os: str
    arch: str

    @property
    def target_triple(self) -> str:
        """Return the compiler target triple for this platform.

        Example: "x86_64-unknown-linux-gnu", "aarch64-apple-darwin"
        """
        suffix = _OS_SUFFIX.get(self.os, f"unknown-{self.os}")
        return f"{self.arch}-{suffix}"


def get_platform_info() -> PlatformInfo:
    """Detect and return current platform information.

    Never fails: an unrecognised machine keeps its raw name.
    """
    machine = platform.machine()
    return PlatformInfo(os=detect_os(), arch=normalize_arch(machine) or machine.lower())


def host_triple() -> str:
    """Target triple of the host."""
    return get_platform_info().target_triple
