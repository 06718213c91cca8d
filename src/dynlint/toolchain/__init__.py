"""Toolchain identifiers and toolchain-qualified artifact names."""

from dynlint.toolchain.naming import decode, encode
from dynlint.toolchain.resolver import ToolchainResolver

__all__ = ["ToolchainResolver", "decode", "encode"]
