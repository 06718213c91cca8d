"""Environment variable names read or written by dynlint."""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

CARGO = "CARGO"
CARGO_TARGET_DIR = "CARGO_TARGET_DIR"
CLIPPY_DISABLE_DOCS_LINKS = "CLIPPY_DISABLE_DOCS_LINKS"
DYNLINT_DRIVER_PATH = "DYNLINT_DRIVER_PATH"
DYNLINT_HOME = "DYNLINT_HOME"
DYNLINT_LIBRARY_PATH = "DYNLINT_LIBRARY_PATH"
DYNLINT_LIBS = "DYNLINT_LIBS"
DYNLINT_METADATA = "DYNLINT_METADATA"
DYNLINT_NO_DEPS = "DYNLINT_NO_DEPS"
DYNLINT_RUSTFLAGS = "DYNLINT_RUSTFLAGS"
DYNLINT_TOML = "DYNLINT_TOML"
RUSTC = "RUSTC"
RUSTC_WORKSPACE_WRAPPER = "RUSTC_WORKSPACE_WRAPPER"
RUSTC_WRAPPER = "RUSTC_WRAPPER"
RUSTFLAGS = "RUSTFLAGS"
RUSTUP_TOOLCHAIN = "RUSTUP_TOOLCHAIN"

# Inherited from an enclosing cargo/rustup process, these would redirect our
# subprocesses to an unrelated compiler.
COMPILER_OVERRIDES = (CARGO, RUSTC, RUSTC_WRAPPER, RUSTUP_TOOLCHAIN)


def sanitized_environ(base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Copy of ``base`` (default ``os.environ``) without compiler overrides."""
    env = dict(os.environ if base is None else base)
    for key in COMPILER_OVERRIDES:
        env.pop(key, None)
    return env
