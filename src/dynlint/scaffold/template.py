"""Library package template for ``dynlint new``.

Template text uses ``fill_me_in`` (and its other spellings) as the
placeholder for the new library's name.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List

from dynlint.core.errors import UsageError
from dynlint.core.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CHANNEL = "nightly-2025-01-09"
DEFAULT_CLIPPY_UTILS_REV = "19e305bb57a7595f2a8d81f521c0dd8bf854e739"
DYLINT_LINTING_VERSION = "4.0.0"

_WORD = re.compile(r"[A-Z]+(?=[A-Z][a-z0-9])|[A-Z]?[a-z0-9]+|[A-Z]+")

# Placeholder -> name converter key, in replacement order.
PLACEHOLDERS = (
    ("fill_me_in", "snake"),
    ("FILL_ME_IN", "shouty"),
    ("fill-me-in", "kebab"),
    ("FillMeIn", "camel"),
)

# Files whose text holds str.format fields.
FORMATTED_FILES = frozenset({"Cargo.toml", "rust-toolchain"})

TEMPLATE_FILES: Dict[str, str] = {
    ".cargo/config.toml": """\
[target.'cfg(all())']
rustflags = ["-C", "linker=dylint-link"]

# For Rust versions 1.74.0 and onward, the following alternative can be used
# (see https://github.com/rust-lang/cargo/pull/12535):
# linker = "dylint-link"
""",
    ".gitignore": """\
/target
""",
    "Cargo.toml": """\
[package]
name = "fill-me-in"
version = "0.1.0"
description = "A lint library"
edition = "2021"
publish = false

[lib]
crate-type = ["cdylib"]

[dependencies]
clippy_utils = {{ git = "https://github.com/rust-lang/rust-clippy", rev = "{clippy_utils_rev}" }}
dylint_linting = "{dylint_linting_version}"

[dev-dependencies]
dylint_testing = "{dylint_linting_version}"

[package.metadata.rust-analyzer]
rustc_private = true
""",
    "rust-toolchain": """\
[toolchain]
channel = "{channel}"
components = ["llvm-tools-preview", "rustc-dev"]
""",
    "src/lib.rs": """\
#![feature(rustc_private)]
#![warn(unused_extern_crates)]

extern crate rustc_hir;

use rustc_lint::LateLintPass;

dylint_linting::declare_late_lint! {
    /// ### What it does
    ///
    /// ### Why is this bad?
    ///
    /// ### Known problems
    ///
    /// ### Example
    ///
    /// ```rust
    /// // example code where a warning is issued
    /// ```
    ///
    /// Use instead:
    ///
    /// ```rust
    /// // example code that does not raise a warning
    /// ```
    pub FILL_ME_IN,
    Warn,
    "description goes here"
}

impl<'tcx> LateLintPass<'tcx> for FillMeIn {
    // A list of things you might check can be found here:
    // https://doc.rust-lang.org/stable/nightly-rustc/rustc_lint/trait.LateLintPass.html
}

#[test]
fn ui() {
    dylint_testing::ui_test(env!("CARGO_PKG_NAME"), "ui");
}
""",
    "ui/main.rs": """\
fn main() {}
""",
    "ui/main.stderr": "",
}


def words(name: str) -> List[str]:
    """Split ``name`` into lowercase words at case changes and separators."""
    return [w.lower() for w in _WORD.findall(name)]


def to_snake_case(name: str) -> str:
    return "_".join(words(name))


def to_shouty_snake_case(name: str) -> str:
    return "_".join(words(name)).upper()


def to_kebab_case(name: str) -> str:
    return "-".join(words(name))


def to_upper_camel_case(name: str) -> str:
    return "".join(w.capitalize() for w in words(name))


_CONVERTERS = {
    "snake": to_snake_case,
    "shouty": to_shouty_snake_case,
    "kebab": to_kebab_case,
    "camel": to_upper_camel_case,
}


def fill_in(text: str, name: str) -> str:
    """Replace every whole-word placeholder spelling with ``name``'s spelling."""
    for placeholder, style in PLACEHOLDERS:
        pattern = re.compile(rf"(?<![\w-]){re.escape(placeholder)}(?![\w-])")
        replacement = _CONVERTERS[style](name)
        text = pattern.sub(lambda _m: replacement, text)
    return text


def render(
    name: str,
    channel: str = DEFAULT_CHANNEL,
    clippy_utils_rev: str = DEFAULT_CLIPPY_UTILS_REV,
) -> Dict[str, str]:
    """Relative path -> contents of a new package called ``name``."""
    files = {}
    for rel, text in TEMPLATE_FILES.items():
        if rel in FORMATTED_FILES:
            text = text.format(
                channel=channel,
                clippy_utils_rev=clippy_utils_rev,
                dylint_linting_version=DYLINT_LINTING_VERSION,
            )
        files[rel] = fill_in(text, name)
    return files


def conflicts(path: Path) -> List[str]:
    """Template files that already exist under ``path``, sorted."""
    return sorted(rel for rel in TEMPLATE_FILES if (path / rel).exists())


def new_package(path: Path, force: bool = False, channel: str = DEFAULT_CHANNEL) -> List[Path]:
    """Write a library package template to ``path``.

    The library name is the last component of ``path``.

    Returns:
        The files written.

    Raises:
        UsageError: If the name is unusable, or files would be overwritten
            without ``force``.
    """
    name = path.name
    if not words(name):
        raise UsageError(f"Could not determine library name from {path}")

    files = render(name, channel=channel)
    existing = conflicts(path)
    if existing and not force:
        listing = "".join(f"\n    {rel}" for rel in existing)
        raise UsageError(f"Refusing to overwrite files in {path}:{listing}")

    written = []
    for rel, text in files.items():
        destination = path / rel
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(text, encoding="utf-8")
        written.append(destination)
    LOGGER.info(f"Created library package `{to_kebab_case(name)}` in {path}")
    return written
