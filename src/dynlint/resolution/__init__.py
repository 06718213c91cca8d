"""Mapping requested library names to built artifacts."""

from dynlint.resolution.context import LibrarySelection, ResolutionContext
from dynlint.resolution.resolver import NameResolver, Resolution

__all__ = ["LibrarySelection", "NameResolver", "Resolution", "ResolutionContext"]
