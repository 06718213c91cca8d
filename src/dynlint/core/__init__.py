"""Core primitives shared by the dynlint engine."""
