"""Lint library discovery, fetching and building."""
