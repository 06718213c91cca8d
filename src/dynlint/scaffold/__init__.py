"""Creating and upgrading lint library packages."""
