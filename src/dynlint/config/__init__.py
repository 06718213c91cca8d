"""Tool settings loaded from YAML."""

from dynlint.config.loader import ConfigError, load_settings
from dynlint.config.models import DynlintSettings

__all__ = ["ConfigError", "DynlintSettings", "load_settings"]
