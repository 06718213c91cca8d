"""Settings file loading and merging.

Handles loading settings from YAML files with:
- Project-level settings (.dynlint.yml)
- Global settings ($DYNLINT_HOME/config/config.yml)
- Environment variable expansion (${VAR})
- Merging with proper precedence
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dynlint.bootstrap.paths import DynlintPaths
from dynlint.config.models import (
    BuildSettings,
    CheckSettings,
    DriverSettings,
    DynlintSettings,
    FetchSettings,
)
from dynlint.config.validation import SETTINGS_SCHEMA, validate_settings
from dynlint.core.errors import ConfigurationError
from dynlint.core.logging import get_logger

LOGGER = get_logger(__name__)

PROJECT_CONFIG_NAMES = [".dynlint.yml", ".dynlint.yaml"]
GLOBAL_CONFIG_NAME = "config.yml"

# Environment variable pattern: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(ConfigurationError):
    """Settings file loading or parsing error."""

    pass


def load_settings(
    project_root: Path,
    overrides: Optional[Dict[str, Any]] = None,
) -> DynlintSettings:
    """Load settings with proper precedence.

    Precedence (highest to lowest):
    1. CLI flags (overrides)
    2. Project settings (.dynlint.yml) in the project root or an ancestor
    3. Global settings ($DYNLINT_HOME/config/config.yml)
    4. Built-in defaults

    Args:
        project_root: Directory to start searching for project settings.
        overrides: Nested dict of CLI overrides.

    Returns:
        Merged DynlintSettings instance.

    Raises:
        ConfigError: If a settings file has YAML errors or is not a mapping.
    """
    merged: Dict[str, Any] = {}
    sources = []

    for path in (find_global_config(), find_project_config(project_root)):
        if path is None:
            continue
        data = load_yaml_file(path)
        validate_settings(data, source=str(path))
        merged = merge_configs(merged, data)
        sources.append(str(path))
        LOGGER.debug(f"Loaded settings from {path}")

    if overrides:
        merged = merge_configs(merged, overrides)

    settings = dict_to_settings(merged)
    settings.sources = sources
    return settings


def find_project_config(project_root: Path) -> Optional[Path]:
    """Find the nearest project settings file.

    Args:
        project_root: Directory to start searching in.

    Returns:
        Path to settings file if found, None otherwise.
    """
    start = project_root.resolve()
    for directory in (start, *start.parents):
        for name in PROJECT_CONFIG_NAMES:
            config_path = directory / name
            if config_path.is_file():
                return config_path
    return None


def find_global_config() -> Optional[Path]:
    """Find global settings at $DYNLINT_HOME/config/config.yml.

    Returns:
        Path to global settings if it exists, None otherwise.
    """
    config_path = DynlintPaths.default().config_dir / GLOBAL_CONFIG_NAME
    if config_path.is_file():
        return config_path
    return None


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML settings file.

    Performs environment variable expansion on string values.

    Raises:
        ConfigError: If the YAML cannot be read, parsed, or is not a mapping.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read settings: {e}", source=str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}", source=str(path)) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(
            f"Settings file must be a YAML mapping, got {type(data).__name__}",
            source=str(path),
        )

    return expand_env_vars(data)


def expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in setting values.

    Supports ${VAR} and ${VAR:-default} syntax.
    """
    if isinstance(data, dict):
        return {k: expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        return ENV_VAR_PATTERN.sub(_env_var_replacer, data)
    else:
        return data


def _env_var_replacer(match: re.Match) -> str:
    """Replace environment variable reference with its value."""
    var_name = match.group(1)
    default_value = match.group(2)

    value = os.environ.get(var_name)
    if value is not None:
        return value
    if default_value is not None:
        return default_value

    LOGGER.warning(f"Environment variable ${var_name} is not set and has no default")
    return ""


def merge_configs(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two settings dicts, with overlay taking precedence.

    Scalars and lists in overlay replace those in base; dicts merge
    recursively.
    """
    result = base.copy()

    for key, overlay_value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(overlay_value, dict):
            result[key] = merge_configs(result[key], overlay_value)
        else:
            result[key] = overlay_value

    return result


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Known, well-typed keys of one section; others were already warned about."""
    section = data.get(name)
    if not isinstance(section, dict):
        return {}
    schema = SETTINGS_SCHEMA[name]
    result = {}
    for key, value in section.items():
        expected = schema.get(key)
        if expected is None:
            continue
        if isinstance(value, bool) and bool not in expected:
            continue
        if isinstance(value, expected):
            result[key] = value
    return result


def dict_to_settings(data: Dict[str, Any]) -> DynlintSettings:
    """Convert a merged settings dict to typed DynlintSettings."""
    return DynlintSettings(
        fetch=FetchSettings(**_section(data, "fetch")),
        build=BuildSettings(**_section(data, "build")),
        driver=DriverSettings(**_section(data, "driver")),
        check=CheckSettings(**_section(data, "check")),
    )
