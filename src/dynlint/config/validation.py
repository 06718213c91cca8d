"""Settings validation for dynlint.

Warns on unknown keys, with a suggestion when the key looks like a typo of
a known one, and on values of the wrong type. Never raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any, Dict, List, Optional, Set, Tuple

from dynlint.core.logging import get_logger

LOGGER = get_logger(__name__)

_NUMBER = (int, float)

# section -> key -> accepted types
SETTINGS_SCHEMA: Dict[str, Dict[str, Tuple[type, ...]]] = {
    "fetch": {
        "retries": (int,),
        "backoff_seconds": _NUMBER,
    },
    "build": {
        "max_workers": (int,),
        "lock_stale_seconds": _NUMBER,
        "heartbeat_seconds": _NUMBER,
    },
    "driver": {
        "crate": (str,),
        "version": (str,),
    },
    "check": {
        "keep_going": (bool,),
        "timeout": _NUMBER + (type(None),),
    },
}

VALID_TOP_LEVEL_KEYS: Set[str] = set(SETTINGS_SCHEMA) | {"version"}


@dataclass
class ConfigValidationWarning:
    """A validation warning for settings."""

    message: str
    source: str
    key: Optional[str] = None
    suggestion: Optional[str] = None


def validate_settings(data: Dict[str, Any], source: str) -> List[ConfigValidationWarning]:
    """Validate a settings dictionary.

    Args:
        data: Settings dictionary to validate.
        source: Source file path for warning messages.

    Returns:
        List of validation warnings (also logged).
    """
    warnings: List[ConfigValidationWarning] = []

    def warn(message: str, key: Optional[str] = None, suggestion: Optional[str] = None) -> None:
        warning = ConfigValidationWarning(message, source, key, suggestion)
        warnings.append(warning)
        _log_warning(warning)

    for key, value in data.items():
        if key not in VALID_TOP_LEVEL_KEYS:
            warn(f"Unknown top-level key '{key}'", key, _suggest_key(key, VALID_TOP_LEVEL_KEYS))
            continue
        if key == "version":
            continue
        if not isinstance(value, dict):
            warn(f"'{key}' must be a mapping, got {type(value).__name__}", key)
            continue

        schema = SETTINGS_SCHEMA[key]
        for sub_key, sub_value in value.items():
            dotted = f"{key}.{sub_key}"
            if sub_key not in schema:
                warn(f"Unknown key '{dotted}'", dotted, _suggest_key(sub_key, set(schema)))
                continue
            expected = schema[sub_key]
            # bool is an int subclass; only accept it where bool is expected
            if isinstance(sub_value, bool) and bool not in expected:
                ok = False
            else:
                ok = isinstance(sub_value, expected)
            if not ok:
                names = " or ".join(t.__name__ for t in expected if t is not type(None))
                warn(f"'{dotted}' must be {names}, got {type(sub_value).__name__}", dotted)
            elif isinstance(sub_value, _NUMBER) and not isinstance(sub_value, bool) and sub_value < 0:
                warn(f"'{dotted}' must not be negative", dotted)

    return warnings


def _suggest_key(invalid_key: str, valid_keys: Set[str]) -> Optional[str]:
    """Suggest a valid key for a potential typo.

    Args:
        invalid_key: The invalid key entered.
        valid_keys: Set of valid keys.

    Returns:
        Closest matching valid key, or None if no good match.
    """
    matches = get_close_matches(invalid_key, sorted(valid_keys), n=1, cutoff=0.6)
    return matches[0] if matches else None


def _log_warning(warning: ConfigValidationWarning) -> None:
    """Log a validation warning."""
    msg = f"{warning.message} in {warning.source}"
    if warning.suggestion:
        msg += f" (did you mean '{warning.suggestion}'?)"
    LOGGER.warning(msg)
