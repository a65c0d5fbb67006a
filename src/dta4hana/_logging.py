"""Shared structured logging helper.

Dispatcher, retry controller and client call log_structured() instead of
building log lines by hand. Format and sanitization live here.
"""

import logging
from typing import Any

from dta4hana.exceptions import Dta4HanaConfigError

_CONTROL_CHARS = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t"})

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _sanitize(value: Any) -> str:
    """Escape control characters so a server message cannot forge log lines."""
    return str(value).translate(_CONTROL_CHARS)


def validate_log_level(level_name: str) -> int:
    """Convert a configured level name to a logging constant.

    Raises:
        Dta4HanaConfigError: If the name is not a standard Python level.
    """
    normalized = level_name.upper()
    if normalized not in _VALID_LOG_LEVELS:
        raise Dta4HanaConfigError(
            f"Invalid log_level '{level_name}'. "
            f"Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    return getattr(logging, normalized)


def log_structured(
    logger: logging.Logger,
    level: int,
    label: str,
    **fields: Any,
) -> None:
    """Emit ``label | key=value ...``.

    None values are omitted, floats get three decimals and string values
    are sanitized against log injection.
    """
    if not logger.isEnabledFor(level):
        return

    parts = []
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            parts.append(f"{key}={_sanitize(value)}")
        elif isinstance(value, float):
            parts.append(f"{key}={value:.3f}")
        else:
            parts.append(f"{key}={value}")

    logger.log(level, "%s | %s", label, " ".join(parts))
