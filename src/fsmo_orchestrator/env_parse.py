"""Environment variable parsing for orchestrator settings.

Every ``FSMO_*`` setting goes through these helpers so that 0/1,
true/false, yes/no, on/off and numeric bounds behave the same for every
variable, whether the timer unit sets them or an operator does by hand.

Rules:
- Unset / empty / whitespace -> default value.
- strict=True (default): unparseable values raise ``ConfigError``.
- strict=False: unparseable values log a warning and return the default.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)

TRUTHY: frozenset[str] = frozenset({"1", "true", "yes", "on"})
FALSEY: frozenset[str] = frozenset({"0", "false", "no", "off", ""})


class ConfigError(Exception):
    """Raised when an environment variable has an invalid value (strict mode)."""


def parse_bool(
    name: str,
    default: bool = False,
    *,
    strict: bool = True,
) -> bool:
    """Parse a boolean environment variable.

    Truthy: ``1 true yes on``; falsey: ``0 false no off ""``
    (case-insensitive, stripped).
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in TRUTHY:
        return True
    if v in FALSEY:
        return False
    if strict:
        raise ConfigError(f"invalid boolean value for {name}: {raw!r}")
    logger.warning("Invalid boolean value for %s: %r, using default %s", name, raw, default)
    return default


def parse_int(
    name: str,
    default: int | None = None,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
    strict: bool = True,
) -> int | None:
    """Parse an integer environment variable with optional inclusive bounds."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        result = int(raw.strip())
    except ValueError:
        if strict:
            raise ConfigError(f"invalid integer value for {name}: {raw!r}") from None
        logger.warning("Invalid integer value for %s: %r, using default %s", name, raw, default)
        return default
    return int(_check_bounds(name, result, min_value, max_value, strict=strict))


def parse_float(
    name: str,
    default: float | None = None,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
    strict: bool = True,
) -> float | None:
    """Parse a float environment variable (seconds, mostly)."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        result = float(raw.strip())
    except ValueError:
        if strict:
            raise ConfigError(f"invalid number value for {name}: {raw!r}") from None
        logger.warning("Invalid number value for %s: %r, using default %s", name, raw, default)
        return default
    return _check_bounds(name, result, min_value, max_value, strict=strict)


def parse_str(name: str, default: str | None = None) -> str | None:
    """Parse a string environment variable; blank counts as unset."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip()
    return v if v else default


def parse_csv(name: str) -> list[str]:
    """Parse a comma-separated environment variable.

    Trims each element and drops empties. Unset or blank -> ``[]``.
    """
    raw = os.environ.get(name)
    if raw is None:
        return []
    return [item for item in (s.strip() for s in raw.split(",")) if item]


def _check_bounds(
    name: str,
    value: float,
    min_value: float | None,
    max_value: float | None,
    *,
    strict: bool,
) -> float:
    if min_value is not None and value < min_value:
        if strict:
            raise ConfigError(f"{name}={value} is below minimum {min_value}")
        logger.warning("%s=%s is below minimum %s, clamping", name, value, min_value)
        return min_value
    if max_value is not None and value > max_value:
        if strict:
            raise ConfigError(f"{name}={value} is above maximum {max_value}")
        logger.warning("%s=%s is above maximum %s, clamping", name, value, max_value)
        return max_value
    return value
