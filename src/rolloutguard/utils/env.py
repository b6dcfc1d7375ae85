"""Environment variable parsing helpers."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping

_logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")
_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


def rollout_env_key(rollout_id: str, suffix: str, prefix: str = "") -> str:
    """Build the environment key for a per-rollout setting.

    ``checkout-v2`` with suffix ``ENABLED`` becomes ``CHECKOUT_V2_ENABLED``.
    """
    normalized = _NON_ALNUM.sub("_", rollout_id.upper()).strip("_")
    return f"{prefix}{normalized}_{suffix}"


def parse_bool(value: str | None) -> bool | None:
    """Parse a boolean-as-string, returning None for unrecognized input."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def get_env_bool(key: str, env: Mapping[str, str] | None = None) -> bool | None:
    """Read a boolean environment variable.

    Unrecognized values are ignored with a warning.
    """
    source = os.environ if env is None else env
    raw = source.get(key)
    if raw is None:
        return None
    parsed = parse_bool(raw)
    if parsed is None:
        _logger.warning("Invalid bool for %s=%r; ignoring.", key, raw)
    return parsed


def get_env_int(key: str, env: Mapping[str, str] | None = None) -> int | None:
    """Read an integer environment variable, ignoring invalid input."""
    source = os.environ if env is None else env
    raw = source.get(key)
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        _logger.warning("Invalid int for %s=%r; ignoring.", key, raw)
        return None


def get_env_float(key: str, env: Mapping[str, str] | None = None) -> float | None:
    """Read a positive float environment variable.

    Ignores invalid or non-positive values, logging a warning for invalid input.
    """
    source = os.environ if env is None else env
    raw = source.get(key)
    if raw is None:
        return None
    try:
        parsed = float(raw.strip())
    except ValueError:
        _logger.warning("Invalid float for %s=%r; ignoring.", key, raw)
        return None
    if parsed <= 0:
        _logger.warning("Non-positive value for %s=%r; ignoring.", key, raw)
        return None
    return parsed
