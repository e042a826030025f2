"""Helpers for reading PassPilot settings from environment variables."""

from __future__ import annotations

import os
from typing import Optional

_TRUE_VALUES = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    """Return True when the variable is set to a truthy string."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    """Parse an integer variable, falling back to ``default`` on bad input."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed
