"""
Utility functions for LibProbe.

Small pure helpers shared by the pipeline stages: option clamping,
target validation, version-shape checks, and display formatting.
"""

from __future__ import annotations

import math
import re
from typing import Any

TARGET_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9.:/_?&=%#-]*$")

# 1 to 4 dotted numeric parts, optionally followed by a pre-release or build suffix
VERSION_PATTERN = r"\d+(?:\.\d+){0,3}(?:[-+][0-9A-Za-z.-]+)?"
_VERSION_RE = re.compile(rf"^{VERSION_PATTERN}$")


def is_valid_target(value: str) -> bool:
    """
    Conservative allowed-character check for a scan target.

    Args:
        value: Raw target string supplied by the caller

    Returns:
        True if the string only contains URL-safe characters
    """
    return bool(TARGET_PATTERN.match(value))


def looks_like_version(value: str | None) -> bool:
    """
    Check whether a string has the shape of a numeric dotted version.

    Content hashes and build tags (``abcdef123``, ``latest``) are rejected.

    Args:
        value: Candidate version string

    Returns:
        True if the value is a numeric version
    """
    if not value:
        return False
    return bool(_VERSION_RE.match(value.strip()))


def clamp_int(value: Any, fallback: int, minimum: int, maximum: int) -> int:
    """
    Coerce a loosely typed option into an integer within bounds.

    Non-numeric and non-finite values fall back to the default; fractional
    values are truncated toward zero.

    Args:
        value: Raw option value
        fallback: Default used when the value is missing or not numeric
        minimum: Lower bound (inclusive)
        maximum: Upper bound (inclusive)

    Returns:
        Clamped integer
    """
    if value is None or isinstance(value, bool):
        return fallback
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(numeric):
        return fallback
    return max(minimum, min(maximum, math.trunc(numeric)))


def truncate_string(s: str, max_length: int = 200, suffix: str = "...") -> str:
    """Truncate string to a maximum length, suffix included."""
    if len(s) <= max_length:
        return s
    return s[: max_length - len(suffix)] + suffix


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m {secs:.0f}s"
