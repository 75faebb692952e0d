"""Human-readable formatting of durations and byte counts."""

from __future__ import annotations

_UNIT = 1024
_PREFIXES = "KMGTPE"


def format_uptime(seconds: float) -> str:
    """Largest applicable unit first: days, then hours, then minutes.

    >>> format_uptime(7300)
    '2 hours, 1 minutes'
    """
    total_minutes = int(seconds) // 60
    days, rem = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rem, 60)

    if days > 0:
        return f"{days} days, {hours} hours, {minutes} minutes"
    if hours > 0:
        return f"{hours} hours, {minutes} minutes"
    return f"{minutes} minutes"


def format_bytes(size: int) -> str:
    """Base-1024 size with one decimal, e.g. ``1536 -> "1.5 KB"``."""
    if size < _UNIT:
        return f"{size} B"
    div, exp = _UNIT, 0
    n = size // _UNIT
    while n >= _UNIT and exp < len(_PREFIXES) - 1:
        div *= _UNIT
        exp += 1
        n //= _UNIT
    return f"{size / div:.1f} {_PREFIXES[exp]}B"
