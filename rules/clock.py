"""
Clock helpers shared by the time condition and the sleep-window gate.

Times of day are handled as minutes since midnight. Both callers use
the same inclusive wrap-around window rule.
"""

from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.logging import get_logger

logger = get_logger("rules.clock")


def parse_hhmm(value) -> Optional[int]:
    """
    Parse an ``HH:MM`` string into minutes since midnight.

    Returns None for anything that is not a valid 24h time.
    """
    if not isinstance(value, str):
        return None

    parts = value.strip().split(":")
    if len(parts) != 2:
        return None

    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None

    return hour * 60 + minute


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def in_window(now: int, start: int, end: int) -> bool:
    """
    Inclusive daily window check.

    ``start <= end`` is a same-day window, ``start > end`` wraps
    past midnight.
    """
    if start <= end:
        return start <= now <= end
    return now >= start or now <= end


def resolve_zone(name: Optional[str], default: str) -> tzinfo:
    """Zone for ``name``, or ``default`` when it is empty, unknown or not a string."""
    if name:
        if is_valid_zone(name):
            return ZoneInfo(name)
        logger.warning(f"Unknown timezone {name!r}, using {default}")
    return ZoneInfo(default)


def is_valid_zone(name: str) -> bool:
    if not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        return False
    return True
