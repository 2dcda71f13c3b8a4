"""Time utility functions for lap and sector times."""

import math
import re
from typing import Optional


def parse_laptime_to_ms(laptime: str) -> int:
    """
    Parse laptime string in "m:ss.mmm" or "ss.mmm" format to milliseconds.

    Args:
        laptime: Time string in "m:ss.mmm" or "ss.mmm" format

    Returns:
        int: Time in milliseconds

    Raises:
        ValueError: If the format is invalid
    """
    if not laptime or not isinstance(laptime, str):
        raise ValueError("Laptime must be a non-empty string")

    laptime = laptime.strip()

    mss_pattern = r'^(\d+):([0-5]?\d)\.(\d{3})$'
    ss_pattern = r'^([0-5]?\d)\.(\d{3})$'

    if match := re.match(mss_pattern, laptime):
        minutes, seconds, millis = (int(g) for g in match.groups())
        return (minutes * 60 + seconds) * 1000 + millis
    elif match := re.match(ss_pattern, laptime):
        seconds, millis = (int(g) for g in match.groups())
        return seconds * 1000 + millis
    else:
        raise ValueError(f"Invalid laptime format: {laptime}. Expected 'm:ss.mmm' or 'ss.mmm'")


def format_laptime_ms(ms: Optional[float]) -> Optional[str]:
    """
    Format milliseconds as "m:ss.mmm".

    Returns None for missing, non-finite or non-positive values.
    """
    if ms is None or not math.isfinite(ms) or ms <= 0:
        return None
    total = int(round(ms))
    minutes, rest = divmod(total, 60000)
    seconds, millis = divmod(rest, 1000)
    return f"{minutes}:{seconds:02d}.{millis:03d}"


def sector_total_ms(ms_part: int, minutes_part: int = 0) -> Optional[int]:
    """
    Combine the split sector fields of a lap history entry.

    The game sends each sector as a millisecond part plus a whole-minutes
    part; a zero total means the sector was not recorded.
    """
    total = (minutes_part or 0) * 60000 + (ms_part or 0)
    return total if total > 0 else None
