"""Pace summary over a driver's valid laps."""

import math
from typing import Optional, Sequence

from .models import AnalysisLap, PaceMetrics, is_valid_lap


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _better_sector(best: Optional[float], value: Optional[float]) -> Optional[float]:
    if not value or not math.isfinite(value) or value <= 0:
        return best
    if best is None or value < best:
        return value
    return best


def calculate_pace_metrics(laps: Sequence[AnalysisLap]) -> Optional[PaceMetrics]:
    """
    Calculate pace metrics from lap data.

    Args:
        laps: Laps of one driver; invalid laps (lap time missing, <= 0 or
            not finite) are ignored

    Returns:
        PaceMetrics, or None when there is no valid lap at all
    """
    valid = [lap for lap in laps if is_valid_lap(lap)]
    if not valid:
        return None

    fastest = slowest = None
    fastest_lap_number = None
    total = 0.0
    best_s1 = best_s2 = best_s3 = None

    for lap in valid:
        t = lap.lap_time_ms
        if fastest is None or t < fastest:
            fastest = t
            fastest_lap_number = lap.lap_number
        if slowest is None or t > slowest:
            slowest = t
        total += t
        best_s1 = _better_sector(best_s1, lap.sector1_ms)
        best_s2 = _better_sector(best_s2, lap.sector2_ms)
        best_s3 = _better_sector(best_s3, lap.sector3_ms)

    n = len(valid)
    mean = total / n
    average_lap = round_half_up(mean)
    if average_lap <= 0:
        return None

    # population standard deviation
    variance = sum((lap.lap_time_ms - mean) ** 2 for lap in valid) / n
    consistency = math.sqrt(variance) / average_lap * 100

    return PaceMetrics(
        fastest_lap=fastest,
        slowest_lap=slowest,
        average_lap=average_lap,
        consistency_percent=f"{consistency:.2f}",
        best_sector1=best_s1,
        best_sector2=best_s2,
        best_sector3=best_s3,
        total_laps=n,
        fastest_lap_number=fastest_lap_number,
    )
