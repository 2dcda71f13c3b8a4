"""Tyre wear extraction and per-stint wear statistics."""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    AnalysisLap,
    StintSegment,
    StintTireWearStats,
    TireWearAnalytics,
    TireWearData,
)

_WEAR_KEYS = ("tyres_wear", "tyres-wear", "tyresWear", "m_tyres_wear")


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def extract_tire_wear(car_damage_data: Optional[dict]) -> Dict[str, Optional[float]]:
    """
    Read the four-corner wear array from a car damage payload.

    The array order is [RL, RR, FL, FR]; anything shorter than four
    entries yields all-None.
    """
    empty = {"fl": None, "fr": None, "rl": None, "rr": None}
    if not car_damage_data:
        return empty

    wear = None
    for key in _WEAR_KEYS:
        if key in car_damage_data:
            wear = car_damage_data[key]
            break

    if not isinstance(wear, (list, tuple)) or len(wear) < 4:
        return empty

    return {
        "rl": _number(wear[0]),
        "rr": _number(wear[1]),
        "fl": _number(wear[2]),
        "fr": _number(wear[3]),
    }


def calculate_average_wear(wear: Dict[str, Optional[float]]) -> Optional[float]:
    values = [v for v in (wear["fl"], wear["fr"], wear["rl"], wear["rr"]) if v is not None]
    if not values:
        return None
    return sum(values) / len(values)


def stint_corner_wear(values: Sequence[float], lap_count: int) -> Tuple[float, float]:
    """Wear accumulated by one corner over a stint: (last - first, per lap)."""
    if not values:
        return 0.0, 0.0
    total = values[-1] - values[0]
    per_lap = total / lap_count if lap_count > 0 else 0.0
    return total, per_lap


def calculate_tire_wear_analytics(
    laps: Sequence[AnalysisLap],
    stint_segments: Sequence[StintSegment] = (),
) -> TireWearAnalytics:
    """
    Per-lap wear, per-stint wear and overall averages.

    All laps are used, including ones without a lap time: the game reports
    wear for the lap the car pitted on as well.
    """
    if not laps:
        return TireWearAnalytics()

    ordered = sorted((lap for lap in laps if lap.lap_number is not None), key=lambda l: l.lap_number)

    all_values: List[float] = []
    per_lap: List[TireWearData] = []
    for lap in ordered:
        wear = extract_tire_wear(lap.car_damage_data)
        for corner in ("fl", "fr", "rl", "rr"):
            v = wear[corner]
            if v is not None and math.isfinite(v):
                all_values.append(v)
        per_lap.append(TireWearData(
            lap=lap.lap_number,
            front_left=wear["fl"],
            front_right=wear["fr"],
            rear_left=wear["rl"],
            rear_right=wear["rr"],
        ))

    stint_stats: List[StintTireWearStats] = []
    for index, stint in enumerate(stint_segments):
        in_stint = [d for d in per_lap if stint.start_lap <= d.lap <= stint.end_lap]
        lap_count = stint.end_lap - stint.start_lap + 1
        totals = []
        rates = []
        for corner in ("front_left", "front_right", "rear_left", "rear_right"):
            values = [getattr(d, corner) for d in in_stint if getattr(d, corner) is not None]
            total, rate = stint_corner_wear(values, lap_count)
            totals.append(total)
            rates.append(rate)
        stint_stats.append(StintTireWearStats(
            stint_index=index + 1,
            start_lap=stint.start_lap,
            end_lap=stint.end_lap,
            compound=stint.compound,
            total=sum(totals) / 4,
            per_lap=sum(rates) / 4,
        ))

    average_wear = sum(all_values) / len(all_values) if all_values else None
    average_wear_per_lap = (
        sum(s.per_lap for s in stint_stats) / len(stint_stats) if stint_stats else None
    )

    return TireWearAnalytics(
        tire_wear_data=per_lap,
        stint_stats=stint_stats,
        average_wear=average_wear,
        average_wear_per_lap=average_wear_per_lap,
    )
