"""Race analytics: one call combining pace, wear, ERS, stints and race events."""

import math
from typing import Iterable, List, Optional, Sequence

from ..schema import LapRecord
from ..utils_time import sector_total_ms
from .ers import calculate_ers_metrics
from .models import (
    AnalysisLap,
    PeerDriver,
    RaceAnalytics,
    RaceAnalyticsParams,
    is_valid_lap,
)
from .pace import calculate_pace_metrics
from .stints import calculate_stint_metrics
from .tire_wear import calculate_tire_wear_analytics

SAFETY_CAR = "SAFETY_CAR"
VIRTUAL_SAFETY_CAR = "VIRTUAL_SAFETY_CAR"


def is_yellow_flag(flags: Optional[str]) -> bool:
    """Any FIA flag text naming yellow, case-insensitively; "None" is no flag."""
    return isinstance(flags, str) and flags != "None" and "YELLOW" in flags.upper()


def session_fastest_lap(drivers: Sequence[PeerDriver]) -> Optional[float]:
    """Lap time of the first peer flagged as holding the fastest lap."""
    holder = next((d for d in drivers if d.holds_fastest_lap), None)
    if holder is None:
        return None
    for t in (holder.fastest_lap_time, holder.race_best_lap_time, holder.best_lap_time_ms):
        if t is not None:
            return float(t) if t > 0 else None
    return None


def _gap_to_leader(laps: Sequence[AnalysisLap], race_gap: Optional[float]) -> Optional[float]:
    for lap in reversed(laps):
        gap = lap.gap_to_leader_ms
        if gap is not None and math.isfinite(gap) and gap > 0:
            return gap
    if race_gap is not None and math.isfinite(race_gap) and race_gap > 0:
        return race_gap
    return None


def calculate_race_analytics(params: RaceAnalyticsParams) -> Optional[RaceAnalytics]:
    """
    Calculate the complete race analytics for one driver.

    Pace, stint metrics and race-event counts use valid laps only; tyre wear
    and ERS use every lap. Returns None when the driver has no valid lap.
    """
    laps = params.lap_data
    if not laps:
        return None

    valid = [lap for lap in laps if is_valid_lap(lap)]
    if not valid:
        return None

    pace = calculate_pace_metrics(valid)
    if pace is None:
        return None

    tire_wear = calculate_tire_wear_analytics(laps, params.stint_segments)
    ers = calculate_ers_metrics(laps)
    stints = calculate_stint_metrics(valid, params.stint_segments)

    driver = params.driver
    grid = driver.grid_position if driver else None
    finish = driver.race_position if driver else None
    # 0 means the position was not recorded
    gained = grid - finish if (grid or 0) > 0 and (finish or 0) > 0 else None

    pit_stops = sc_laps = vsc_laps = yellow_laps = 0
    for lap in valid:
        if lap.pit_stop:
            pit_stops += 1
        if lap.max_safety_car_status == SAFETY_CAR:
            sc_laps += 1
        elif lap.max_safety_car_status == VIRTUAL_SAFETY_CAR:
            vsc_laps += 1
        if is_yellow_flag(lap.vehicle_fia_flags):
            yellow_laps += 1

    return RaceAnalytics(
        pace=pace,
        tire_wear=tire_wear,
        ers=ers,
        stints=stints,
        grid_position=grid,
        finish_position=finish,
        positions_gained=gained,
        gap_to_leader_ms=_gap_to_leader(laps, driver.race_gap if driver else None),
        pit_stops=pit_stops,
        safety_car_laps=sc_laps,
        virtual_safety_car_laps=vsc_laps,
        yellow_flag_laps=yellow_laps,
        session_fastest_lap=session_fastest_lap(params.session_drivers),
    )


def laps_from_records(records: Iterable[LapRecord]) -> List[AnalysisLap]:
    """Convert stored lap records to analysis laps, sorted by lap number."""
    laps = [
        AnalysisLap(
            lap_number=rec.lap_number,
            lap_time_ms=rec.lap_time_ms,
            sector1_ms=sector_total_ms(rec.sector1_time_ms, rec.sector1_time_minutes),
            sector2_ms=sector_total_ms(rec.sector2_time_ms, rec.sector2_time_minutes),
            sector3_ms=sector_total_ms(rec.sector3_time_ms, rec.sector3_time_minutes),
        )
        for rec in records
    ]
    laps.sort(key=lambda lap: lap.lap_number)
    return laps
