"""Driver-vs-driver lap comparison, race-status overlay and tyre-wear alignment."""

import math
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .analytics.models import AnalysisLap
from .analytics.race import is_yellow_flag
from .analytics.tire_wear import calculate_average_wear, extract_tire_wear
from .config import (
    STATUS_ORDER,
    STATUS_RAIN,
    STATUS_SAFETY_CAR,
    STATUS_VIRTUAL_SAFETY_CAR,
    STATUS_YELLOW_FLAG,
)


class LapComparisonEntry(BaseModel):
    lap: int
    target_lap_ms: Optional[float] = None
    comparison_lap_ms: Optional[float] = None
    target_lap_seconds: Optional[float] = None
    comparison_lap_seconds: Optional[float] = None
    target_cumulative_seconds: Optional[float] = None
    comparison_cumulative_seconds: Optional[float] = None
    delta_seconds: Optional[float] = None  # positive = target behind


class DeltaPoint(BaseModel):
    lap: int
    delta_seconds: float


class StatusSegment(BaseModel):
    start_lap: int
    end_lap: int
    statuses: List[str]


class LapComparison(BaseModel):
    entries: List[LapComparisonEntry] = Field(default_factory=list)
    deltas: List[DeltaPoint] = Field(default_factory=list)
    status_segments: List[StatusSegment] = Field(default_factory=list)
    status_legend: List[str] = Field(default_factory=list)


class TireWearComparisonEntry(BaseModel):
    lap: int
    target_average_wear: Optional[float] = None
    comparison_average_wear: Optional[float] = None
    target_tire_compound: Optional[str] = None
    comparison_tire_compound: Optional[str] = None


def sanitize_lap_time(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    return value


def _by_lap_number(laps: Sequence[AnalysisLap]) -> Dict[int, AnalysisLap]:
    # a repeated lap number keeps the last entry
    return {lap.lap_number: lap for lap in laps if lap.lap_number}


def _status_key(tag: str) -> int:
    return STATUS_ORDER.index(tag) if tag in STATUS_ORDER else len(STATUS_ORDER)


def lap_statuses(lap: AnalysisLap) -> List[str]:
    """Race-condition tags active on a lap, in legend order."""
    tags = []
    if lap.max_safety_car_status == "SAFETY_CAR":
        tags.append(STATUS_SAFETY_CAR)
    elif lap.max_safety_car_status == "VIRTUAL_SAFETY_CAR":
        tags.append(STATUS_VIRTUAL_SAFETY_CAR)
    if is_yellow_flag(lap.vehicle_fia_flags):
        tags.append(STATUS_YELLOW_FLAG)
    weather = (lap.weather or "").upper()
    if "RAIN" in weather or weather == "STORM":
        tags.append(STATUS_RAIN)
    return tags


def build_status_segments(laps: Sequence[AnalysisLap]):
    """
    Merge consecutive laps with the same tag set into segments.

    A lap without tags ends the open segment, as does a missing lap number.

    Returns:
        (segments, legend); the legend lists every individual tag seen.
    """
    segments: List[StatusSegment] = []
    seen = set()
    current: Optional[StatusSegment] = None

    for number, lap in sorted(_by_lap_number(laps).items()):
        tags = lap_statuses(lap)
        seen.update(tags)
        if not tags:
            current = None
            continue
        if current is not None and current.statuses == tags and current.end_lap == number - 1:
            current.end_lap = number
            continue
        current = StatusSegment(start_lap=number, end_lap=number, statuses=tags)
        segments.append(current)

    legend = sorted(seen, key=_status_key)
    return segments, legend


def build_lap_comparison(
    target_laps: Sequence[AnalysisLap],
    comparison_laps: Sequence[AnalysisLap],
) -> LapComparison:
    """
    Align two drivers lap by lap with running cumulative times.

    The status overlay is taken from the target driver's laps. Either side
    being empty yields an empty comparison.
    """
    if not target_laps or not comparison_laps:
        return LapComparison()

    target = _by_lap_number(target_laps)
    other = _by_lap_number(comparison_laps)

    entries: List[LapComparisonEntry] = []
    target_total = 0.0
    other_total = 0.0
    for number in sorted(set(target) | set(other)):
        t_ms = sanitize_lap_time(target[number].lap_time_ms) if number in target else None
        c_ms = sanitize_lap_time(other[number].lap_time_ms) if number in other else None
        if t_ms is None and c_ms is None:
            continue
        if t_ms is not None:
            target_total += t_ms
        if c_ms is not None:
            other_total += c_ms

        entries.append(LapComparisonEntry(
            lap=number,
            target_lap_ms=t_ms,
            comparison_lap_ms=c_ms,
            target_lap_seconds=t_ms / 1000 if t_ms is not None else None,
            comparison_lap_seconds=c_ms / 1000 if c_ms is not None else None,
            target_cumulative_seconds=target_total / 1000 if target_total > 0 else None,
            comparison_cumulative_seconds=other_total / 1000 if other_total > 0 else None,
            delta_seconds=(
                (target_total - other_total) / 1000
                if t_ms is not None and c_ms is not None else None
            ),
        ))

    deltas = [
        DeltaPoint(lap=e.lap, delta_seconds=e.delta_seconds)
        for e in entries if e.delta_seconds is not None
    ]
    segments, legend = build_status_segments(target_laps)

    return LapComparison(
        entries=entries,
        deltas=deltas,
        status_segments=segments,
        status_legend=legend,
    )


def build_tire_wear_comparison(
    target_laps: Sequence[AnalysisLap],
    comparison_laps: Sequence[AnalysisLap],
) -> List[TireWearComparisonEntry]:
    """Average four-corner wear of both drivers, aligned by lap number."""
    if not target_laps or not comparison_laps:
        return []

    target = {lap.lap_number: lap for lap in target_laps if lap.lap_number is not None}
    other = {lap.lap_number: lap for lap in comparison_laps if lap.lap_number is not None}

    rows = []
    for number in sorted(set(target) | set(other)):
        t_lap = target.get(number)
        c_lap = other.get(number)
        t_wear = calculate_average_wear(extract_tire_wear(t_lap.car_damage_data)) if t_lap else None
        c_wear = calculate_average_wear(extract_tire_wear(c_lap.car_damage_data)) if c_lap else None
        if t_wear is None and c_wear is None:
            continue
        rows.append(TireWearComparisonEntry(
            lap=number,
            target_average_wear=t_wear,
            comparison_average_wear=c_wear,
            target_tire_compound=t_lap.tire_compound if t_lap else None,
            comparison_tire_compound=c_lap.tire_compound if c_lap else None,
        ))
    return rows
