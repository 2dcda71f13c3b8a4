"""Stint metrics and stint segmentation."""

from typing import Dict, List, Sequence

from ..constants import compound_display_name
from ..schema import TyreStintRecord
from .models import AnalysisLap, CompoundPace, StintMetrics, StintSegment, is_valid_lap


def calculate_stint_metrics(
    laps: Sequence[AnalysisLap],
    stint_segments: Sequence[StintSegment] = (),
) -> StintMetrics:
    """
    Stint count, average stint length, compounds used and average pace per compound.

    Compound pace is in seconds, fastest compound first.
    """
    if not laps:
        return StintMetrics()

    valid = [lap for lap in laps if is_valid_lap(lap)]

    compounds_used: List[str] = []
    groups: Dict[str, List[float]] = {}
    for lap in valid:
        if not lap.tire_compound:
            continue
        if lap.tire_compound not in groups:
            compounds_used.append(lap.tire_compound)
            groups[lap.tire_compound] = [0.0, 0]
        groups[lap.tire_compound][0] += lap.lap_time_ms
        groups[lap.tire_compound][1] += 1

    pace = [
        CompoundPace(compound=compound, average_seconds=total / count / 1000, lap_count=count)
        for compound, (total, count) in groups.items()
    ]
    pace.sort(key=lambda p: p.average_seconds)

    stint_count = len(stint_segments)
    average_length = (
        sum(s.end_lap - s.start_lap + 1 for s in stint_segments) / stint_count
        if stint_count else 0.0
    )

    return StintMetrics(
        stint_count=stint_count,
        average_stint_length=average_length,
        compounds_used=compounds_used,
        average_pace_by_compound=pace,
    )


def derive_stint_segments(laps: Sequence[AnalysisLap]) -> List[StintSegment]:
    """Group consecutive laps on the same compound into stints."""
    ordered = sorted((lap for lap in laps if lap.lap_number), key=lambda l: l.lap_number)
    if not ordered:
        return []

    segments: List[StintSegment] = []
    current = compound_display_name(ordered[0].tire_compound)
    start = previous = ordered[0].lap_number

    for lap in ordered[1:]:
        compound = compound_display_name(lap.tire_compound)
        if compound != current:
            segments.append(StintSegment(start_lap=start, end_lap=previous, compound=current))
            current = compound
            start = lap.lap_number
        previous = lap.lap_number

    segments.append(StintSegment(start_lap=start, end_lap=previous, compound=current))
    return segments


def segments_from_tyre_stints(stints: Sequence[TyreStintRecord]) -> List[StintSegment]:
    """
    Stint segments from a final classification's stored tyre stints.

    Each stint starts the lap after the previous one ended.
    """
    segments: List[StintSegment] = []
    start = 1
    for stint in sorted(stints, key=lambda s: s.stint_number):
        if stint.end_lap < start:
            continue
        segments.append(StintSegment(
            start_lap=start,
            end_lap=stint.end_lap,
            compound=compound_display_name(stint.tyre_actual_compound),
        ))
        start = stint.end_lap + 1
    return segments


def assign_compounds(laps: Sequence[AnalysisLap], segments: Sequence[StintSegment]) -> List[AnalysisLap]:
    """Copies of laps with tire_compound filled in from the stint covering them."""
    out = []
    for lap in laps:
        segment = next(
            (s for s in segments if lap.lap_number and s.start_lap <= lap.lap_number <= s.end_lap),
            None,
        )
        if segment is not None and not lap.tire_compound:
            lap = lap.model_copy(update={"tire_compound": segment.compound})
        out.append(lap)
    return out
