"""Per-driver analytics over a list of laps."""

from .ers import calculate_ers_metrics
from .models import (
    AnalysisLap,
    CompoundPace,
    DriverContext,
    ERSMetrics,
    PaceMetrics,
    PeerDriver,
    RaceAnalytics,
    RaceAnalyticsParams,
    StintMetrics,
    StintSegment,
    StintTireWearStats,
    TireWearAnalytics,
    TireWearData,
    is_valid_lap,
)
from .pace import calculate_pace_metrics
from .race import calculate_race_analytics, laps_from_records
from .stints import (
    assign_compounds,
    calculate_stint_metrics,
    derive_stint_segments,
    segments_from_tyre_stints,
)
from .tire_wear import calculate_average_wear, calculate_tire_wear_analytics, extract_tire_wear

__all__ = [
    "AnalysisLap",
    "CompoundPace",
    "DriverContext",
    "ERSMetrics",
    "PaceMetrics",
    "PeerDriver",
    "RaceAnalytics",
    "RaceAnalyticsParams",
    "StintMetrics",
    "StintSegment",
    "StintTireWearStats",
    "TireWearAnalytics",
    "TireWearData",
    "assign_compounds",
    "calculate_average_wear",
    "calculate_ers_metrics",
    "calculate_pace_metrics",
    "calculate_race_analytics",
    "calculate_stint_metrics",
    "calculate_tire_wear_analytics",
    "derive_stint_segments",
    "extract_tire_wear",
    "is_valid_lap",
    "laps_from_records",
    "segments_from_tyre_stints",
]
