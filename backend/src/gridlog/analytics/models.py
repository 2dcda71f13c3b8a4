"""Pydantic models for analytics inputs and results."""

import math
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..utils_time import parse_laptime_to_ms


def is_pit_stop_flag(value: Any) -> bool:
    """Interpret the pit flag as sent by the various lap sources."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "pit")
    return False


def is_valid_lap(lap: "AnalysisLap") -> bool:
    """A lap counts for pace statistics only with a finite, positive lap time."""
    t = lap.lap_time_ms
    return t is not None and math.isfinite(t) and t > 0


class AnalysisLap(BaseModel):
    """One lap as the analytics and comparison engines see it."""

    model_config = ConfigDict(extra="ignore")

    lap_number: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("lap_number", "lapNumber")
    )
    lap_time_ms: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("lap_time_ms", "lap_time_in_ms", "lapTimeInMs")
    )
    sector1_ms: Optional[float] = None
    sector2_ms: Optional[float] = None
    sector3_ms: Optional[float] = None
    tire_compound: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("tire_compound", "tireCompound")
    )
    car_damage_data: Optional[dict] = Field(
        default=None, validation_alias=AliasChoices("car_damage_data", "carDamageData")
    )
    ers_store_energy: Optional[float] = None
    ers_deployed_this_lap: Optional[float] = None
    ers_harvested_this_lap_mguk: Optional[float] = None
    ers_harvested_this_lap_mguh: Optional[float] = None
    gap_to_leader_ms: Optional[float] = None
    pit_stop: bool = False
    max_safety_car_status: Optional[str] = None
    vehicle_fia_flags: Optional[str] = None
    weather: Optional[str] = None

    @field_validator("pit_stop", mode="before")
    @classmethod
    def _coerce_pit_stop(cls, v):
        return is_pit_stop_flag(v)

    @field_validator("lap_time_ms", mode="before")
    @classmethod
    def _lap_time(cls, v):
        # text is a lap time ("m:ss.mmm" or "ss.mmm"); bare digits are milliseconds
        if isinstance(v, str):
            text = v.strip()
            if text.isdigit():
                return int(text)
            return parse_laptime_to_ms(text)
        return v

    @field_validator("tire_compound", mode="before")
    @classmethod
    def _compound_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class StintSegment(BaseModel):
    start_lap: int
    end_lap: int
    compound: str


class DriverContext(BaseModel):
    grid_position: Optional[int] = None
    race_position: Optional[int] = None
    race_gap: Optional[float] = None


class PeerDriver(BaseModel):
    """Another driver of the same session; only the fastest-lap fields matter here."""

    model_config = ConfigDict(extra="ignore")

    fastest_lap: Union[bool, int, str, None] = Field(
        default=None, validation_alias=AliasChoices("fastest_lap", "fastestLap")
    )
    fastest_lap_time: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("fastest_lap_time", "fastestLapTime")
    )
    race_best_lap_time: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("race_best_lap_time", "raceBestLapTime")
    )
    best_lap_time_ms: Optional[float] = None

    @property
    def holds_fastest_lap(self) -> bool:
        flag = self.fastest_lap
        return flag is True or flag == 1 or flag == "true"


class RaceAnalyticsParams(BaseModel):
    lap_data: list[AnalysisLap]
    stint_segments: list[StintSegment] = Field(default_factory=list)
    driver: Optional[DriverContext] = None
    session_drivers: list[PeerDriver] = Field(default_factory=list)


class PaceMetrics(BaseModel):
    fastest_lap: float
    slowest_lap: float
    average_lap: int
    consistency_percent: str  # stddev as % of average, two decimals
    best_sector1: Optional[float] = None
    best_sector2: Optional[float] = None
    best_sector3: Optional[float] = None
    total_laps: int
    fastest_lap_number: Optional[int] = None


class TireWearData(BaseModel):
    lap: int
    front_left: Optional[float] = None
    front_right: Optional[float] = None
    rear_left: Optional[float] = None
    rear_right: Optional[float] = None


class StintTireWearStats(BaseModel):
    stint_index: int
    start_lap: int
    end_lap: int
    compound: str
    total: float  # mean of the four corners
    per_lap: float


class TireWearAnalytics(BaseModel):
    tire_wear_data: list[TireWearData] = Field(default_factory=list)
    stint_stats: list[StintTireWearStats] = Field(default_factory=list)
    average_wear: Optional[float] = None
    average_wear_per_lap: Optional[float] = None


class ERSMetrics(BaseModel):
    average_remaining: Optional[float] = None  # % of store capacity
    average_deployed: Optional[float] = None
    average_harvested: Optional[float] = None
    total_deployed: Optional[float] = None  # Joules
    total_harvested: Optional[float] = None


class CompoundPace(BaseModel):
    compound: str
    average_seconds: float
    lap_count: int


class StintMetrics(BaseModel):
    stint_count: int = 0
    average_stint_length: float = 0.0
    compounds_used: list[str] = Field(default_factory=list)
    average_pace_by_compound: list[CompoundPace] = Field(default_factory=list)


class RaceAnalytics(BaseModel):
    pace: PaceMetrics
    tire_wear: TireWearAnalytics
    ers: ERSMetrics
    stints: StintMetrics

    grid_position: Optional[int] = None
    finish_position: Optional[int] = None
    positions_gained: Optional[int] = None
    gap_to_leader_ms: Optional[float] = None

    pit_stops: int = 0
    safety_car_laps: int = 0
    virtual_safety_car_laps: int = 0
    yellow_flag_laps: int = 0

    session_fastest_lap: Optional[float] = None
