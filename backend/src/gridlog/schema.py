"""Pydantic schema models for decoded UDP packets and persisted records."""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class PacketHeader(BaseModel):
    """Header shared by every decoded packet."""

    session_uid: int
    session_time: float = 0.0
    frame_identifier: int = 0
    packet_id: Optional[int] = None
    game_year: Optional[int] = None
    player_car_index: Optional[int] = None


class ParticipantData(BaseModel):
    """One slot of a participants packet."""

    ai_controlled: int = 0
    driver_id: int = 255
    network_id: int = 255
    team_id: int = 255
    my_team: int = 0
    race_number: int = 0
    nationality: int = 0
    name: str = ""
    your_telemetry: int = 0
    show_online_names: int = 0
    platform: int = 255


class ParticipantsPacket(BaseModel):
    packet_type: Literal["participants"] = "participants"
    header: PacketHeader
    num_active_cars: Optional[int] = None
    participants: list[ParticipantData] = Field(default_factory=list)


class LapHistoryData(BaseModel):
    """One lap entry of a session-history packet."""

    lap_time_ms: int = 0
    sector1_time_ms: int = 0
    sector1_time_minutes: int = 0
    sector2_time_ms: int = 0
    sector2_time_minutes: int = 0
    sector3_time_ms: int = 0
    sector3_time_minutes: int = 0
    lap_valid_bit_flags: int = 0


class SessionHistoryPacket(BaseModel):
    """Full lap history the game currently holds for one car (not a delta)."""

    packet_type: Literal["session_history"] = "session_history"
    header: PacketHeader
    car_idx: int
    num_laps: Optional[int] = None
    lap_history: list[LapHistoryData] = Field(default_factory=list)


class SessionPacket(BaseModel):
    packet_type: Literal["session"] = "session"
    header: PacketHeader
    track_id: int
    session_type: int = 0
    total_laps: int = 0
    track_length: int = 0
    weather: Optional[int] = None


class FinalClassificationData(BaseModel):
    position: int
    num_laps: int = 0
    grid_position: int = 0
    points: int = 0
    num_pit_stops: int = 0
    result_status: int = 0
    best_lap_time_ms: int = 0
    total_race_time: float = 0.0
    penalties_time: int = 0
    num_penalties: int = 0
    num_tyre_stints: int = 0
    tyre_stints_actual: list[int] = Field(default_factory=list)
    tyre_stints_visual: list[int] = Field(default_factory=list)
    tyre_stints_end_laps: list[int] = Field(default_factory=list)


class FinalClassificationPacket(BaseModel):
    packet_type: Literal["final_classification"] = "final_classification"
    header: PacketHeader
    num_cars: Optional[int] = None
    classification: list[FinalClassificationData] = Field(default_factory=list)


Packet = Annotated[
    Union[ParticipantsPacket, SessionHistoryPacket, SessionPacket, FinalClassificationPacket],
    Field(discriminator="packet_type"),
]


class Driver(BaseModel):
    """League driver; steam_id is the name the game reports for the slot."""

    id: str
    name: str
    steam_id: Optional[str] = None
    team: Optional[str] = None
    number: Optional[int] = None
    is_active: bool = True


class Season(BaseModel):
    id: str
    name: str
    year: int
    is_active: bool = False


class RaceEvent(BaseModel):
    id: str
    season_id: str
    track_name: str
    status: Literal["scheduled", "active", "completed"] = "scheduled"


class UDPParticipantRecord(BaseModel):
    """A slot that resolved to a known driver."""

    season_id: str
    driver_id: str
    vehicle_index: int
    ai_controlled: bool
    f123_driver_id: int
    network_id: int
    team_id: int
    my_team: bool
    race_number: int
    nationality: int
    name: str
    your_telemetry: int
    show_online_names: int
    platform: int
    session_uid: int
    session_time: float
    frame_identifier: int


class LapRecord(BaseModel):
    """Persisted lap; only completed laps (lap_time_ms > 0) are ever stored."""

    driver_id: str
    lap_number: int = Field(ge=1)
    lap_time_ms: int = Field(gt=0)
    sector1_time_ms: int = 0
    sector1_time_minutes: int = 0
    sector2_time_ms: int = 0
    sector2_time_minutes: int = 0
    sector3_time_ms: int = 0
    sector3_time_minutes: int = 0
    lap_valid_bit_flags: int = 0
    session_uid: int
    session_time: float
    frame_identifier: int
    captured_at: Optional[datetime] = None


class SessionResultRecord(BaseModel):
    season_id: str
    event_id: str
    driver_id: str
    position: int
    num_laps: int
    grid_position: int
    points: int
    num_pit_stops: int
    result_status: int
    best_lap_time_ms: int
    total_race_time_seconds: float
    penalties_time: int
    num_penalties: int
    num_tyre_stints: int
    session_uid: int
    session_time: float
    frame_identifier: int


class TyreStintRecord(BaseModel):
    driver_id: str
    session_result_id: Optional[str] = None
    stint_number: int
    end_lap: int
    tyre_actual_compound: int
    tyre_visual_compound: int
    session_uid: int
    session_time: float
    frame_identifier: int
