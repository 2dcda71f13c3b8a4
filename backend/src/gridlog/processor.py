"""Ingestion pipeline: routes decoded packets to handlers and applies their writes."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .buffer import LapHistoryBuffer
from .config import RACE_SESSION_TYPE, Settings, get_settings
from .constants import session_type_name, track_name, weather_name
from .identity import resolve_participants
from .schema import (
    FinalClassificationPacket,
    ParticipantsPacket,
    SessionHistoryPacket,
    SessionPacket,
    SessionResultRecord,
    TyreStintRecord,
)
from .session import SessionContext
from .storage import TelemetryStorage

logger = logging.getLogger(__name__)


@dataclass
class Effect:
    """A persistence write produced by a handler; index is the vehicle slot if any."""

    description: str
    action: Callable[[], Any]
    index: Optional[int] = None


class UDPProcessor:
    """
    Single-session ingestion pipeline.

    Handlers read and update the session context and return their storage
    writes as effects; dispatch() runs both under one lock so packets, flushes
    and stop/reset never interleave.
    """

    def __init__(self, storage: TelemetryStorage, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.storage = storage
        self.ctx = SessionContext(buffer=LapHistoryBuffer(dedupe=settings.flush_dedupe))
        self._running = False
        self._lock = threading.RLock()
        self._handlers: Dict[str, Callable[[Any], List[Effect]]] = {
            "participants": self._handle_participants,
            "session_history": self._handle_session_history,
            "session": self._handle_session,
            "final_classification": self._handle_final_classification,
        }

    # --- lifecycle ---

    def start(self) -> None:
        """Open storage and load the active season; storage errors propagate."""
        with self._lock:
            if self._running:
                logger.info("UDP processor is already running")
                return
            self.storage.init_db()
            self._load_active_season()
            self._running = True
            logger.info("UDP processor started")

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            pending = len(self.ctx.buffer)
            self.ctx.reset()
            if pending:
                logger.warning("UDP processor stopped with %d unflushed fragments discarded", pending)
            else:
                logger.info("UDP processor stopped")

    def reset_session(self) -> None:
        with self._lock:
            self.ctx.reset()

    def _load_active_season(self) -> None:
        season = self.storage.get_active_season()
        if season is None:
            logger.warning("No active season found - UDP data will not be processed")
            return
        self.ctx.season_id = season.id
        logger.info("Active season loaded: %s (%s)", season.name, season.year)

        event_id = self.storage.get_current_event_for_season(season.id)
        if event_id:
            self.ctx.event_id = event_id
            logger.info("Current event set: %s", event_id)
        else:
            logger.warning("No current event for active season - results will not be linked to an event")

    # --- dispatch ---

    def dispatch(self, packet) -> Dict[str, Any]:
        """
        Handle one decoded packet.

        Returns:
            Summary with the packet type and how many writes succeeded/failed.
        """
        packet_type = getattr(packet, "packet_type", None)
        handler = self._handlers.get(packet_type)
        if handler is None:
            raise ValueError(f"Unsupported packet type: {packet_type!r}")

        with self._lock:
            if not self._running:
                logger.debug("Processor not running - ignoring %s packet", packet_type)
                return {"packet_type": packet_type, "status": "ignored", "applied": 0, "failed": 0}
            effects = handler(packet)
            applied, failed = self._apply(effects)
        return {"packet_type": packet_type, "status": "ok", "applied": applied, "failed": failed}

    def _apply(self, effects: List[Effect]) -> tuple[int, int]:
        applied = failed = 0
        for effect in effects:
            try:
                effect.action()
                applied += 1
            except Exception:
                failed += 1
                logger.error("Failed to store %s (index %s)", effect.description, effect.index, exc_info=True)
        return applied, failed

    # --- handlers ---

    def _handle_participants(self, packet: ParticipantsPacket) -> List[Effect]:
        drivers = self.storage.drivers_by_steam_id() if self.ctx.season_id else {}
        records = resolve_participants(packet, self.ctx, drivers)
        return [
            Effect(
                description=f"participant {rec.name}",
                action=lambda rec=rec: self.storage.add_udp_participant(rec),
                index=rec.vehicle_index,
            )
            for rec in records
        ]

    def _handle_session_history(self, packet: SessionHistoryPacket) -> List[Effect]:
        if not self.ctx.season_id:
            logger.warning("No active season - skipping session history packet")
            return []

        driver_id = self.ctx.driver_for_slot(packet.car_idx)
        if driver_id is None:
            logger.debug("No driver mapped for car index %d - dropping session history", packet.car_idx)
            return []

        self.ctx.buffer.add_fragment(driver_id, packet)
        logger.debug(
            "Buffered %d lap entries for car %d (driver %s)",
            len(packet.lap_history), packet.car_idx, driver_id,
        )
        return []

    def _handle_session(self, packet: SessionPacket) -> List[Effect]:
        name = track_name(packet.track_id)
        self.ctx.session_type = packet.session_type
        self.ctx.weather = weather_name(packet.weather)
        logger.debug(
            "Session packet: track %s, type %s, %d laps, weather %s",
            packet.track_id, session_type_name(packet.session_type), packet.total_laps, self.ctx.weather,
        )
        if name is None:
            logger.warning("Unknown track id %d - event not resolved", packet.track_id)
            return []
        self.ctx.track_name = name

        if not self.ctx.season_id:
            return []

        event_id = self.storage.find_active_event_by_track(name)
        if event_id:
            if event_id != self.ctx.event_id:
                logger.info("Found event %s for track %s", event_id, name)
            self.ctx.event_id = event_id
        else:
            logger.warning("No scheduled event for track %s - results will not be linked", name)
        return []

    def _handle_final_classification(self, packet: FinalClassificationPacket) -> List[Effect]:
        if not self.ctx.season_id or not self.ctx.event_id:
            logger.warning("No active season or event - skipping final classification packet")
            return []

        header = packet.header
        effects: List[Effect] = []
        for index, result in enumerate(packet.classification):
            driver_id = self.ctx.driver_for_slot(index)
            if driver_id is None:
                continue

            record = SessionResultRecord(
                season_id=self.ctx.season_id,
                event_id=self.ctx.event_id,
                driver_id=driver_id,
                position=result.position,
                num_laps=result.num_laps,
                grid_position=result.grid_position,
                points=result.points,
                num_pit_stops=result.num_pit_stops,
                result_status=result.result_status,
                best_lap_time_ms=result.best_lap_time_ms,
                total_race_time_seconds=result.total_race_time,
                penalties_time=result.penalties_time,
                num_penalties=result.num_penalties,
                num_tyre_stints=result.num_tyre_stints,
                session_uid=header.session_uid,
                session_time=header.session_time,
                frame_identifier=header.frame_identifier,
            )
            stints = [
                TyreStintRecord(
                    driver_id=driver_id,
                    stint_number=stint,
                    end_lap=result.tyre_stints_end_laps[stint],
                    tyre_actual_compound=result.tyre_stints_actual[stint],
                    tyre_visual_compound=result.tyre_stints_visual[stint],
                    session_uid=header.session_uid,
                    session_time=header.session_time,
                    frame_identifier=header.frame_identifier,
                )
                for stint in range(result.num_tyre_stints)
                if stint < min(len(result.tyre_stints_end_laps),
                               len(result.tyre_stints_actual),
                               len(result.tyre_stints_visual))
            ]
            effects.append(Effect(
                description=f"classification for driver {driver_id}",
                action=lambda record=record, stints=stints: self._store_result(record, stints),
                index=index,
            ))

        if self.ctx.session_type == RACE_SESSION_TYPE and effects:
            event_id = self.ctx.event_id
            effects.append(Effect(
                description=f"completion of event {event_id}",
                action=lambda: self.storage.mark_event_completed(event_id),
            ))
        return effects

    def _store_result(self, record: SessionResultRecord, stints: List[TyreStintRecord]) -> None:
        result_id = self.storage.add_session_result(record)
        for stint in stints:
            self.storage.add_tyre_stint(stint.model_copy(update={"session_result_id": result_id}))

    # --- flush ---

    def flush_pending_lap_history(self) -> int:
        """Write all buffered laps in one bulk insert; FlushError propagates."""
        with self._lock:
            return self.ctx.buffer.flush(self.storage)

    # --- external control ---

    def set_active_season(self, season_id: Optional[str]) -> None:
        with self._lock:
            self.ctx.season_id = season_id
        logger.info("Active season set to: %s", season_id)

    def set_current_event(self, event_id: Optional[str]) -> None:
        with self._lock:
            self.ctx.event_id = event_id
        logger.info("Current event set to: %s", event_id)

    def get_participant_mappings(self) -> Dict[int, str]:
        with self._lock:
            return dict(self.ctx.slot_to_driver)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def session_uid(self) -> Optional[int]:
        return self.ctx.session_uid

    @property
    def pending_fragment_count(self) -> int:
        return len(self.ctx.buffer)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "running": self._running,
                "season_id": self.ctx.season_id,
                "event_id": self.ctx.event_id,
                "session_uid": self.ctx.session_uid,
                "track_name": self.ctx.track_name,
                "weather": self.ctx.weather,
                "buffer_state": self.ctx.buffer.state.value,
                "pending_fragments": len(self.ctx.buffer),
                "mappings": {str(k): v for k, v in self.ctx.slot_to_driver.items()},
            }
