"""In-memory lap history buffer flushed to storage once per session."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from .schema import LapHistoryData, LapRecord, SessionHistoryPacket

logger = logging.getLogger(__name__)


class BufferState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHED = "flushed"


class FlushError(RuntimeError):
    """The bulk lap insert failed; the buffer still holds every fragment."""


class LapSink(Protocol):
    def bulk_insert_lap_records(self, records: List[LapRecord]) -> int: ...


@dataclass
class LapFragment:
    """One delivery of a car's full lap history array."""

    driver_id: str
    laps: List[LapHistoryData]
    session_uid: int
    session_time: float
    frame_identifier: int
    captured_at: datetime


class LapHistoryBuffer:
    """
    Accumulates session-history fragments per driver without touching storage.

    The game re-sends each car's complete history periodically, so the same
    lap shows up in many fragments. With dedupe on (the default) the flush
    keeps one record per (session, driver, lap number) taken from the latest
    fragment. With dedupe off every fragment contributes its laps, which
    writes duplicates.

    State goes idle -> accumulating on the first fragment and to flushed after
    a successful flush. FLUSHED holds until the next fragment (accumulating)
    or clear() (idle), which runs on session reset and processor stop.
    """

    def __init__(self, dedupe: bool = True):
        self.dedupe = dedupe
        self._fragments: Dict[str, List[LapFragment]] = {}
        self._state = BufferState.IDLE

    @property
    def state(self) -> BufferState:
        return self._state

    def __len__(self) -> int:
        return sum(len(frags) for frags in self._fragments.values())

    def fragments_for(self, driver_id: str) -> List[LapFragment]:
        return list(self._fragments.get(driver_id, []))

    def add_fragment(self, driver_id: str, packet: SessionHistoryPacket,
                     captured_at: Optional[datetime] = None) -> LapFragment:
        """Append the packet's lap array verbatim under driver_id."""
        header = packet.header
        fragment = LapFragment(
            driver_id=driver_id,
            laps=list(packet.lap_history),
            session_uid=header.session_uid,
            session_time=header.session_time,
            frame_identifier=header.frame_identifier,
            captured_at=captured_at or datetime.now(timezone.utc),
        )
        self._fragments.setdefault(driver_id, []).append(fragment)
        self._state = BufferState.ACCUMULATING
        return fragment

    def build_lap_records(self) -> List[LapRecord]:
        """
        Turn buffered fragments into lap records.

        Entries with lap_time_ms <= 0 are laps not yet completed and are
        skipped; lap_number is the entry's 1-based index in its fragment.
        """
        if self.dedupe:
            keyed: Dict[Tuple[int, str, int], LapRecord] = {}
            for record in self._iter_records():
                keyed[(record.session_uid, record.driver_id, record.lap_number)] = record
            return list(keyed.values())
        return list(self._iter_records())

    def _iter_records(self):
        for driver_id, fragments in self._fragments.items():
            for fragment in fragments:
                for index, lap in enumerate(fragment.laps):
                    if lap.lap_time_ms <= 0:
                        continue
                    yield LapRecord(
                        driver_id=driver_id,
                        lap_number=index + 1,
                        lap_time_ms=lap.lap_time_ms,
                        sector1_time_ms=lap.sector1_time_ms,
                        sector1_time_minutes=lap.sector1_time_minutes,
                        sector2_time_ms=lap.sector2_time_ms,
                        sector2_time_minutes=lap.sector2_time_minutes,
                        sector3_time_ms=lap.sector3_time_ms,
                        sector3_time_minutes=lap.sector3_time_minutes,
                        lap_valid_bit_flags=lap.lap_valid_bit_flags,
                        session_uid=fragment.session_uid,
                        session_time=fragment.session_time,
                        frame_identifier=fragment.frame_identifier,
                        captured_at=fragment.captured_at,
                    )

    def flush(self, sink: LapSink) -> int:
        """
        Persist every buffered lap with a single bulk insert.

        Returns:
            Number of lap records written (0 when there was nothing to write,
            in which case the sink is not called).

        Raises:
            FlushError: the insert failed; fragments are kept for a retry.
        """
        if not self._fragments:
            return 0

        records = self.build_lap_records()
        if records:
            try:
                sink.bulk_insert_lap_records(records)
            except Exception as e:
                logger.error("Lap history flush failed (%d records kept): %s", len(records), e)
                raise FlushError(f"Bulk lap insert failed: {e}") from e
        written = len(records)

        drivers = len(self._fragments)
        self._fragments.clear()
        self._state = BufferState.FLUSHED
        logger.info("Flushed %d lap records for %d drivers", written, drivers)
        return written

    def clear(self) -> None:
        self._fragments.clear()
        self._state = BufferState.IDLE
