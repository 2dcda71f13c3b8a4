"""Mutable state of the one live session the pipeline tracks."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from .buffer import LapHistoryBuffer


@dataclass
class SessionContext:
    """
    Season/event selection plus per-session state.

    season_id and event_id outlive a session; session_uid, the slot mapping
    and the lap buffer belong to the current session and are cleared by reset().
    """

    season_id: Optional[str] = None
    event_id: Optional[str] = None
    session_uid: Optional[int] = None
    track_name: Optional[str] = None
    session_type: Optional[int] = None
    weather: Optional[str] = None
    slot_to_driver: Dict[int, str] = field(default_factory=dict)
    buffer: LapHistoryBuffer = field(default_factory=LapHistoryBuffer)

    def driver_for_slot(self, slot: int) -> Optional[str]:
        return self.slot_to_driver.get(slot)

    def reset(self) -> None:
        """Drop session state; unflushed fragments are lost."""
        self.session_uid = None
        self.track_name = None
        self.session_type = None
        self.weather = None
        self.slot_to_driver.clear()
        self.buffer.clear()
