"""Vehicle slot to driver identity resolution."""

import logging
from typing import Dict, List

from .schema import Driver, ParticipantsPacket, UDPParticipantRecord
from .session import SessionContext

logger = logging.getLogger(__name__)


def resolve_participants(
    packet: ParticipantsPacket,
    ctx: SessionContext,
    drivers_by_steam_id: Dict[str, Driver],
) -> List[UDPParticipantRecord]:
    """
    Rebuild the slot -> driver table from a participants packet.

    The table is replaced, not merged. Slots with a blank name and slots whose
    trimmed name matches no known driver stay unmapped; the latter is normal
    for AI cars and unclaimed slots.

    Args:
        packet: Decoded participants packet
        ctx: Session context to update in place
        drivers_by_steam_id: Known drivers keyed by external identifier

    Returns:
        One participant record per mapped slot, for the caller to persist.
        Empty when no active season is configured (the packet is skipped).
    """
    if not ctx.season_id:
        logger.warning("No active season - skipping participants packet")
        return []

    header = packet.header
    if ctx.session_uid is not None and ctx.session_uid != header.session_uid:
        logger.info("Session changed %s -> %s", ctx.session_uid, header.session_uid)
    ctx.session_uid = header.session_uid

    mapping: Dict[int, str] = {}
    records: List[UDPParticipantRecord] = []

    for slot, participant in enumerate(packet.participants):
        name = participant.name.strip() if participant.name else ""
        if not name:
            logger.debug("Skipping empty participant at index %d", slot)
            continue

        driver = drivers_by_steam_id.get(name)
        if driver is None:
            logger.debug("No driver found for external id %r (slot %d)", name, slot)
            continue

        mapping[slot] = driver.id
        records.append(UDPParticipantRecord(
            season_id=ctx.season_id,
            driver_id=driver.id,
            vehicle_index=slot,
            ai_controlled=participant.ai_controlled == 1,
            f123_driver_id=participant.driver_id,
            network_id=participant.network_id,
            team_id=participant.team_id,
            my_team=participant.my_team == 1,
            race_number=participant.race_number,
            nationality=participant.nationality,
            name=participant.name,
            your_telemetry=participant.your_telemetry,
            show_online_names=participant.show_online_names,
            platform=participant.platform,
            session_uid=header.session_uid,
            session_time=header.session_time,
            frame_identifier=header.frame_identifier,
        ))

    ctx.slot_to_driver.clear()
    ctx.slot_to_driver.update(mapping)
    logger.info(
        "Mapped %d of %d participants for session %s",
        len(mapping), len(packet.participants), header.session_uid,
    )
    return records
