"""Tests for slot to driver resolution."""

from gridlog.buffer import LapHistoryBuffer
from gridlog.identity import resolve_participants
from gridlog.schema import Driver
from gridlog.session import SessionContext

from packet_helpers import SESSION_UID, participants_packet


def _drivers():
    return {
        "alice_gt": Driver(id="drv_alice", name="Alice", steam_id="alice_gt"),
        "bob_gt": Driver(id="drv_bob", name="Bob", steam_id="bob_gt"),
    }


class TestResolveParticipants:

    def setup_method(self):
        self.ctx = SessionContext(season_id="s2024", buffer=LapHistoryBuffer())

    def test_maps_known_names(self):
        packet = participants_packet(["alice_gt", "Verstappen", "bob_gt"])
        records = resolve_participants(packet, self.ctx, _drivers())

        assert self.ctx.slot_to_driver == {0: "drv_alice", 2: "drv_bob"}
        assert [r.vehicle_index for r in records] == [0, 2]
        assert all(r.season_id == "s2024" for r in records)
        assert self.ctx.session_uid == SESSION_UID

    def test_whitespace_trimmed_before_lookup(self):
        packet = participants_packet(["  alice_gt  "])
        resolve_participants(packet, self.ctx, _drivers())
        assert self.ctx.driver_for_slot(0) == "drv_alice"

    def test_blank_names_skipped(self):
        packet = participants_packet(["", "   ", "bob_gt"])
        records = resolve_participants(packet, self.ctx, _drivers())
        assert self.ctx.slot_to_driver == {2: "drv_bob"}
        assert len(records) == 1

    def test_lookup_is_exact(self):
        packet = participants_packet(["ALICE_GT"])
        assert resolve_participants(packet, self.ctx, _drivers()) == []
        assert self.ctx.slot_to_driver == {}

    def test_mapping_fully_replaced(self):
        resolve_participants(participants_packet(["alice_gt", "bob_gt"]), self.ctx, _drivers())
        resolve_participants(participants_packet(["bob_gt"]), self.ctx, _drivers())
        assert self.ctx.slot_to_driver == {0: "drv_bob"}

    def test_new_session_uid_replaces_old(self):
        resolve_participants(participants_packet(["alice_gt"], session_uid=1), self.ctx, _drivers())
        resolve_participants(participants_packet(["alice_gt"], session_uid=2), self.ctx, _drivers())
        assert self.ctx.session_uid == 2

    def test_no_season_skips_packet(self):
        ctx = SessionContext(buffer=LapHistoryBuffer())
        ctx.slot_to_driver[5] = "drv_old"

        records = resolve_participants(participants_packet(["alice_gt"]), ctx, _drivers())

        assert records == []
        assert ctx.slot_to_driver == {5: "drv_old"}
        assert ctx.session_uid is None
