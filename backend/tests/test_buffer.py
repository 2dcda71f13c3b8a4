"""Tests for the live lap history buffer and its flush."""

import pytest

from gridlog.buffer import BufferState, FlushError, LapHistoryBuffer

from packet_helpers import history_packet


class RecordingSink:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def bulk_insert_lap_records(self, records):
        if self.fail:
            raise RuntimeError("database is locked")
        self.calls.append(list(records))
        return len(records)


class TestLapHistoryBuffer:

    def setup_method(self):
        self.buffer = LapHistoryBuffer()
        self.sink = RecordingSink()

    def test_starts_idle_and_empty(self):
        assert self.buffer.state == BufferState.IDLE
        assert len(self.buffer) == 0

    def test_add_fragment_accumulates_without_persisting(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 91000]))
        assert self.buffer.state == BufferState.ACCUMULATING
        assert len(self.buffer) == 1
        assert self.sink.calls == []

    def test_fragment_kept_verbatim(self):
        fragment = self.buffer.add_fragment("drv_a", history_packet(0, [90000, 0], frame=321))
        assert [lap.lap_time_ms for lap in fragment.laps] == [90000, 0]
        assert fragment.frame_identifier == 321
        assert self.buffer.fragments_for("drv_a") == [fragment]

    def test_incomplete_laps_are_not_built(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 0, 91500]))
        records = self.buffer.build_lap_records()
        assert [(r.lap_number, r.lap_time_ms) for r in records] == [(1, 90000), (3, 91500)]

    def test_flush_writes_once_and_clears(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 91000]))
        self.buffer.add_fragment("drv_b", history_packet(1, [92000]))

        written = self.buffer.flush(self.sink)

        assert written == 3
        assert len(self.sink.calls) == 1
        assert len(self.buffer) == 0
        assert self.buffer.state == BufferState.FLUSHED

    def test_empty_flush_is_noop(self):
        assert self.buffer.flush(self.sink) == 0
        assert self.sink.calls == []
        assert self.buffer.state == BufferState.IDLE

    def test_flush_of_only_incomplete_laps_skips_sink(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [0, 0]))
        assert self.buffer.flush(self.sink) == 0
        assert self.sink.calls == []
        assert len(self.buffer) == 0

    def test_flush_failure_keeps_buffer(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 91000]))
        with pytest.raises(FlushError):
            self.buffer.flush(RecordingSink(fail=True))

        assert len(self.buffer) == 1
        assert self.buffer.state == BufferState.ACCUMULATING

        # retry succeeds with the kept fragments
        assert self.buffer.flush(self.sink) == 2

    def test_resent_history_deduped_by_driver_and_lap(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000], frame=1))
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 91000], frame=2))
        self.buffer.add_fragment("drv_a", history_packet(0, [90100, 91000, 89900], frame=3))

        self.buffer.flush(self.sink)
        records = self.sink.calls[0]

        assert sorted(r.lap_number for r in records) == [1, 2, 3]
        lap1 = next(r for r in records if r.lap_number == 1)
        # latest fragment wins
        assert lap1.lap_time_ms == 90100
        assert lap1.frame_identifier == 3

    def test_same_lap_in_two_sessions_both_kept(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 91000], session_uid=1))
        self.buffer.add_fragment("drv_a", history_packet(0, [80000], session_uid=2))

        assert self.buffer.flush(self.sink) == 3
        written = sorted((r.session_uid, r.lap_number, r.lap_time_ms) for r in self.sink.calls[0])
        assert written == [(1, 1, 90000), (1, 2, 91000), (2, 1, 80000)]

    def test_clear_resets_to_idle(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000]))
        self.buffer.clear()
        assert len(self.buffer) == 0
        assert self.buffer.state == BufferState.IDLE

    def test_flushed_then_clear_returns_to_idle(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000]))
        self.buffer.flush(self.sink)
        assert self.buffer.state == BufferState.FLUSHED
        self.buffer.clear()
        assert self.buffer.state == BufferState.IDLE

    def test_flushed_then_new_fragment_accumulates(self):
        self.buffer.add_fragment("drv_a", history_packet(0, [90000]))
        self.buffer.flush(self.sink)
        self.buffer.add_fragment("drv_a", history_packet(0, [90000, 91000]))
        assert self.buffer.state == BufferState.ACCUMULATING


def test_append_only_mode_writes_duplicates():
    """Without dedupe each re-sent history repeats every completed lap."""
    buffer = LapHistoryBuffer(dedupe=False)
    sink = RecordingSink()
    buffer.add_fragment("drv_a", history_packet(0, [90000]))
    buffer.add_fragment("drv_a", history_packet(0, [90000, 91000]))

    assert buffer.flush(sink) == 3
    lap_numbers = sorted(r.lap_number for r in sink.calls[0])
    assert lap_numbers == [1, 1, 2]


def test_record_provenance_from_fragment_header():
    buffer = LapHistoryBuffer()
    buffer.add_fragment("drv_a", history_packet(0, [90000], session_uid=42, frame=7))
    record = buffer.build_lap_records()[0]
    assert record.session_uid == 42
    assert record.frame_identifier == 7
    assert record.captured_at is not None
