"""Tests for driver-vs-driver comparison."""

from gridlog.analytics import AnalysisLap
from gridlog.comparison import (
    build_lap_comparison,
    build_status_segments,
    build_tire_wear_comparison,
    lap_statuses,
)


def _laps(times):
    return [AnalysisLap(lap_number=n, lap_time_ms=t) for n, t in times.items()]


class TestLapComparison:

    def test_cumulative_delta(self):
        result = build_lap_comparison(_laps({1: 90000, 2: 91000}), _laps({1: 89000, 2: 90000}))

        lap1, lap2 = result.entries
        assert lap1.target_cumulative_seconds == 90.0
        assert lap1.comparison_cumulative_seconds == 89.0
        assert lap1.delta_seconds == 1.0
        assert lap2.target_cumulative_seconds == 181.0
        assert lap2.comparison_cumulative_seconds == 179.0
        assert lap2.delta_seconds == 2.0
        assert [(d.lap, d.delta_seconds) for d in result.deltas] == [(1, 1.0), (2, 2.0)]

    def test_missing_lap_does_not_reset_cumulative(self):
        result = build_lap_comparison(
            _laps({1: 90000, 2: 0, 3: 91000}),
            _laps({1: 89000, 2: 90000, 3: 90000}),
        )
        lap2 = result.entries[1]
        assert lap2.target_lap_ms is None
        assert lap2.target_cumulative_seconds == 90.0
        assert lap2.delta_seconds is None

        lap3 = result.entries[2]
        assert lap3.target_cumulative_seconds == 181.0
        assert lap3.comparison_cumulative_seconds == 269.0
        assert lap3.delta_seconds == -88.0
        assert [d.lap for d in result.deltas] == [1, 3]

    def test_rows_without_either_side_dropped(self):
        result = build_lap_comparison(_laps({1: 90000, 2: 0}), _laps({1: 89000, 2: -1, 3: 0}))
        assert [e.lap for e in result.entries] == [1]

    def test_union_of_lap_numbers(self):
        result = build_lap_comparison(_laps({1: 90000}), _laps({2: 89000}))
        assert [e.lap for e in result.entries] == [1, 2]
        assert result.entries[1].target_cumulative_seconds == 90.0
        assert result.deltas == []

    def test_empty_side(self):
        assert build_lap_comparison([], _laps({1: 89000})).entries == []

    def test_camel_case_comparison_laps(self):
        other = [AnalysisLap.model_validate({"lapNumber": 1, "lapTimeInMs": 89000})]
        result = build_lap_comparison(_laps({1: 90000}), other)
        assert result.entries[0].delta_seconds == 1.0


class TestStatusSegments:

    def _flagged(self, flags):
        return [AnalysisLap(lap_number=n, vehicle_fia_flags=f) for n, f in flags.items()]

    def test_empty_lap_splits_segments(self):
        laps = self._flagged({1: "YELLOW", 2: "YELLOW", 3: "YELLOW", 4: "None", 5: "YELLOW", 6: "YELLOW"})
        segments, legend = build_status_segments(laps)
        assert [(s.start_lap, s.end_lap) for s in segments] == [(1, 3), (5, 6)]
        assert legend == ["yellowFlag"]

    def test_changed_tag_set_starts_new_segment(self):
        laps = [
            AnalysisLap(lap_number=1, vehicle_fia_flags="YELLOW"),
            AnalysisLap(lap_number=2, vehicle_fia_flags="YELLOW", max_safety_car_status="SAFETY_CAR"),
            AnalysisLap(lap_number=3, max_safety_car_status="SAFETY_CAR", weather="LIGHT_RAIN"),
        ]
        segments, legend = build_status_segments(laps)
        assert [(s.start_lap, s.end_lap, s.statuses) for s in segments] == [
            (1, 1, ["yellowFlag"]),
            (2, 2, ["safetyCar", "yellowFlag"]),
            (3, 3, ["safetyCar", "rain"]),
        ]
        assert legend == ["safetyCar", "yellowFlag", "rain"]

    def test_lap_statuses(self):
        lap = AnalysisLap(lap_number=1, max_safety_car_status="VIRTUAL_SAFETY_CAR", weather="STORM")
        assert lap_statuses(lap) == ["virtualSafetyCar", "rain"]
        assert lap_statuses(AnalysisLap(lap_number=1, vehicle_fia_flags="GREEN", weather="CLEAR")) == []

    def test_comparison_carries_target_overlay(self):
        target = [
            AnalysisLap(lap_number=1, lap_time_ms=90000, vehicle_fia_flags="YELLOW"),
            AnalysisLap(lap_number=2, lap_time_ms=91000),
        ]
        result = build_lap_comparison(target, _laps({1: 89000, 2: 90000}))
        assert [(s.start_lap, s.end_lap) for s in result.status_segments] == [(1, 1)]
        assert result.status_legend == ["yellowFlag"]


class TestTireWearComparison:

    def test_aligned_by_lap_number(self):
        target = [
            AnalysisLap(lap_number=1, tire_compound="Soft", car_damage_data={"tyres_wear": [2, 2, 4, 4]}),
            AnalysisLap(lap_number=2, tire_compound="Soft"),
        ]
        other = [
            AnalysisLap(lap_number=2, tire_compound="Medium", car_damage_data={"tyresWear": [1, 1, 1, 1]}),
            AnalysisLap(lap_number=3, tire_compound="Medium"),
        ]
        rows = build_tire_wear_comparison(target, other)
        assert [(r.lap, r.target_average_wear, r.comparison_average_wear) for r in rows] == [
            (1, 3.0, None),
            (2, None, 1.0),
        ]
        assert rows[1].target_tire_compound == "Soft"
        assert rows[1].comparison_tire_compound == "Medium"

    def test_empty_side(self):
        assert build_tire_wear_comparison([], [AnalysisLap(lap_number=1)]) == []
