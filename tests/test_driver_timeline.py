"""Tests for lap-based driver timelines (historical races)."""
import pytest

from app.services.driver_timeline import (
    DEFAULT_TEAM_COLOR,
    build_driver_timelines,
    build_leader_laps,
    build_position_timeline,
    get_team_color,
    interpolate_locations,
    parse_lap_time,
    progress_at,
    scale_locations,
    scale_positions,
    select_winner,
)
from app.services.time_normalizer import TimeScale
from app.services.track_param import parameterize_track

from conftest import make_result, make_timings


class TestParseLapTime:
    @pytest.mark.parametrize("raw, expected", [
        ("1:23.456", 83.456),
        ("83.456", 83.456),
        ("0:59.999", 59.999),
        ("2:00.000", 120.0),
    ])
    def test_valid(self, raw, expected):
        assert parse_lap_time(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "abc", "1:xx.1"])
    def test_invalid(self, raw):
        assert parse_lap_time(raw) is None


class TestBuildDriverTimelines:
    def test_out_of_order_laps_are_sorted_before_accumulating(self):
        results = [make_result("hill", 1, grid=1, position=1)]
        timings = make_timings("hill", ["1:30.000", "1:31.000", "1:32.000"])
        shuffled = [timings[2], timings[0], timings[1]]

        timeline = build_driver_timelines(results, shuffled)["hill"]

        assert [lap.lap_number for lap in timeline.laps] == [1, 2, 3]
        assert [lap.start_time for lap in timeline.laps] == pytest.approx([0.0, 90.0, 181.0])
        assert timeline.laps[-1].end_time == pytest.approx(90 + 91 + 92)
        assert timeline.total_time == pytest.approx(273.0)

    def test_driver_metadata(self, two_driver_race):
        results, timings = two_driver_race

        timeline = build_driver_timelines(results, timings)["alesi"]

        assert timeline.number == 27
        assert timeline.code == "ALE"
        assert timeline.name == "Test Alesi"
        assert timeline.team == "Ferrari"
        assert timeline.color == get_team_color("ferrari")
        assert timeline.finish_position == 1

    def test_unknown_drivers_and_bad_times_skipped(self):
        results = [make_result("hill", 1, grid=1, position=1)]
        timings = make_timings("hill", ["1:30.000", "garbage"]) + make_timings("ghost", ["1:20.000"])

        timelines = build_driver_timelines(results, timings)

        assert list(timelines) == ["hill"]
        assert len(timelines["hill"].laps) == 1

    def test_driver_without_laps_kept_empty(self):
        results = [make_result("hill", 1, grid=1, position=1), make_result("dns", 2, grid=0, position=None)]

        timelines = build_driver_timelines(results, make_timings("hill", ["1:30.000"]))

        assert timelines["dns"].laps == ()
        assert timelines["dns"].total_time == 0.0

    def test_unknown_team_color(self):
        assert get_team_color("unknown_team") == DEFAULT_TEAM_COLOR


class TestSelectWinner:
    def test_most_laps_then_fastest(self):
        results = [
            make_result("fast_dnf", 1, grid=1, position=3),
            make_result("slow", 2, grid=2, position=2),
            make_result("quick", 3, grid=3, position=1),
        ]
        timings = (
            make_timings("fast_dnf", ["1:20.000"] * 2)
            + make_timings("slow", ["1:35.000"] * 3)
            + make_timings("quick", ["1:30.000"] * 3)
        )

        winner = select_winner(build_driver_timelines(results, timings))

        assert winner.driver_id == "quick"

    def test_no_laps(self):
        assert select_winner(build_driver_timelines([make_result("a", 1, 1, 1)], [])) is None


class TestProgress:
    def test_progress_within_and_after_laps(self, two_driver_race):
        results, timings = two_driver_race
        timeline = build_driver_timelines(results, timings)["alesi"]

        assert progress_at(timeline, 0.0) == pytest.approx(0.0)
        assert progress_at(timeline, 45.0) == pytest.approx(0.5)
        assert progress_at(timeline, 135.0) == pytest.approx(1.5)
        # frozen at the finish, never extrapolated
        assert progress_at(timeline, 400.0) == pytest.approx(3.0)

    def test_before_start_sits_on_grid_slot(self, two_driver_race):
        results, timings = two_driver_race
        timelines = build_driver_timelines(results, timings)

        assert progress_at(timelines["alesi"], -1.0) == pytest.approx(1 - 0.002)
        assert progress_at(timelines["berger"], -1.0) == pytest.approx(1 - 0.004)
        assert progress_at(timelines["berger"], -1.0, grid_spacing=0.01) == pytest.approx(0.98)

    def test_pit_lane_start_uses_default_slot(self):
        results = [make_result("pit", 5, grid=0, position=5)]
        timeline = build_driver_timelines(results, make_timings("pit", ["1:30.000"]))["pit"]

        assert progress_at(timeline, -1.0) == pytest.approx(1 - 20 * 0.002)

    def test_no_laps(self):
        timeline = build_driver_timelines([make_result("a", 1, 1, 1)], [])["a"]

        assert progress_at(timeline, 10.0) is None


class TestInterpolation:
    def test_end_to_end_two_driver_race(self, two_driver_race, square_outline):
        results, timings = two_driver_race
        timelines = build_driver_timelines(results, timings)
        winner = select_winner(timelines)
        param = parameterize_track(square_outline)

        assert winner.total_time == pytest.approx(270.0)

        scale = TimeScale.from_real_duration(winner.total_time)
        assert scale.playback_duration_s == 165
        assert scale.factor == pytest.approx(0.6111, abs=1e-4)

        raw = interpolate_locations(winner, param, winner.total_time + 60)
        assert raw[-1].t == pytest.approx(330.0)

        locations = scale_locations(raw, scale)
        assert locations[0].t == 0.0
        assert abs(locations[-1].t - 165) <= 1.0
        assert all(0 <= loc.t <= 165 for loc in locations)
        assert all(b.t - a.t >= 1.0 for a, b in zip(locations, locations[1:]))

    def test_cars_on_track_follow_outline(self, two_driver_race, square_outline):
        results, timings = two_driver_race
        timeline = build_driver_timelines(results, timings)["alesi"]
        param = parameterize_track(square_outline)

        raw = interpolate_locations(timeline, param, 90.0, sample_interval=22.5)

        coords = [c for loc in raw for c in (loc.x, loc.y)]
        assert coords == pytest.approx([0, 0, 100, 0, 100, 100, 0, 100, 0, 0])

    def test_no_laps_gives_no_samples(self, square_outline):
        timeline = build_driver_timelines([make_result("a", 1, 1, 1)], [])["a"]

        assert interpolate_locations(timeline, parameterize_track(square_outline), 100.0) == []


class TestPositionsAndLeaderLaps:
    def test_position_changes_only(self):
        results = [make_result("hill", 1, grid=3, position=1)]
        timings = make_timings("hill", ["1:30.000"] * 4, [2, 2, 1, 1])
        timeline = build_driver_timelines(results, timings)["hill"]

        positions = build_position_timeline(timeline)

        assert [(p.t, p.position) for p in positions] == [(0.0, 3), (90.0, 2), (270.0, 1)]

    def test_positions_scaled_and_clipped(self):
        scale = TimeScale.from_real_duration(270.0)
        results = [make_result("hill", 1, grid=3, position=1)]
        timings = make_timings("hill", ["1:30.000"] * 4, [2, 2, 1, 3])
        timeline = build_driver_timelines(results, timings)["hill"]

        positions = scale_positions(build_position_timeline(timeline), scale)

        # the change at 360 s real falls after the window
        assert [p.position for p in positions] == [3, 2, 1]
        assert positions[-1].t == pytest.approx(165.0)

    def test_leader_laps_from_classified_winner(self, two_driver_race):
        results, timings = two_driver_race
        timelines = build_driver_timelines(results, timings)
        scale = TimeScale.from_real_duration(270.0)

        markers = build_leader_laps(timelines, scale)

        assert [m.lap for m in markers] == [1, 2, 3]
        assert [m.t for m in markers] == pytest.approx([55.0, 110.0, 165.0])

    def test_no_classified_winner(self):
        results = [make_result("a", 1, grid=1, position=None)]
        timelines = build_driver_timelines(results, make_timings("a", ["1:30.000"]))

        assert build_leader_laps(timelines, TimeScale.from_real_duration(90.0)) == []
