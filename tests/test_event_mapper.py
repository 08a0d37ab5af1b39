"""Tests for mapping discrete race events onto the playback clock."""
from datetime import timedelta

import pytest

from app.schemas.sources import ErgastPitStop, OpenF1Lap, OpenF1Position, OpenF1RaceControl, OpenF1Stint
from app.schemas.timeline import LapTime
from app.services.driver_timeline import build_driver_timelines
from app.services.event_mapper import (
    find_fastest_lap,
    map_leader_laps,
    map_pit_stops_from_laps,
    map_pit_stops_from_records,
    map_positions,
    map_race_control_events,
    map_stints,
    openf1_lap_times,
    timeline_lap_times,
)
from app.services.time_normalizer import TimeScale

from conftest import RACE_START, make_openf1_laps


@pytest.fixture
def live_scale():
    # 90 min race -> k = 3300 / 5400
    return TimeScale.from_window(RACE_START, RACE_START + timedelta(minutes=90))


@pytest.fixture
def historical_scale():
    return TimeScale.from_real_duration(270.0)


def _at(seconds: float):
    return RACE_START + timedelta(seconds=seconds)


def _lap_time(lap: int, duration: float | None, driver: int = 1, **kwargs) -> LapTime:
    return LapTime(driver_number=driver, lap_number=lap, duration=duration, **kwargs)


class TestFastestLap:
    def test_lap_one_excluded(self, historical_scale):
        laps = [_lap_time(1, 75.0), _lap_time(2, 80.0), _lap_time(3, 78.0)]

        fastest = find_fastest_lap(laps, historical_scale)

        assert fastest.lap == 3
        assert fastest.duration == 78.0

    def test_pit_out_and_missing_durations_excluded(self, historical_scale):
        laps = [
            _lap_time(2, 70.0, is_pit_out_lap=True),
            _lap_time(3, None),
            _lap_time(4, 81.0),
        ]

        assert find_fastest_lap(laps, historical_scale).lap == 4

    def test_tie_keeps_first_by_default(self, historical_scale):
        laps = [_lap_time(2, 80.0, driver=1), _lap_time(2, 80.0, driver=44)]

        assert find_fastest_lap(laps, historical_scale).driver_number == 1
        assert find_fastest_lap(laps, historical_scale, prefer_later_on_tie=True).driver_number == 44

    def test_time_mapped_and_clamped(self, historical_scale):
        laps = [_lap_time(2, 80.0, elapsed_s=180.0), _lap_time(3, 90.0, elapsed_s=1000.0)]

        assert find_fastest_lap(laps, historical_scale).t == pytest.approx(110.0)
        late = find_fastest_lap([_lap_time(3, 90.0, elapsed_s=1000.0)], historical_scale)
        assert late.t == 165.0

    def test_no_candidates(self, historical_scale):
        assert find_fastest_lap([_lap_time(1, 75.0)], historical_scale) is None

    def test_live_laps_pinned_to_start(self, live_scale):
        laps = make_openf1_laps(1, 3)
        laps[2] = laps[2].model_copy(update={"lap_duration": 85.0})

        fastest = find_fastest_lap(openf1_lap_times(laps, RACE_START), live_scale)

        assert fastest.lap == 3
        assert fastest.t == pytest.approx(180 * 3300 / 5400)

    def test_historical_laps_pinned_to_end(self, historical_scale, two_driver_race):
        results, timings = two_driver_race
        timelines = build_driver_timelines(results, timings)

        fastest = find_fastest_lap(timeline_lap_times(timelines.values()), historical_scale)

        assert (fastest.driver_number, fastest.lap) == (27, 2)
        assert fastest.t == pytest.approx(110.0)


class TestRaceControlEvents:
    def test_filters_and_sorts(self, live_scale):
        messages = [
            OpenF1RaceControl(date=_at(600), category="SafetyCar", message="SAFETY CAR DEPLOYED", lap_number=8),
            OpenF1RaceControl(date=_at(60), category="Flag", flag="YELLOW", message="YELLOW IN SECTOR 2", lap_number=1),
            OpenF1RaceControl(date=_at(90), category="Other", message="TRACK LIMITS"),
            OpenF1RaceControl(date=None, category="Flag", flag="GREEN"),
            OpenF1RaceControl(date=_at(-60), category="Flag", flag="GREEN", message="PIT EXIT OPEN"),
            OpenF1RaceControl(date=_at(6000), category="Flag", flag="CHEQUERED"),
        ]

        events = map_race_control_events(messages, live_scale)

        assert [e.category for e in events] == ["Flag", "SafetyCar"]
        assert events[0].flag == "YELLOW"
        assert events[0].message == "YELLOW IN SECTOR 2"
        assert events[0].lap == 1
        assert events[0].t == pytest.approx(60 * 3300 / 5400)
        assert events[1].flag is None


class TestPitStops:
    def test_from_pit_out_laps_at_lap_start(self, live_scale):
        laps = make_openf1_laps(44, 3)
        laps[1] = laps[1].model_copy(update={"is_pit_out_lap": True})
        laps.append(OpenF1Lap(driver_number=44, lap_number=99, date_start=_at(9000), is_pit_out_lap=True))

        stops = map_pit_stops_from_laps(laps, live_scale)

        assert list(stops) == ["44"]
        assert [(s.lap, s.t) for s in stops["44"]] == [(2, pytest.approx(90 * 3300 / 5400))]

    def test_from_records_at_lap_end(self, historical_scale, two_driver_race):
        results, timings = two_driver_race
        timelines = build_driver_timelines(results, timings)
        stops = [
            ErgastPitStop(driver_id="alesi", lap=2),
            ErgastPitStop(driver_id="berger", lap=17),
            ErgastPitStop(driver_id="nobody", lap=1),
        ]

        mapped = map_pit_stops_from_records(stops, timelines, historical_scale)

        assert set(mapped) == {"27", "28"}
        assert mapped["27"][0].t == pytest.approx(110.0)
        # lap without timing goes to the start
        assert mapped["28"][0].t == 0.0
        assert mapped["28"][0].lap == 17


class TestPositionsStintsLeaderLaps:
    def test_positions_grouped_sorted_and_windowed(self, live_scale):
        positions = [
            OpenF1Position(driver_number=1, date=_at(120), position=2),
            OpenF1Position(driver_number=1, date=_at(0), position=1),
            OpenF1Position(driver_number=44, date=_at(-30), position=3),
            OpenF1Position(driver_number=44, date=_at(30), position=2),
        ]

        mapped = map_positions(positions, live_scale)

        assert [p.position for p in mapped["1"]] == [1, 2]
        assert [p.position for p in mapped["44"]] == [2]

    def test_stints_sorted_by_first_lap(self):
        stints = [
            OpenF1Stint(driver_number=1, lap_start=20, lap_end=57, compound="HARD"),
            OpenF1Stint(driver_number=1, lap_start=1, lap_end=19, compound="MEDIUM"),
        ]

        mapped = map_stints(stints)

        assert [s.compound for s in mapped["1"]] == ["MEDIUM", "HARD"]

    def test_leader_laps_from_reference_lap_starts(self, live_scale):
        laps = list(reversed(make_openf1_laps(1, 3)))

        markers = map_leader_laps(laps, live_scale)

        assert [m.lap for m in markers] == [1, 2, 3]
        assert markers[0].t == 0.0
