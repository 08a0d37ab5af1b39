"""Tests for record assembly and the playback-window invariant."""
import json
from datetime import datetime, timezone

import pytest

from app.core.exceptions import TimelineInvariantError
from app.schemas.geometry import Point2D
from app.schemas.replay import FastestLap, LeaderLap, LocationSample, PitStop, RaceEvent
from app.schemas.sources import OpenF1Driver, OpenF1Session
from app.services.race_assembler import (
    assemble_race_record,
    driver_info_from_openf1,
    historical_title,
    live_title,
    validate_time_bounds,
)
from app.services.time_normalizer import TimeScale

from conftest import make_record


def _assemble(**overrides):
    scale = TimeScale.from_real_duration(270.0)
    kwargs = dict(
        title="1995 Canadian GP",
        race_date="1995-06-11",
        circuit_name="Circuit Gilles Villeneuve",
        circuit_coords=None,
        track_outline=[Point2D(x=0, y=0), Point2D(x=10, y=0)],
        track_sectors=None,
        drivers={},
        locations={"27": [LocationSample(t=0.0, x=0, y=0), LocationSample(t=165.0, x=10, y=0)]},
        positions={},
        total_laps=3,
        leader_laps=[LeaderLap(t=55.0, lap=1)],
        events=[],
        pit_stops={},
        fastest_lap=None,
        stints={},
        scale=scale,
    )
    kwargs.update(overrides)
    return assemble_race_record(**kwargs)


class TestAssembleRaceRecord:
    def test_valid_record(self):
        record = _assemble()

        assert record.race_duration_s == 165
        assert record.total_laps == 3

    def test_serializes_camel_case(self):
        record = _assemble(fastest_lap=FastestLap(driver_number=27, lap=2, duration=90.0, t=110.0))

        doc = json.loads(record.to_json())

        assert doc["raceDurationS"] == 165
        assert doc["fastestLap"]["driverNumber"] == 27
        assert "trackOutline" in doc
        assert "pitStops" in doc

    @pytest.mark.parametrize("overrides, field", [
        ({"locations": {"27": [LocationSample(t=165.5, x=0, y=0)]}}, "locations[27]"),
        ({"leader_laps": [LeaderLap(t=-1.0, lap=1)]}, "laps"),
        ({"events": [RaceEvent(t=200.0, category="Flag")]}, "events"),
        ({"pit_stops": {"28": [PitStop(t=170.0, lap=2)]}}, "pitStops[28]"),
        ({"fastest_lap": FastestLap(driver_number=1, lap=2, duration=80.0, t=166.0)}, "fastestLap"),
    ])
    def test_time_outside_window_rejected(self, overrides, field):
        with pytest.raises(TimelineInvariantError, match=field.replace("[", r"\[").replace("]", r"\]")):
            _assemble(**overrides)

    def test_validate_rejects_oversized_duration(self):
        with pytest.raises(TimelineInvariantError):
            validate_time_bounds(make_record(duration=4000))

    def test_records_are_immutable(self):
        record = _assemble()

        with pytest.raises(Exception):
            record.title = "changed"


class TestTitlesAndDrivers:
    def test_live_titles(self):
        start = datetime(2023, 9, 3, 13, tzinfo=timezone.utc)
        race = OpenF1Session(session_key=9, session_name="Race", year=2023, date_start=start, circuit_short_name="Monza")
        sprint = OpenF1Session(session_key=10, session_name="Sprint", year=2023, circuit_short_name="Spa-Francorchamps")

        assert live_title(race) == "2023 Monza GP"
        assert live_title(sprint) == "2023 Spa-Francorchamps Sprint"

    def test_historical_title(self):
        assert historical_title(1998, "Monaco Grand Prix") == "1998 Monaco GP"

    def test_driver_info_from_openf1(self):
        driver = OpenF1Driver(
            driver_number=44,
            name_acronym="HAM",
            full_name="Lewis HAMILTON",
            team_name="Mercedes",
            team_colour="27F4D2",
        )

        info = driver_info_from_openf1(driver)

        assert (info.number, info.code, info.name, info.team, info.color) == (
            44, "HAM", "Lewis HAMILTON", "Mercedes", "#27F4D2",
        )

    def test_driver_info_defaults(self):
        info = driver_info_from_openf1(OpenF1Driver(driver_number=99, last_name="Doe"))

        assert info.code == "DOE"
        assert info.team == "Unknown"
        assert info.color == "#ffffff"
