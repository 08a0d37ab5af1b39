"""
Shared test fixtures and configuration.
"""
import math
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.config import Settings
from app.db import create_db_engine, init_db
from app.schemas.geometry import Point2D
from app.schemas.replay import CanonicalRaceRecord, DriverInfo, LeaderLap, LocationSample
from app.schemas.sources import ErgastLapTiming, ErgastResult, OpenF1Lap

RACE_START = datetime(2023, 9, 3, 13, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path):
    """Settings with no retry backoff and a throwaway circuits cache."""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        circuits_cache_path=str(tmp_path / "circuits.json"),
        retry_backoff_s=0.0,
        max_retries=3,
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'store.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def square_outline():
    """100 m square, counter-clockwise from the origin."""
    return [
        Point2D(x=0, y=0),
        Point2D(x=100, y=0),
        Point2D(x=100, y=100),
        Point2D(x=0, y=100),
    ]


def circle_point(t: float, lap_s: float = 90.0, radius: float = 500.0) -> tuple[float, float]:
    """Position on a circular test track after t seconds at constant pace."""
    angle = 2 * math.pi * t / lap_s
    return radius * math.cos(angle), radius * math.sin(angle)


def make_openf1_laps(
    driver_number: int,
    count: int,
    lap_s: float = 90.0,
    start: datetime = RACE_START,
    offset_s: float = 0.0,
    sectors: tuple[float, float, float] | None = (30.0, 30.0, 30.0),
) -> list[OpenF1Lap]:
    """Evenly paced live laps for one car."""
    laps = []
    for i in range(count):
        s1, s2, s3 = sectors if sectors else (None, None, None)
        laps.append(OpenF1Lap(
            driver_number=driver_number,
            lap_number=i + 1,
            date_start=start + timedelta(seconds=offset_s + i * lap_s),
            lap_duration=lap_s,
            duration_sector_1=s1,
            duration_sector_2=s2,
            duration_sector_3=s3,
            is_pit_out_lap=False,
        ))
    return laps


def make_result(driver_id: str, number: int, grid: int, position: int | None) -> ErgastResult:
    return ErgastResult(
        driver_id=driver_id,
        number=number,
        code=driver_id[:3].upper(),
        given_name="Test",
        family_name=driver_id.title(),
        constructor_id="ferrari",
        constructor_name="Ferrari",
        grid=grid,
        status="Finished",
        position=position,
    )


def make_timings(driver_id: str, times: list[str], positions: list[int] | None = None) -> list[ErgastLapTiming]:
    return [
        ErgastLapTiming(
            lap_number=i + 1,
            driver_id=driver_id,
            time=time,
            position=positions[i] if positions else None,
        )
        for i, time in enumerate(times)
    ]


@pytest.fixture
def two_driver_race():
    """Two drivers, three 90 s laps each, starting from grid 1 and 2."""
    results = [
        make_result("alesi", 27, grid=1, position=1),
        make_result("berger", 28, grid=2, position=2),
    ]
    timings = (
        make_timings("alesi", ["1:30.000"] * 3, [1, 1, 1])
        + make_timings("berger", ["1:30.000"] * 3, [2, 2, 2])
    )
    return results, timings


def make_record(title: str = "2023 Monza GP", duration: int = 165) -> CanonicalRaceRecord:
    """Small valid record for store and API tests."""
    return CanonicalRaceRecord(
        title=title,
        race_date="2023-09-03",
        circuit_name="Monza",
        track_outline=[Point2D(x=0, y=0), Point2D(x=1, y=0)],
        drivers={"1": DriverInfo(number=1, code="VER", name="Max Verstappen", team="Red Bull Racing", color="#3671C6")},
        locations={"1": [LocationSample(t=0.0, x=0.0, y=0.0), LocationSample(t=duration, x=1.0, y=0.0)]},
        positions={},
        total_laps=1,
        laps=[LeaderLap(t=0.0, lap=1)],
        events=[],
        pit_stops={},
        stints={},
        race_duration_s=duration,
    )
