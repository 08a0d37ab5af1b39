# app/schemas/replay.py
"""Canonical race replay record shared by the live and historical pipelines."""
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from app.schemas.common import CamelModel
from app.schemas.geometry import CircuitCoords, Point2D, TrackSectors


class DriverInfo(CamelModel):
    """Driver display data."""
    number: int
    code: str
    name: str
    team: str
    color: str


class LocationSample(CamelModel):
    """Normalized position of a car at playback time t."""
    t: float
    x: float
    y: float


class PositionSample(CamelModel):
    """Running race position from playback time t onwards."""
    t: float
    position: int


class LeaderLap(CamelModel):
    """Lap marker for the lap counter."""
    t: float
    lap: int


class RaceEvent(CamelModel):
    """Flag or safety car message."""
    t: float
    category: str
    flag: str | None = None
    message: str = ""
    lap: int | None = None


class PitStop(CamelModel):
    t: float
    lap: int


class FastestLap(CamelModel):
    driver_number: int
    lap: int
    duration: float
    t: float


class TireStint(CamelModel):
    lap_start: int | None = None
    lap_end: int | None = None
    compound: str | None = None


class CanonicalRaceRecord(CamelModel):
    """
    Everything the replay client needs to animate one race.

    Per-driver maps are keyed by racing number (as a string, like the JSON
    the client reads). Every `t` lies in [0, race_duration_s].
    """
    title: str
    race_date: str | None = None
    circuit_name: str | None = None
    circuit_coords: CircuitCoords | None = None
    track_outline: list[Point2D]
    track_sectors: TrackSectors | None = None
    drivers: dict[str, DriverInfo]
    locations: dict[str, list[LocationSample]]
    positions: dict[str, list[PositionSample]]
    total_laps: int
    laps: list[LeaderLap]
    events: list[RaceEvent]
    pit_stops: dict[str, list[PitStop]]
    fastest_lap: FastestLap | None = None
    stints: dict[str, list[TireStint]]
    race_duration_s: int

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> str:
        """Serialize with the client's camelCase keys."""
        return self.model_dump_json(by_alias=True)
