# app/schemas/sources.py
"""Upstream feed records (OpenF1 live telemetry, Ergast results)."""
from datetime import datetime
from pydantic import BaseModel, TypeAdapter


# === OpenF1 ===

class OpenF1Session(BaseModel):
    session_key: int
    session_name: str | None = None
    session_type: str | None = None
    year: int | None = None
    date_start: datetime | None = None
    circuit_short_name: str | None = None
    country_name: str | None = None

    @property
    def is_sprint(self) -> bool:
        return self.session_name == "Sprint"

    @property
    def label(self) -> str:
        return f"{self.year} {self.circuit_short_name or self.country_name}"


class OpenF1Driver(BaseModel):
    driver_number: int
    name_acronym: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    full_name: str | None = None
    team_name: str | None = None
    team_colour: str | None = None


class OpenF1Lap(BaseModel):
    driver_number: int
    lap_number: int
    date_start: datetime | None = None
    lap_duration: float | None = None
    duration_sector_1: float | None = None
    duration_sector_2: float | None = None
    duration_sector_3: float | None = None
    is_pit_out_lap: bool | None = None


class OpenF1Location(BaseModel):
    """Raw trajectory sample. (0, 0) is the feed's 'no fix' sentinel."""
    date: datetime
    x: float
    y: float

    @property
    def is_sentinel(self) -> bool:
        return self.x == 0 and self.y == 0


class OpenF1Position(BaseModel):
    driver_number: int
    date: datetime
    position: int


class OpenF1RaceControl(BaseModel):
    date: datetime | None = None
    category: str | None = None
    flag: str | None = None
    message: str | None = None
    lap_number: int | None = None


class OpenF1Stint(BaseModel):
    driver_number: int
    lap_start: int | None = None
    lap_end: int | None = None
    compound: str | None = None


SESSIONS_ADAPTER = TypeAdapter(list[OpenF1Session])
DRIVERS_ADAPTER = TypeAdapter(list[OpenF1Driver])
LAPS_ADAPTER = TypeAdapter(list[OpenF1Lap])
LOCATIONS_ADAPTER = TypeAdapter(list[OpenF1Location])
POSITIONS_ADAPTER = TypeAdapter(list[OpenF1Position])
RACE_CONTROL_ADAPTER = TypeAdapter(list[OpenF1RaceControl])
STINTS_ADAPTER = TypeAdapter(list[OpenF1Stint])


# === Ergast ===

class ErgastResult(BaseModel):
    driver_id: str
    number: int
    code: str | None = None
    given_name: str = ""
    family_name: str = ""
    constructor_id: str = ""
    constructor_name: str = "Unknown"
    grid: int = 0
    status: str = ""
    position: int | None = None


class ErgastRace(BaseModel):
    season: int
    round: int
    race_name: str
    date: str | None = None
    circuit_id: str
    circuit_name: str
    lat: float | None = None
    lon: float | None = None
    results: list[ErgastResult] = []


class ErgastLapTiming(BaseModel):
    lap_number: int
    driver_id: str
    time: str | None = None
    position: int | None = None


class ErgastPitStop(BaseModel):
    driver_id: str
    lap: int
