# app/schemas/timeline.py
"""Per-driver lap timelines built from results and lap timing."""
from pydantic import BaseModel, ConfigDict


class LapRecord(BaseModel):
    """Single lap on a driver's cumulative clock (real seconds from race start)."""
    lap_number: int
    start_time: float
    end_time: float
    duration: float
    position: int | None = None

    model_config = ConfigDict(frozen=True)


class DriverTimeline(BaseModel):
    """A driver's race reconstructed from lap times."""
    driver_id: str
    number: int
    code: str
    name: str
    team: str
    color: str
    grid: int
    laps: tuple[LapRecord, ...]
    total_time: float
    finish_status: str
    finish_position: int | None = None

    model_config = ConfigDict(frozen=True)


class LapTime(BaseModel):
    """
    Source-neutral lap duration used for the fastest-lap search.

    `elapsed_s` is real seconds from race start of the moment the lap is
    pinned to on the playback clock.
    """
    driver_number: int
    lap_number: int
    duration: float | None
    elapsed_s: float | None = None
    is_pit_out_lap: bool | None = None
