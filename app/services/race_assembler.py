"""
Compose and validate the canonical race record.
"""
from typing import Iterator

from app.core.exceptions import TimelineInvariantError
from app.core.logging import get_logger
from app.schemas.geometry import CircuitCoords, Point2D, TrackSectors
from app.schemas.replay import (
    CanonicalRaceRecord,
    DriverInfo,
    FastestLap,
    LeaderLap,
    LocationSample,
    PitStop,
    PositionSample,
    RaceEvent,
    TireStint,
)
from app.schemas.sources import OpenF1Driver, OpenF1Session
from app.schemas.timeline import DriverTimeline
from app.services.time_normalizer import TimeScale

logger = get_logger(__name__)


def driver_info_from_openf1(driver: OpenF1Driver) -> DriverInfo:
    """Display data for a live-session driver."""
    code = (
        driver.name_acronym
        or (driver.last_name[:3].upper() if driver.last_name else None)
        or str(driver.driver_number)
    )
    name = driver.full_name or f"{driver.first_name or ''} {driver.last_name or ''}".strip()
    return DriverInfo(
        number=driver.driver_number,
        code=code,
        name=name,
        team=driver.team_name or "Unknown",
        color=f"#{driver.team_colour}" if driver.team_colour else "#ffffff",
    )


def driver_info_from_timeline(timeline: DriverTimeline) -> DriverInfo:
    """Display data for a historical driver."""
    return DriverInfo(
        number=timeline.number,
        code=timeline.code,
        name=timeline.name,
        team=timeline.team,
        color=timeline.color,
    )


def live_title(session: OpenF1Session) -> str:
    """e.g. '2023 Monza GP' or '2023 Spa-Francorchamps Sprint'."""
    year = session.year or (session.date_start.year if session.date_start else "")
    name = session.circuit_short_name or session.country_name or "Unknown"
    suffix = "Sprint" if session.is_sprint else "GP"
    return f"{year} {name} {suffix}"


def historical_title(year: int, race_name: str) -> str:
    """e.g. '1998 Monaco GP'."""
    return f"{year} {race_name.replace(' Grand Prix', ' GP')}"


def _time_fields(record: CanonicalRaceRecord) -> Iterator[tuple[str, float]]:
    for dn, samples in record.locations.items():
        for sample in samples:
            yield f"locations[{dn}]", sample.t
    for dn, samples in record.positions.items():
        for sample in samples:
            yield f"positions[{dn}]", sample.t
    for marker in record.laps:
        yield "laps", marker.t
    for event in record.events:
        yield "events", event.t
    for dn, stops in record.pit_stops.items():
        for stop in stops:
            yield f"pitStops[{dn}]", stop.t
    if record.fastest_lap is not None:
        yield "fastestLap", record.fastest_lap.t


def validate_time_bounds(record: CanonicalRaceRecord, max_playback_s: int = 3300) -> None:
    """
    Check every time field lies inside the playback window.

    Raises:
        TimelineInvariantError: On the first offending field
    """
    limit = record.race_duration_s
    if not 0 < limit <= max_playback_s:
        raise TimelineInvariantError(
            f"raceDurationS={limit} outside (0, {max_playback_s}]"
        )

    for field, t in _time_fields(record):
        if not 0 <= t <= limit:
            raise TimelineInvariantError(f"{field} has t={t:.3f} outside [0, {limit}]")


def assemble_race_record(
    *,
    title: str,
    race_date: str | None,
    circuit_name: str | None,
    circuit_coords: CircuitCoords | None,
    track_outline: list[Point2D],
    track_sectors: TrackSectors | None,
    drivers: dict[str, DriverInfo],
    locations: dict[str, list[LocationSample]],
    positions: dict[str, list[PositionSample]],
    total_laps: int,
    leader_laps: list[LeaderLap],
    events: list[RaceEvent],
    pit_stops: dict[str, list[PitStop]],
    fastest_lap: FastestLap | None,
    stints: dict[str, list[TireStint]],
    scale: TimeScale,
    max_playback_s: int = 3300,
) -> CanonicalRaceRecord:
    """
    Merge pipeline outputs into one immutable record.

    Raises:
        TimelineInvariantError: If any time field escapes the playback window
    """
    record = CanonicalRaceRecord(
        title=title,
        race_date=race_date,
        circuit_name=circuit_name,
        circuit_coords=circuit_coords,
        track_outline=track_outline,
        track_sectors=track_sectors,
        drivers=drivers,
        locations=locations,
        positions=positions,
        total_laps=total_laps,
        laps=leader_laps,
        events=events,
        pit_stops=pit_stops,
        fastest_lap=fastest_lap,
        stints=stints,
        race_duration_s=scale.playback_duration_s,
    )
    validate_time_bounds(record, max_playback_s=max_playback_s)

    logger.info(
        f"Assembled {title}: {len(drivers)} drivers, {total_laps} laps, "
        f"{len(track_outline)} outline points, {scale.playback_duration_s}s playback "
        f"({scale.real_duration_s / scale.playback_duration_s:.2f}x compression)"
    )
    return record
