"""
Live pipeline: build a race record from OpenF1 trajectories and timing.
"""
import asyncio
import random
from collections import defaultdict

from sqlalchemy.orm import Session

from app.config import Settings
from app.core.exceptions import NoLapDataException, ReplayException
from app.core.logging import get_logger
from app.schemas.replay import CanonicalRaceRecord, LocationSample
from app.schemas.sources import OpenF1Lap, OpenF1Location, OpenF1Session
from app.services import race_store
from app.services.circuits import get_circuit_coords
from app.services.event_mapper import (
    find_fastest_lap,
    map_leader_laps,
    map_pit_stops_from_laps,
    map_positions,
    map_race_control_events,
    map_stints,
    openf1_lap_times,
)
from app.services.location_normalizer import normalize_driver_locations
from app.services.openf1_client import OpenF1Client
from app.services.race_assembler import assemble_race_record, driver_info_from_openf1, live_title
from app.services.sector_segmenter import reference_sector_durations, segment_sectors
from app.services.time_normalizer import TimeScale, derive_race_window
from app.services.track_geometry import TrajectoryOutlineSource, select_reference_driver

logger = get_logger(__name__)


async def build_live_race(
    client: OpenF1Client,
    session: OpenF1Session,
    settings: Settings,
) -> CanonicalRaceRecord:
    """
    Build the canonical record for one live-timed session.

    Metadata feeds are fetched concurrently. Trajectories are fetched one car
    at a time and normalized straight away; only the outline reference car's
    raw trace is kept until the outline is built.

    Raises:
        NoLapDataException: If the session has no laps
        FetchFailedException: If a required feed cannot be fetched
    """
    sk = session.session_key
    logger.info(f"Building live race {session.label} (session {sk})")

    drivers, positions, laps, race_control, stints = await asyncio.gather(
        client.get_drivers(sk),
        client.get_positions(sk),
        client.get_laps(sk),
        client.get_race_control(sk),
        client.get_stints(sk),
    )
    if not laps:
        raise NoLapDataException(f"No lap data for session {sk}")

    driver_numbers = list(dict.fromkeys(d.driver_number for d in drivers))
    reference_driver = select_reference_driver(driver_numbers, laps)

    race_start, race_end = derive_race_window(laps, positions)
    scale = TimeScale.from_window(
        race_start,
        race_end,
        is_sprint=session.is_sprint,
        max_playback_s=settings.max_playback_s,
        reference_race_ms=settings.reference_race_ms,
        sprint_factor=settings.sprint_factor,
    )
    logger.info(
        f"  Race window {race_start.isoformat()} -> {race_end.isoformat()}, "
        f"playback {scale.playback_duration_s}s"
    )

    logger.info(f"  Processing {len(driver_numbers)} drivers incrementally...")
    locations: dict[str, list[LocationSample]] = {}
    reference_raw: list[OpenF1Location] = []
    for dn in driver_numbers:
        marker = " (outline)" if dn == reference_driver else ""
        logger.info(f"    Driver {dn}{marker}...")
        raw = await client.get_driver_locations(sk, dn)
        locations[str(dn)] = normalize_driver_locations(raw, scale, settings.sample_interval_s)
        if dn == reference_driver:
            reference_raw = raw
        del raw

    laps_by_driver: dict[int, list[OpenF1Lap]] = defaultdict(list)
    for lap in laps:
        laps_by_driver[lap.driver_number].append(lap)
    reference_laps = sorted(laps_by_driver.get(reference_driver, []), key=lambda l: l.lap_number)

    outline = TrajectoryOutlineSource(
        reference_raw,
        reference_laps,
        locations,
        min_spacing=settings.outline_min_spacing,
        min_points=settings.outline_min_points,
    ).build_outline()
    reference_raw = []

    sectors = segment_sectors(outline, reference_sector_durations(reference_laps))
    total_laps = max(lap.lap_number for lap in laps)

    record = assemble_race_record(
        title=live_title(session),
        race_date=session.date_start.date().isoformat() if session.date_start else None,
        circuit_name=session.circuit_short_name,
        circuit_coords=get_circuit_coords(session.circuit_short_name),
        track_outline=outline,
        track_sectors=sectors,
        drivers={str(d.driver_number): driver_info_from_openf1(d) for d in drivers},
        locations=locations,
        positions=map_positions(positions, scale),
        total_laps=total_laps,
        leader_laps=map_leader_laps(reference_laps, scale),
        events=map_race_control_events(race_control, scale),
        pit_stops=map_pit_stops_from_laps(laps, scale),
        fastest_lap=find_fastest_lap(openf1_lap_times(laps, race_start), scale),
        stints=map_stints(stints),
        scale=scale,
        max_playback_s=settings.max_playback_s,
    )
    logger.info(f"  Done: {record.title}")
    return record


async def load_sessions(client: OpenF1Client, db: Session, settings: Settings) -> list[OpenF1Session]:
    """Session list from the store if fresh, else from the API (then stored)."""
    sessions = race_store.get_session_list(db)
    if sessions is not None:
        logger.info(f"Loaded {len(sessions)} sessions from cache")
        return sessions

    logger.info("Fetching race session list from API...")
    sessions = await client.get_race_sessions(settings.live_from_year)
    race_store.set_session_list(db, sessions)
    db.commit()
    logger.info(f"Fetched and cached {len(sessions)} race sessions")
    return sessions


async def refresh_race_cache(
    client: OpenF1Client,
    db: Session,
    settings: Settings,
    rng: random.Random | None = None,
) -> CanonicalRaceRecord | None:
    """
    Generate and store one not-yet-cached race.

    Sessions without trajectory data are marked rejected. A failed build is
    logged and left for a later attempt.

    Returns:
        The stored record, or None if nothing was stored
    """
    try:
        sessions = await load_sessions(client, db, settings)
    except ReplayException as e:
        logger.error(f"[prefetch] Could not load session list: {e}")
        return None

    cached = set(race_store.get_cached_race_keys(db))
    candidates = [
        s for s in sessions
        if s.session_key not in cached and not race_store.is_rejected(db, s.session_key)
    ]
    if not candidates:
        logger.info("[prefetch] All races cached or rejected")
        return None

    session = (rng or random).choice(candidates)
    logger.info(f"[prefetch] Probing: {session.label} (session {session.session_key})")

    try:
        if not await client.probe_location_data(session.session_key):
            logger.info("[prefetch] No location data, rejecting")
            race_store.set_rejected(db, session.session_key)
            db.commit()
            return None

        record = await build_live_race(client, session, settings)
    except ReplayException as e:
        logger.error(f"[prefetch] Failed: {session.label} - {e}")
        return None

    race_store.save_race(db, session.session_key, record)
    db.commit()
    logger.info(f"[prefetch] Cached: {session.label}")
    return record
