"""
Historical pipeline: build race records from lap timings and circuit boundary geometry.

CLI usage:
    python -m app.services.historical_pipeline --year 1998 --round 6
    python -m app.services.historical_pipeline --year 2010
    python -m app.services.historical_pipeline --year 2005 --list
    python -m app.services.historical_pipeline --load output/1998-06-circuit-de-monaco.json
"""
import argparse
import asyncio
import re
import sys
from pathlib import Path

from app.config import Settings, get_settings
from app.core.exceptions import NoLapDataException, RaceNotFoundException, ReplayException
from app.core.logging import get_logger, setup_logging
from app.db import SessionLocal, init_db
from app.schemas.geometry import CircuitCoords
from app.schemas.replay import CanonicalRaceRecord
from app.services import race_store
from app.services.circuits import CircuitGeometryProvider
from app.services.driver_timeline import (
    build_driver_timelines,
    build_leader_laps,
    build_position_timeline,
    interpolate_locations,
    scale_locations,
    scale_positions,
    select_winner,
)
from app.services.ergast_client import ErgastClient
from app.services.event_mapper import find_fastest_lap, map_pit_stops_from_records, timeline_lap_times
from app.services.race_assembler import assemble_race_record, driver_info_from_timeline, historical_title
from app.services.time_normalizer import TimeScale
from app.services.track_geometry import BoundaryGeometryOutlineSource
from app.services.track_param import parameterize_track

logger = get_logger(__name__)

# pause between races of a season run, to stay under the API rate limit
SEASON_DELAY_S = 2.0

FILENAME_PATTERN = re.compile(r"^(\d{4})-(\d{2})")


def historical_session_key(year: int, round_num: int) -> int:
    """Synthetic store key; negative so it never collides with a live session key."""
    return -(year * 100 + round_num)


def output_filename(year: int, round_num: int, circuit_name: str | None) -> str:
    """e.g. '1998-06-circuit-de-monaco.json'."""
    slug = re.sub(r"\s+", "-", (circuit_name or "unknown").lower())
    return f"{year}-{round_num:02d}-{slug}.json"


async def build_historical_race(
    ergast: ErgastClient,
    geometry: CircuitGeometryProvider,
    year: int,
    round_num: int,
    settings: Settings,
) -> CanonicalRaceRecord:
    """
    Build the canonical record for one pre-telemetry race.

    Cars are placed on the circuit boundary outline in proportion to lap time;
    the playback window covers the winner's race time.

    Raises:
        RaceNotFoundException: If the race does not exist
        GeometryNotFoundException: If the circuit has no boundary feature
        NoLapDataException: If the race has no lap timings
    """
    logger.info(f"Generating {year} round {round_num}...")

    race = await ergast.get_race_results(year, round_num)
    if race is None:
        raise RaceNotFoundException(f"Race not found: {year} round {round_num}")
    logger.info(f"  Race: {race.race_name} at {race.circuit_id} ({race.date})")
    logger.info(f"  Drivers: {len(race.results)}")

    collection = await geometry.load()
    outline = BoundaryGeometryOutlineSource(collection, race.circuit_id).build_outline()
    param = parameterize_track(outline)

    timings, stops = await asyncio.gather(
        ergast.get_laps(year, round_num),
        ergast.get_pit_stops(year, round_num),
    )
    logger.info(f"  Lap timings: {len(timings)}, pit stops: {len(stops)}")
    if not timings:
        raise NoLapDataException(f"No lap data available for {year} round {round_num}")

    timelines = build_driver_timelines(race.results, timings)
    winner = select_winner(timelines)
    if winner is None:
        raise NoLapDataException(f"No timed laps for {year} round {round_num}")

    scale = TimeScale.from_real_duration(
        winner.total_time,
        max_playback_s=settings.max_playback_s,
        reference_race_ms=settings.reference_race_ms,
        sprint_factor=settings.sprint_factor,
    )
    total_laps = len(winner.laps)
    logger.info(
        f"  Total laps: {total_laps}, winner time: "
        f"{int(winner.total_time // 60)}m {int(winner.total_time % 60)}s"
    )

    logger.info("  Interpolating locations...")
    locations = {}
    positions = {}
    drivers = {}
    for timeline in timelines.values():
        key = str(timeline.number)
        raw = interpolate_locations(
            timeline,
            param,
            winner.total_time + settings.post_race_hold_s,
            sample_interval=settings.sample_interval_s,
        )
        locations[key] = scale_locations(raw, scale, settings.sample_interval_s)
        positions[key] = scale_positions(build_position_timeline(timeline), scale)
        drivers[key] = driver_info_from_timeline(timeline)

    coords = None
    if race.lat is not None and race.lon is not None:
        coords = CircuitCoords(lat=race.lat, lon=race.lon)

    return assemble_race_record(
        title=historical_title(year, race.race_name),
        race_date=race.date,
        circuit_name=race.circuit_name,
        circuit_coords=coords,
        track_outline=outline,
        track_sectors=None,
        drivers=drivers,
        locations=locations,
        positions=positions,
        total_laps=total_laps,
        leader_laps=build_leader_laps(timelines, scale),
        events=[],
        pit_stops=map_pit_stops_from_records(stops, timelines, scale),
        fastest_lap=find_fastest_lap(timeline_lap_times(timelines.values()), scale),
        stints={},
        scale=scale,
        max_playback_s=settings.max_playback_s,
    )


def write_record(record: CanonicalRaceRecord, output_dir: Path, year: int, round_num: int) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / output_filename(year, round_num, record.circuit_name)
    path.write_text(record.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    return path


def store_record(record: CanonicalRaceRecord, session_key: int) -> bool:
    """Load a record into the race store. Returns False if the key is already taken."""
    init_db()
    db = SessionLocal()
    try:
        stored = race_store.save_race(db, session_key, record)
        db.commit()
    except Exception as e:
        logger.error(f"Error storing race: {e}")
        db.rollback()
        raise
    finally:
        db.close()
    return stored


def session_key_from_filename(path: Path) -> int | None:
    """Synthetic key from a generated file name like '1998-06-circuit-de-monaco.json'."""
    match = FILENAME_PATTERN.match(path.name)
    if not match:
        return None
    return historical_session_key(int(match.group(1)), int(match.group(2)))


def load_record_file(path: Path, session_key: int | None = None) -> int:
    """
    Load a previously generated JSON record into the race store.

    Args:
        path: Generated record file
        session_key: Explicit store key; derived from the file name when omitted

    Returns:
        The key the record is stored under

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If no key can be derived, or the file is not a valid record
    """
    key = session_key if session_key is not None else session_key_from_filename(path)
    if key is None:
        raise ValueError(f"Cannot derive a session key from {path.name}; pass --key")

    record = CanonicalRaceRecord.model_validate_json(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded: {record.title}")

    if store_record(record, key):
        logger.info(f"Stored under key {key}")
    else:
        logger.warning(f"Key {key} is already in the store, left unchanged")
    return key


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Run the CLI command. Returns the number of failed races."""
    async with ErgastClient(settings) as ergast:
        if args.list:
            races = await ergast.get_season(args.year)
            for race in races:
                logger.info(f"  Round {race.round}: {race.race_name} ({race.circuit_id})")
            logger.info(f"Total: {len(races)} races")
            return 0

        if args.round is not None:
            rounds = [args.round]
        else:
            rounds = [race.round for race in await ergast.get_season(args.year)]

        geometry = CircuitGeometryProvider(settings)
        failed = 0
        for i, round_num in enumerate(rounds):
            if i:
                await asyncio.sleep(SEASON_DELAY_S)
            try:
                record = await build_historical_race(ergast, geometry, args.year, round_num, settings)
            except ReplayException as e:
                logger.error(f"Failed round {round_num}: {e}")
                failed += 1
                continue

            path = write_record(record, Path(args.output), args.year, round_num)
            logger.info(f"  Saved to: {path}")
            if args.store:
                store_record(record, historical_session_key(args.year, round_num))

        logger.info(f"Complete: {len(rounds) - failed} succeeded, {failed} failed")
        return failed


def main():
    """CLI entrypoint for historical race generation."""
    parser = argparse.ArgumentParser(
        description="Generate historical race replay records from Ergast lap timings"
    )
    parser.add_argument(
        "--year",
        type=int,
        default=None,
        help="Season year (e.g., 1998); required unless --load is given"
    )
    parser.add_argument(
        "--round",
        type=int,
        default=None,
        help="Race round number; omit to generate the whole season"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the season's races instead of generating"
    )
    parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Directory for generated JSON files"
    )
    parser.add_argument(
        "--store",
        action="store_true",
        help="Also load generated races into the race store"
    )
    parser.add_argument(
        "--load",
        type=str,
        default=None,
        metavar="FILE",
        help="Load a previously generated JSON file into the race store"
    )
    parser.add_argument(
        "--key",
        type=int,
        default=None,
        help="Store key for --load (negative); derived from the file name if omitted"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    args = parser.parse_args()
    if args.key is not None and (args.load is None or args.key >= 0):
        parser.error("--key must be negative and used with --load")
    if args.load is None and (args.year is None or not 1950 <= args.year <= 2030):
        parser.error("Invalid year")

    setup_logging(args.log_level)

    if args.load is not None:
        try:
            load_record_file(Path(args.load), args.key)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {args.load}: {e}")
            sys.exit(1)
        sys.exit(0)

    logger.info("=" * 60)
    logger.info(f"Historical Race Generator: {args.year}" + (f" Round {args.round}" if args.round else ""))
    logger.info("=" * 60)

    failed = asyncio.run(run(args, get_settings()))

    logger.info("=" * 60)
    logger.info("Generation complete!" if not failed else f"Generation finished with {failed} failure(s)")
    logger.info("=" * 60)
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
