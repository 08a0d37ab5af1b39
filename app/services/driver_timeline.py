"""
Lap-based driver timelines for races without trajectory data.

Positions are interpolated along the parameterized outline in proportion to
time within each lap; there is no intra-lap telemetry to do better.
"""
from bisect import bisect_right
from collections import defaultdict
from typing import Iterable, Mapping, Sequence

from app.core.logging import get_logger
from app.schemas.replay import LeaderLap, LocationSample, PositionSample
from app.schemas.sources import ErgastLapTiming, ErgastResult
from app.schemas.geometry import TrackParam
from app.schemas.timeline import DriverTimeline, LapRecord
from app.services.location_normalizer import clip_to_window, downsample
from app.services.time_normalizer import TimeScale
from app.services.track_param import sample_position

logger = get_logger(__name__)

# Fraction of a lap between consecutive grid slots (~200 m grid over a ~5 km lap).
# Historical heuristic; override per call if a circuit needs it.
GRID_SPACING = 0.002
DEFAULT_GRID_SLOT = 20

# Approximate historical team colours by Ergast constructorId
TEAM_COLORS: dict[str, str] = {
    "ferrari": "#DC0000",
    "mclaren": "#FF8700",
    "mercedes": "#00D2BE",
    "red_bull": "#1E41FF",
    "williams": "#005AFF",
    "alpine": "#0090FF",
    "renault": "#FFF500",
    "aston_martin": "#006F62",
    "alfa": "#900000",
    "alphatauri": "#2B4562",
    "toro_rosso": "#469BFF",
    "haas": "#FFFFFF",
    "sauber": "#9B0000",
    "racing_point": "#F596C8",
    "force_india": "#FF80C7",
    "lotus_f1": "#000000",
    "caterham": "#005030",
    "marussia": "#6E0000",
    "manor": "#6E0000",
    "virgin": "#CC0000",
    "hrt": "#808080",
    "toyota": "#CC0000",
    "honda": "#FFFFFF",
    "bmw_sauber": "#FFFFFF",
    "super_aguri": "#CC0000",
    "spyker": "#FF6600",
    "midland": "#CC0000",
    "jordan": "#EBC94A",
    "minardi": "#191919",
    "jaguar": "#006400",
    "prost": "#0000CC",
    "arrows": "#FF6600",
    "bar": "#FFFFFF",
    "tyrrell": "#00008B",
    "stewart": "#FFFFFF",
    "benetton": "#00FF00",
    "ligier": "#0000FF",
    "footwork": "#FF6600",
    "simtek": "#800080",
    "pacific": "#006400",
    "forti": "#FFFF00",
    "lola": "#008000",
    "brabham": "#006400",
}
DEFAULT_TEAM_COLOR = "#808080"


def get_team_color(constructor_id: str) -> str:
    return TEAM_COLORS.get(constructor_id, DEFAULT_TEAM_COLOR)


def parse_lap_time(time_str: str | None) -> float | None:
    """
    Parse a lap time string to seconds.

    Accepts "1:23.456" and plain "83.456"; returns None for missing or
    malformed values.
    """
    if not time_str:
        return None
    try:
        parts = time_str.split(":")
        if len(parts) == 2:
            minutes, seconds = parts
            return int(minutes) * 60 + float(seconds)
        return float(time_str)
    except ValueError:
        logger.warning(f"Unparseable lap time: {time_str!r}")
        return None


def _grid_slot(grid: int) -> int:
    # grid 0 means pit lane start
    return grid or DEFAULT_GRID_SLOT


def build_driver_timelines(
    results: Sequence[ErgastResult],
    timings: Iterable[ErgastLapTiming],
) -> dict[str, DriverTimeline]:
    """
    Build one timeline per classified driver.

    Laps are sorted by number before the cumulative clock is computed, so
    timing records may arrive in any order. Timings for drivers missing from
    the results, or with unparseable times, are skipped.

    Args:
        results: Race results (driver list, grid, status)
        timings: Per-lap timing records

    Returns:
        Mapping of Ergast driverId to DriverTimeline
    """
    laps_by_driver: dict[str, list[tuple[int, float, int | None]]] = defaultdict(list)
    known = {r.driver_id for r in results}

    for timing in timings:
        if timing.driver_id not in known:
            continue
        lap_time = parse_lap_time(timing.time)
        if lap_time is None:
            continue
        laps_by_driver[timing.driver_id].append((timing.lap_number, lap_time, timing.position))

    timelines: dict[str, DriverTimeline] = {}
    for result in results:
        raw_laps = sorted(laps_by_driver.get(result.driver_id, []), key=lambda lap: lap[0])

        laps = []
        cum_time = 0.0
        for lap_number, duration, position in raw_laps:
            start = cum_time
            cum_time += duration
            laps.append(LapRecord(
                lap_number=lap_number,
                start_time=start,
                end_time=cum_time,
                duration=duration,
                position=position,
            ))

        timelines[result.driver_id] = DriverTimeline(
            driver_id=result.driver_id,
            number=result.number,
            code=result.code or result.family_name[:3].upper(),
            name=f"{result.given_name} {result.family_name}".strip(),
            team=result.constructor_name,
            color=get_team_color(result.constructor_id),
            grid=result.grid,
            laps=tuple(laps),
            total_time=cum_time,
            finish_status=result.status,
            finish_position=result.position,
        )

    return timelines


def select_winner(timelines: Mapping[str, DriverTimeline]) -> DriverTimeline | None:
    """Quickest driver among those who completed the most laps."""
    with_laps = [t for t in timelines.values() if t.laps]
    if not with_laps:
        return None
    total_laps = max(len(t.laps) for t in with_laps)
    return min(
        (t for t in with_laps if len(t.laps) == total_laps),
        key=lambda t: t.total_time,
    )


def _progress(
    laps: Sequence[LapRecord],
    end_times: Sequence[float],
    t: float,
    grid_progress: float,
) -> float:
    if t < laps[0].start_time:
        return grid_progress

    idx = bisect_right(end_times, t)
    if idx < len(laps) and t >= laps[idx].start_time:
        lap = laps[idx]
        fraction = (t - lap.start_time) / lap.duration if lap.duration > 0 else 0.0
        return (lap.lap_number - 1) + fraction

    return float(laps[-1].lap_number)


def progress_at(
    timeline: DriverTimeline,
    t: float,
    grid_spacing: float = GRID_SPACING,
) -> float | None:
    """
    Lap progress of a driver at real time t.

    Before the first lap: a grid-slot offset behind the line. Within a lap:
    (lap - 1) + fraction of the lap's duration elapsed. After the last
    recorded lap: frozen at that lap's end, never extrapolated.

    Returns:
        Progress in laps, or None for a driver with no laps
    """
    if not timeline.laps:
        return None
    return _progress(
        timeline.laps,
        [lap.end_time for lap in timeline.laps],
        t,
        1 - _grid_slot(timeline.grid) * grid_spacing,
    )


def interpolate_locations(
    timeline: DriverTimeline,
    param: TrackParam,
    race_end_time: float,
    sample_interval: float = 1.0,
    grid_spacing: float = GRID_SPACING,
) -> list[LocationSample]:
    """
    Sample a driver's position every `sample_interval` real seconds.

    Args:
        timeline: Driver timeline
        param: Parameterized outline
        race_end_time: Last real time to sample (inclusive)
        sample_interval: Real-time step
        grid_spacing: Lap fraction per grid slot before the start

    Returns:
        Samples on the real clock (t in real seconds); empty without laps
    """
    if not timeline.laps:
        return []

    end_times = [lap.end_time for lap in timeline.laps]
    grid_progress = 1 - _grid_slot(timeline.grid) * grid_spacing

    locations = []
    step = 0
    t = 0.0
    while t <= race_end_time:
        pos = sample_position(param, _progress(timeline.laps, end_times, t, grid_progress))
        locations.append(LocationSample(t=t, x=pos.x, y=pos.y))
        step += 1
        t = step * sample_interval

    return locations


def scale_locations(
    locations: Iterable[LocationSample],
    scale: TimeScale,
    min_spacing: float = 1.0,
) -> list[LocationSample]:
    """Move real-clock samples onto the playback clock, clip to the window and downsample."""
    scaled = [
        LocationSample(t=scale.to_playback(loc.t), x=loc.x, y=loc.y)
        for loc in locations
    ]
    return downsample(clip_to_window(scaled, scale), min_spacing)


def build_position_timeline(timeline: DriverTimeline) -> list[PositionSample]:
    """Grid slot at t=0, then an entry at each lap end where the standing changed (real clock)."""
    last_pos = _grid_slot(timeline.grid)
    positions = [PositionSample(t=0.0, position=last_pos)]

    for lap in timeline.laps:
        if lap.position is not None and lap.position != last_pos:
            positions.append(PositionSample(t=lap.end_time, position=lap.position))
            last_pos = lap.position

    return positions


def scale_positions(positions: Iterable[PositionSample], scale: TimeScale) -> list[PositionSample]:
    """Move real-clock position entries onto the playback clock, dropping any past the window."""
    scaled = []
    for p in positions:
        t = scale.clamp_to_window(scale.to_playback(p.t))
        if t is not None:
            scaled.append(PositionSample(t=t, position=p.position))
    return scaled


def build_leader_laps(
    timelines: Mapping[str, DriverTimeline],
    scale: TimeScale,
) -> list[LeaderLap]:
    """Lap-end markers of the classified winner (finish position 1)."""
    leader = next((t for t in timelines.values() if t.finish_position == 1), None)
    if leader is None:
        return []

    markers = []
    for lap in leader.laps:
        t = scale.clamp_to_window(scale.to_playback(lap.end_time))
        if t is not None:
            markers.append(LeaderLap(t=t, lap=lap.lap_number))
    return markers
