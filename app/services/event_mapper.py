"""
Map discrete race events onto the playback clock.
"""
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from app.schemas.replay import (
    FastestLap,
    LeaderLap,
    PitStop,
    PositionSample,
    RaceEvent,
    TireStint,
)
from app.schemas.sources import (
    ErgastPitStop,
    OpenF1Lap,
    OpenF1Position,
    OpenF1RaceControl,
    OpenF1Stint,
)
from app.schemas.timeline import DriverTimeline, LapTime
from app.services.time_normalizer import TimeScale

EVENT_CATEGORIES = frozenset({"Flag", "SafetyCar"})

# On equal durations the first lap seen wins. Input order is whatever the
# feed returned, so ties are not deterministic across sources.
FASTEST_LAP_PREFER_LATER_ON_TIE = False


def map_race_control_events(
    messages: Iterable[OpenF1RaceControl],
    scale: TimeScale,
) -> list[RaceEvent]:
    """Flag and safety car messages inside the race window, sorted by time."""
    events = []
    for msg in messages:
        if not msg.date or msg.category not in EVENT_CATEGORIES:
            continue
        t = scale.timestamp_to_playback(msg.date)
        if not scale.in_window(t):
            continue
        events.append(RaceEvent(
            t=t,
            category=msg.category,
            flag=msg.flag,
            message=msg.message or "",
            lap=msg.lap_number,
        ))
    events.sort(key=lambda e: e.t)
    return events


def map_pit_stops_from_laps(
    laps: Iterable[OpenF1Lap],
    scale: TimeScale,
) -> dict[str, list[PitStop]]:
    """Pit stops inferred from pit-out laps, pinned to the start of that lap."""
    pit_stops: dict[str, list[PitStop]] = defaultdict(list)
    for lap in laps:
        if not lap.is_pit_out_lap or not lap.date_start:
            continue
        t = scale.timestamp_to_playback(lap.date_start)
        if scale.in_window(t):
            pit_stops[str(lap.driver_number)].append(PitStop(t=t, lap=lap.lap_number))
    return dict(pit_stops)


def map_pit_stops_from_records(
    stops: Iterable[ErgastPitStop],
    timelines: Mapping[str, DriverTimeline],
    scale: TimeScale,
) -> dict[str, list[PitStop]]:
    """
    Explicit pit stop records, pinned to the end of the stop lap.

    A stop on a lap the driver has no timing for is placed at t=0.
    """
    pit_stops: dict[str, list[PitStop]] = defaultdict(list)
    for stop in stops:
        timeline = timelines.get(stop.driver_id)
        if timeline is None:
            continue

        lap = next((l for l in timeline.laps if l.lap_number == stop.lap), None)
        t = scale.clamp_to_window(scale.to_playback(lap.end_time)) if lap else 0.0
        if t is None:
            continue
        pit_stops[str(timeline.number)].append(PitStop(t=t, lap=stop.lap))
    return dict(pit_stops)


def openf1_lap_times(laps: Iterable[OpenF1Lap], race_start: datetime) -> list[LapTime]:
    """Live laps as fastest-lap candidates, pinned to their start."""
    return [
        LapTime(
            driver_number=lap.driver_number,
            lap_number=lap.lap_number,
            duration=lap.lap_duration,
            elapsed_s=(lap.date_start - race_start).total_seconds() if lap.date_start else None,
            is_pit_out_lap=lap.is_pit_out_lap,
        )
        for lap in laps
    ]


def timeline_lap_times(timelines: Iterable[DriverTimeline]) -> list[LapTime]:
    """Historical laps as fastest-lap candidates, pinned to their end."""
    return [
        LapTime(
            driver_number=timeline.number,
            lap_number=lap.lap_number,
            duration=lap.duration,
            elapsed_s=lap.end_time,
        )
        for timeline in timelines
        for lap in timeline.laps
    ]


def find_fastest_lap(
    laps: Iterable[LapTime],
    scale: TimeScale,
    prefer_later_on_tie: bool = FASTEST_LAP_PREFER_LATER_ON_TIE,
) -> FastestLap | None:
    """
    Global fastest lap, ignoring lap 1 and pit-out laps.

    Returns:
        FastestLap, or None if no lap qualifies
    """
    best: LapTime | None = None
    for lap in laps:
        if not lap.duration or lap.lap_number <= 1 or lap.is_pit_out_lap:
            continue
        if best is None or lap.duration < best.duration or (
            prefer_later_on_tie and lap.duration == best.duration
        ):
            best = lap

    if best is None:
        return None

    t = 0.0
    if best.elapsed_s is not None:
        t = scale.clamp_to_window(scale.to_playback(best.elapsed_s))
        if t is None:
            t = 0.0 if best.elapsed_s < 0 else float(scale.playback_duration_s)

    return FastestLap(
        driver_number=best.driver_number,
        lap=best.lap_number,
        duration=best.duration,
        t=t,
    )


def map_positions(
    positions: Iterable[OpenF1Position],
    scale: TimeScale,
) -> dict[str, list[PositionSample]]:
    """Running positions per driver inside the race window, sorted by time."""
    by_driver: dict[str, list[PositionSample]] = defaultdict(list)
    for p in positions:
        t = scale.timestamp_to_playback(p.date)
        if scale.in_window(t):
            by_driver[str(p.driver_number)].append(PositionSample(t=t, position=p.position))

    for samples in by_driver.values():
        samples.sort(key=lambda s: s.t)
    return dict(by_driver)


def map_stints(stints: Iterable[OpenF1Stint]) -> dict[str, list[TireStint]]:
    """Tyre stints per driver, ordered by first lap."""
    by_driver: dict[str, list[TireStint]] = defaultdict(list)
    for s in stints:
        by_driver[str(s.driver_number)].append(
            TireStint(lap_start=s.lap_start, lap_end=s.lap_end, compound=s.compound)
        )

    for driver_stints in by_driver.values():
        driver_stints.sort(key=lambda s: s.lap_start if s.lap_start is not None else 0)
    return dict(by_driver)


def map_leader_laps(reference_laps: Sequence[OpenF1Lap], scale: TimeScale) -> list[LeaderLap]:
    """Lap-start markers of the reference car."""
    markers = []
    for lap in sorted(reference_laps, key=lambda l: l.lap_number):
        if not lap.date_start:
            continue
        t = scale.clamp_to_window(scale.timestamp_to_playback(lap.date_start))
        if t is not None:
            markers.append(LeaderLap(t=t, lap=lap.lap_number))
    return markers
