"""
Normalize raw car trajectories onto the playback clock.
"""
from typing import Iterable, Sequence

from app.schemas.replay import LocationSample
from app.schemas.sources import OpenF1Location
from app.services.time_normalizer import TimeScale

MIN_SAMPLE_SPACING = 1.0


def downsample(
    samples: Iterable[LocationSample],
    min_spacing: float = MIN_SAMPLE_SPACING,
) -> list[LocationSample]:
    """
    Thin a time-sorted sequence to at most one sample per `min_spacing` units.

    The first sample is always kept; a later one only when it is at least
    `min_spacing` after the last kept sample.
    """
    kept: list[LocationSample] = []
    last_t = None
    for sample in samples:
        if last_t is None or sample.t - last_t >= min_spacing:
            kept.append(sample)
            last_t = sample.t
    return kept


def clip_to_window(samples: Iterable[LocationSample], scale: TimeScale) -> list[LocationSample]:
    """Drop samples outside [0, playback duration]."""
    clipped = []
    for sample in samples:
        t = scale.clamp_to_window(sample.t)
        if t is None:
            continue
        if t != sample.t:
            sample = sample.model_copy(update={"t": t})
        clipped.append(sample)
    return clipped


def normalize_driver_locations(
    raw: Sequence[OpenF1Location],
    scale: TimeScale,
    min_spacing: float = MIN_SAMPLE_SPACING,
) -> list[LocationSample]:
    """
    Turn one car's raw trajectory into compact playback samples.

    (0, 0) sentinels are dropped, timestamps mapped through `scale`, samples
    outside the race window discarded (formation and cool-down laps), then
    sorted and downsampled. Output size is bounded by the playback duration
    regardless of input density.

    Args:
        raw: Raw (timestamp, x, y) samples in any order
        scale: Race time scale (must carry the race start)
        min_spacing: Minimum playback time between kept samples

    Returns:
        Time-sorted samples; empty if nothing survives filtering
    """
    points = [
        LocationSample(t=scale.timestamp_to_playback(s.date), x=s.x, y=s.y)
        for s in raw
        if not s.is_sentinel
    ]
    points = clip_to_window(points, scale)
    points.sort(key=lambda p: p.t)
    return downsample(points, min_spacing)
