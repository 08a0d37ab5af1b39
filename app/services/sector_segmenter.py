"""
Split a track outline into three timed sectors.
"""
import math
from typing import Sequence

from app.core.logging import get_logger
from app.schemas.geometry import Point2D, TrackSectors
from app.schemas.sources import OpenF1Lap

logger = get_logger(__name__)

MIN_SECTOR_POINTS = 3
REFERENCE_LAP_NUMBER = 2


def reference_sector_durations(laps: Sequence[OpenF1Lap]) -> tuple[float, float, float] | None:
    """Sector durations of lap 2, or None if any of them is missing or zero."""
    lap = next((l for l in laps if l.lap_number == REFERENCE_LAP_NUMBER), None)
    if lap is None:
        return None

    durations = (lap.duration_sector_1, lap.duration_sector_2, lap.duration_sector_3)
    if not all(durations):
        return None
    return durations


def segment_sectors(
    outline: Sequence[Point2D],
    sector_durations: Sequence[float] | None,
) -> TrackSectors | None:
    """
    Cut the outline at the points where each sector's share of lap time ends.

    Every sector keeps at least 3 points and adjacent sectors share their
    boundary point, so the rendered segments join without gaps.

    Args:
        outline: Track outline
        sector_durations: (s1, s2, s3) seconds from the reference lap

    Returns:
        TrackSectors, or None when durations are missing or the outline is
        too short to hold three sectors
    """
    n = len(outline)
    if not sector_durations or len(sector_durations) != 3 or not all(d and d > 0 for d in sector_durations):
        logger.info("No sector durations on the reference lap, skipping sectors")
        return None
    if n < 3 * MIN_SECTOR_POINTS:
        logger.warning(f"Outline too short for sectors ({n} points)")
        return None

    s1, s2, s3 = sector_durations
    total = s1 + s2 + s3
    idx1 = math.floor(n * (s1 / total))
    idx2 = math.floor(n * ((s1 + s2) / total))

    safe_idx1 = max(MIN_SECTOR_POINTS, min(idx1, n - 2 * MIN_SECTOR_POINTS))
    safe_idx2 = max(safe_idx1 + MIN_SECTOR_POINTS, min(idx2, n - MIN_SECTOR_POINTS))

    points = list(outline)
    return TrackSectors(
        sector1=points[:safe_idx1 + 1],
        sector2=points[safe_idx1:safe_idx2 + 1],
        sector3=points[safe_idx2:],
    )
