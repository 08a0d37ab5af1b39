"""
Playback time budget and the race-wide compression factor.

Every `t` emitted for a race goes through the same TimeScale, so all
components of a record share one timeline.
"""
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Sequence

from pydantic import BaseModel, ConfigDict

from app.core.exceptions import NoTimingDataException
from app.core.logging import get_logger
from app.schemas.sources import OpenF1Lap, OpenF1Position

logger = get_logger(__name__)

MAX_PLAYBACK_S = 3300
REFERENCE_RACE_MS = 5_400_000
SPRINT_FACTOR = 0.7

# float noise tolerated when scaling the final real second onto the window edge
WINDOW_EPSILON = 1e-6

DEFAULT_LAP_S = 90.0
MAX_PLAUSIBLE_LAP_S = 300.0


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_playback_duration(
    real_duration_ms: float,
    is_sprint: bool = False,
    max_playback_s: int = MAX_PLAYBACK_S,
    reference_race_ms: int = REFERENCE_RACE_MS,
    sprint_factor: float = SPRINT_FACTOR,
) -> int:
    """
    Playback seconds allotted to a race.

    A reference-length race (90 min) gets the full budget; shorter races get
    proportionally less, sprints a further 30% less.

    Args:
        real_duration_ms: Real race duration in milliseconds
        is_sprint: Whether the session is a sprint race
        max_playback_s: Upper bound of the playback window
        reference_race_ms: Race duration that maps to the full window
        sprint_factor: Multiplier applied to sprint races before clamping

    Returns:
        Playback duration in whole seconds
    """
    base = _round_half_up(real_duration_ms / reference_race_ms * max_playback_s)
    if is_sprint:
        base = _round_half_up(base * sprint_factor)
    return min(max_playback_s, base)


class TimeScale(BaseModel):
    """Maps real race time onto the playback clock."""
    race_start: datetime | None = None
    real_duration_s: float
    playback_duration_s: int

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_real_duration(
        cls,
        real_duration_s: float,
        is_sprint: bool = False,
        race_start: datetime | None = None,
        max_playback_s: int = MAX_PLAYBACK_S,
        reference_race_ms: int = REFERENCE_RACE_MS,
        sprint_factor: float = SPRINT_FACTOR,
    ) -> "TimeScale":
        if real_duration_s <= 0:
            raise NoTimingDataException(f"Race duration must be positive, got {real_duration_s}s")

        playback = compute_playback_duration(
            real_duration_s * 1000,
            is_sprint=is_sprint,
            max_playback_s=max_playback_s,
            reference_race_ms=reference_race_ms,
            sprint_factor=sprint_factor,
        )
        return cls(
            race_start=race_start,
            real_duration_s=real_duration_s,
            playback_duration_s=playback,
        )

    @classmethod
    def from_window(cls, race_start: datetime, race_end: datetime, is_sprint: bool = False, **kwargs) -> "TimeScale":
        return cls.from_real_duration(
            (race_end - race_start).total_seconds(),
            is_sprint=is_sprint,
            race_start=race_start,
            **kwargs,
        )

    @property
    def factor(self) -> float:
        """Playback seconds per real second (k)."""
        return self.playback_duration_s / self.real_duration_s

    def to_playback(self, elapsed_s: float) -> float:
        """Map real seconds since race start to playback seconds."""
        return elapsed_s * self.factor

    def timestamp_to_playback(self, timestamp: datetime) -> float:
        """Map an absolute timestamp to playback seconds."""
        if self.race_start is None:
            raise ValueError("TimeScale has no race start to map timestamps against")
        return self.to_playback((timestamp - self.race_start).total_seconds())

    def in_window(self, t: float) -> bool:
        return 0 <= t <= self.playback_duration_s

    def clamp_to_window(self, t: float) -> float | None:
        """
        Pin t into [0, playback duration].

        Values within float noise of an edge are pinned onto it; anything
        further out returns None.
        """
        limit = float(self.playback_duration_s)
        if t < -WINDOW_EPSILON or t > limit + WINDOW_EPSILON:
            return None
        return min(max(t, 0.0), limit)


def derive_race_window(
    laps: Sequence[OpenF1Lap],
    positions: Sequence[OpenF1Position] = (),
) -> tuple[datetime, datetime]:
    """
    Real start and end of a live race.

    Start is the earliest lap start. End is the latest lap start plus an
    average lap, measured from consecutive lap starts of the same car
    (gaps outside 0-300 s are ignored). Falls back to the span of the
    position feed when fewer than two laps have a start time.

    Raises:
        NoTimingDataException: If nothing carries a timestamp
    """
    timed = sorted((lap for lap in laps if lap.date_start), key=lambda lap: lap.date_start)

    if len(timed) >= 2:
        by_driver: dict[int, list[datetime]] = defaultdict(list)
        for lap in timed:
            by_driver[lap.driver_number].append(lap.date_start)

        gaps = []
        for starts in by_driver.values():
            for previous, current in zip(starts, starts[1:]):
                gap = (current - previous).total_seconds()
                if 0 < gap < MAX_PLAUSIBLE_LAP_S:
                    gaps.append(gap)
        avg_lap_s = sum(gaps) / len(gaps) if gaps else DEFAULT_LAP_S

        race_start = timed[0].date_start
        race_end = timed[-1].date_start
        return race_start, race_end + timedelta(seconds=avg_lap_s)

    logger.warning("Not enough timed laps, deriving race window from position data")
    stamps = [p.date for p in positions if p.date]
    if not stamps:
        raise NoTimingDataException("No timing data available")
    return min(stamps), max(stamps)
