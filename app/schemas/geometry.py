# app/schemas/geometry.py
"""Track geometry schemas."""
import numpy as np
from pydantic import BaseModel, ConfigDict, PrivateAttr


class Point2D(BaseModel):
    """Planar point in meters relative to a race-specific origin."""
    x: float
    y: float

    model_config = ConfigDict(frozen=True)


class TrackSegment(BaseModel):
    """One outline edge, including the closing edge last -> first."""
    start_idx: int
    length: float
    cumulative_length_before: float

    model_config = ConfigDict(frozen=True)


class TrackParam(BaseModel):
    """
    Arc-length parameterization of a closed outline.

    `segments` has one entry per outline point: edge i joins point i to
    point (i + 1) % len(outline).
    """
    outline: list[Point2D]
    segments: list[TrackSegment]
    total_dist: float

    model_config = ConfigDict(frozen=True)

    _cumulative_end: np.ndarray = PrivateAttr()

    def model_post_init(self, __context) -> None:
        self._cumulative_end = np.array(
            [s.cumulative_length_before + s.length for s in self.segments],
            dtype=float,
        )

    @property
    def cumulative_end(self) -> np.ndarray:
        """Monotonic distance at the end of each segment."""
        return self._cumulative_end


class TrackSectors(BaseModel):
    """Three contiguous outline slices sharing their boundary points."""
    sector1: list[Point2D]
    sector2: list[Point2D]
    sector3: list[Point2D]


class CircuitCoords(BaseModel):
    """Geodetic circuit location."""
    lat: float
    lon: float
