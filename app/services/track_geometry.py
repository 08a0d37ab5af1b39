"""
Track outline reconstruction.

Two interchangeable outline sources feed the same arc-length core:
- BoundaryGeometryOutlineSource: named circuit boundary features (GeoJSON),
  used when there is no trajectory data (historical races)
- TrajectoryOutlineSource: one reference car's live trajectory
"""
from collections import Counter
from datetime import datetime
from typing import Any, Iterable, Mapping, Protocol, Sequence

import numpy as np

from app.core.exceptions import GeometryNotFoundException, UnsupportedGeometryException
from app.core.logging import get_logger
from app.schemas.geometry import Point2D
from app.schemas.replay import LocationSample
from app.schemas.sources import OpenF1Lap, OpenF1Location
from app.services.circuits import CIRCUIT_NAME_MAPPING

logger = get_logger(__name__)

METERS_PER_DEG_LAT = 111320.0

OUTLINE_MIN_SPACING = 20.0
OUTLINE_MIN_POINTS = 20
FALLBACK_WINDOW_POINTS = 300
FALLBACK_DEPARTURE_DISTANCE = 5.0


class OutlineSource(Protocol):
    """Anything that can produce a closed-loop track outline."""

    def build_outline(self) -> list[Point2D]:
        """
        Reconstruct the outline.

        Raises:
            GeometryNotFoundException: If no outline can be produced
        """
        ...


# === Boundary geometry ===

def extract_path_coordinates(geometry: Mapping[str, Any]) -> list[list[float]]:
    """
    Reduce a GeoJSON geometry to a single (lon, lat) path.

    LineString is used as-is, MultiLineString keeps its longest line and
    Polygon keeps its outer ring.

    Raises:
        UnsupportedGeometryException: For any other geometry type
    """
    geom_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []

    if geom_type == "LineString":
        return list(coordinates)
    if geom_type == "MultiLineString":
        # main track is the line with the most vertices; the last one wins ties
        return list(max(reversed(coordinates), key=len)) if coordinates else []
    if geom_type == "Polygon":
        return list(coordinates[0]) if coordinates else []

    raise UnsupportedGeometryException(f"Unsupported geometry type: {geom_type}")


def to_local_coords(coordinates: Sequence[Sequence[float]]) -> list[Point2D]:
    """
    Project (lon, lat) degrees to planar meters around the path centroid.

    Equirectangular approximation, good enough at circuit scale.
    """
    if not coordinates:
        return []

    lonlat = np.array([(c[0], c[1]) for c in coordinates], dtype=float)
    center_lon, center_lat = lonlat.mean(axis=0)
    meters_per_deg_lon = METERS_PER_DEG_LAT * np.cos(np.radians(center_lat))

    xs = (lonlat[:, 0] - center_lon) * meters_per_deg_lon
    ys = (lonlat[:, 1] - center_lat) * METERS_PER_DEG_LAT
    return [Point2D(x=float(x), y=float(y)) for x, y in zip(xs, ys)]


class BoundaryGeometryOutlineSource:
    """Outline from a named circuit feature in a GeoJSON FeatureCollection."""

    def __init__(
        self,
        collection: Mapping[str, Any],
        circuit_id: str,
        name_mapping: Mapping[str, str] | None = None,
    ):
        self.collection = collection
        self.circuit_id = circuit_id
        self.name_mapping = CIRCUIT_NAME_MAPPING if name_mapping is None else name_mapping

    def find_feature(self) -> Mapping[str, Any]:
        """Find the first feature whose name contains the circuit's display name."""
        search_name = self.name_mapping.get(self.circuit_id)
        if not search_name:
            raise GeometryNotFoundException(f"No mapping for circuit: {self.circuit_id}")

        needle = search_name.lower()
        for feature in self.collection.get("features", []):
            name = (feature.get("properties") or {}).get("Name") or ""
            if needle in name.lower():
                return feature

        raise GeometryNotFoundException(
            f"Circuit not found in GeoJSON: {self.circuit_id} (searched for {search_name})"
        )

    def build_outline(self) -> list[Point2D]:
        feature = self.find_feature()
        coords = extract_path_coordinates(feature.get("geometry") or {})
        outline = to_local_coords(coords)
        if len(outline) < 2:
            raise GeometryNotFoundException(
                f"Circuit geometry for {self.circuit_id} has {len(outline)} point(s)"
            )
        logger.info(f"Boundary outline for {self.circuit_id}: {len(outline)} points")
        return outline


# === Trajectory ===

def select_reference_driver(driver_numbers: Iterable[int], laps: Iterable[OpenF1Lap]) -> int:
    """Pick the car with the most lap records; the first listed wins ties."""
    lap_counts = Counter(lap.driver_number for lap in laps)
    numbers = list(driver_numbers)
    if not numbers:
        raise GeometryNotFoundException("No drivers to choose an outline car from")
    return max(numbers, key=lambda dn: lap_counts.get(dn, 0))


def find_reference_lap_window(laps: Sequence[OpenF1Lap]) -> tuple[datetime, datetime] | None:
    """
    Start of lap 2 to start of lap 3.

    Lap 1 carries the standing start and often pit-lane detours. When either
    start is missing, the first consecutive pair from lap 2 on with both
    starts is used.
    """
    ordered = sorted(laps, key=lambda lap: lap.lap_number)
    starts = {lap.lap_number: lap.date_start for lap in ordered}

    if starts.get(2) and starts.get(3):
        return starts[2], starts[3]

    for current, following in zip(ordered, ordered[1:]):
        if current.lap_number >= 2 and current.date_start and following.date_start:
            return current.date_start, following.date_start
    return None


def compact_trajectory(points: Iterable[Point2D], min_spacing: float) -> list[Point2D]:
    """Keep a point only when it is more than `min_spacing` from the last kept one."""
    kept: list[Point2D] = []
    for point in points:
        if not kept:
            kept.append(point)
            continue
        last = kept[-1]
        if np.hypot(point.x - last.x, point.y - last.y) > min_spacing:
            kept.append(point)
    return kept


def fallback_outline(
    driver_locations: Mapping[str, Sequence[LocationSample]],
    window: int = FALLBACK_WINDOW_POINTS,
    departure_distance: float = FALLBACK_DEPARTURE_DISTANCE,
) -> list[Point2D]:
    """
    Approximate the outline from the densest normalized trace.

    Starts at the first sample that moved more than `departure_distance`
    from its predecessor (car left the grid or pit box) and takes `window`
    samples from there.
    """
    if not driver_locations:
        return []

    # highest car number wins ties
    by_number_desc = sorted(driver_locations, key=int, reverse=True)
    best = max(by_number_desc, key=lambda dn: len(driver_locations[dn]))
    samples = driver_locations[best]

    start = 0
    for i in range(1, len(samples)):
        dx = samples[i].x - samples[i - 1].x
        dy = samples[i].y - samples[i - 1].y
        if np.hypot(dx, dy) > departure_distance:
            start = i
            break

    return [Point2D(x=s.x, y=s.y) for s in samples[start:start + window]]


class TrajectoryOutlineSource:
    """
    Outline from the reference car's raw trajectory over one clean lap.

    Falls back to `fallback_outline` over the normalized traces when the lap
    window yields fewer than `min_points` points.
    """

    def __init__(
        self,
        raw_locations: Sequence[OpenF1Location],
        reference_laps: Sequence[OpenF1Lap],
        driver_locations: Mapping[str, Sequence[LocationSample]],
        min_spacing: float = OUTLINE_MIN_SPACING,
        min_points: int = OUTLINE_MIN_POINTS,
    ):
        self.raw_locations = raw_locations
        self.reference_laps = reference_laps
        self.driver_locations = driver_locations
        self.min_spacing = min_spacing
        self.min_points = min_points

    def _lap_window_outline(self) -> list[Point2D]:
        window = find_reference_lap_window(self.reference_laps)
        if window is None:
            return []

        lap_start, lap_end = window
        in_window = sorted(
            (s for s in self.raw_locations
             if not s.is_sentinel and lap_start <= s.date <= lap_end),
            key=lambda s: s.date,
        )
        return compact_trajectory(
            (Point2D(x=s.x, y=s.y) for s in in_window), self.min_spacing
        )

    def build_outline(self) -> list[Point2D]:
        outline = self._lap_window_outline()
        if len(outline) >= self.min_points:
            logger.info(f"Trajectory outline: {len(outline)} points")
            return outline

        logger.warning(
            f"Lap-window outline has only {len(outline)} points, "
            f"falling back to densest normalized trace"
        )
        outline = fallback_outline(self.driver_locations)
        if not outline:
            raise GeometryNotFoundException("No trajectory samples to build an outline from")
        return outline
