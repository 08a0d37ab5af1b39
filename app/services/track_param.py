"""
Arc-length parameterization of closed track outlines.
"""
import math
from typing import Sequence

import numpy as np

from app.core.exceptions import TrackGeometryException
from app.schemas.geometry import Point2D, TrackParam, TrackSegment


def parameterize_track(outline: Sequence[Point2D]) -> TrackParam:
    """
    Build the cumulative-distance table for an outline treated as a closed loop.

    Args:
        outline: Ordered outline points (at least 2)

    Returns:
        TrackParam with one segment per point; the last one is the closing
        edge back to the first point.

    Raises:
        TrackGeometryException: If the outline has fewer than 2 points
    """
    if len(outline) < 2:
        raise TrackGeometryException(
            f"Cannot parameterize an outline with {len(outline)} point(s)"
        )

    coords = np.array([(p.x, p.y) for p in outline], dtype=float)
    following = np.roll(coords, -1, axis=0)
    lengths = np.hypot(following[:, 0] - coords[:, 0], following[:, 1] - coords[:, 1])
    cumulative_before = np.concatenate(([0.0], np.cumsum(lengths)[:-1]))

    segments = [
        TrackSegment(
            start_idx=i,
            length=float(lengths[i]),
            cumulative_length_before=float(cumulative_before[i]),
        )
        for i in range(len(outline))
    ]

    return TrackParam(
        outline=list(outline),
        segments=segments,
        total_dist=float(lengths.sum()),
    )


def sample_position(param: TrackParam, progress: float) -> Point2D:
    """
    Get the outline position at a fractional lap progress.

    Only the fractional part of `progress` matters, so 0, 1 and 2 all map to
    the first outline point.

    Args:
        param: Parameterized track
        progress: Lap progress (any real number)

    Returns:
        Linearly interpolated Point2D on the outline
    """
    progress = progress - math.floor(progress)
    target_dist = progress * param.total_dist

    # first segment whose end reaches the target distance
    idx = int(np.searchsorted(param.cumulative_end, target_dist, side="left"))
    idx = min(idx, len(param.segments) - 1)
    seg = param.segments[idx]

    seg_progress = (
        (target_dist - seg.cumulative_length_before) / seg.length
        if seg.length > 0 else 0.0
    )
    p1 = param.outline[seg.start_idx]
    p2 = param.outline[(seg.start_idx + 1) % len(param.outline)]

    return Point2D(
        x=p1.x + (p2.x - p1.x) * seg_progress,
        y=p1.y + (p2.y - p1.y) * seg_progress,
    )
