"""Tests for arc-length parameterization and path sampling."""
import math

import pytest

from app.core.exceptions import TrackGeometryException
from app.schemas.geometry import Point2D
from app.services.track_param import parameterize_track, sample_position


def _close(a: Point2D, b: Point2D, tol: float = 1e-6) -> bool:
    return math.isclose(a.x, b.x, abs_tol=tol) and math.isclose(a.y, b.y, abs_tol=tol)


class TestParameterizeTrack:
    def test_one_segment_per_point_including_closing_edge(self, square_outline):
        param = parameterize_track(square_outline)

        assert len(param.segments) == len(square_outline)
        assert param.total_dist == pytest.approx(400.0)
        assert [s.start_idx for s in param.segments] == [0, 1, 2, 3]
        assert param.segments[-1].length == pytest.approx(100.0)
        assert param.segments[-1].cumulative_length_before == pytest.approx(300.0)

    def test_segment_lengths_sum_to_total(self):
        outline = [
            Point2D(x=0.0, y=0.0),
            Point2D(x=3.3, y=4.1),
            Point2D(x=17.0, y=-2.2),
            Point2D(x=9.5, y=-11.75),
            Point2D(x=-4.0, y=-6.0),
        ]
        param = parameterize_track(outline)

        assert sum(s.length for s in param.segments) == pytest.approx(param.total_dist, rel=1e-12)

    def test_cumulative_end_is_monotonic(self, square_outline):
        param = parameterize_track(square_outline)

        assert list(param.cumulative_end) == pytest.approx([100.0, 200.0, 300.0, 400.0])

    @pytest.mark.parametrize("outline", [[], [Point2D(x=1, y=1)]])
    def test_rejects_fewer_than_two_points(self, outline):
        with pytest.raises(TrackGeometryException):
            parameterize_track(outline)


class TestSamplePosition:
    def test_zero_progress_is_first_point(self, square_outline):
        param = parameterize_track(square_outline)

        assert _close(sample_position(param, 0.0), square_outline[0])

    def test_last_point_reached_at_its_cumulative_distance(self, square_outline):
        param = parameterize_track(square_outline)
        last = param.segments[-1]

        pos = sample_position(param, last.cumulative_length_before / param.total_dist)

        assert _close(pos, square_outline[-1])

    def test_end_of_lap_closes_back_to_first_point(self, square_outline):
        param = parameterize_track(square_outline)

        pos = sample_position(param, 1 - 1e-9)

        assert _close(pos, square_outline[0], tol=1e-3)

    def test_interpolates_within_segment(self, square_outline):
        param = parameterize_track(square_outline)

        assert _close(sample_position(param, 0.125), Point2D(x=50, y=0))
        assert _close(sample_position(param, 0.625), Point2D(x=50, y=100))
        assert _close(sample_position(param, 0.875), Point2D(x=0, y=50))

    @pytest.mark.parametrize("progress", [-2.7, -0.4, 0.0, 0.3, 0.99, 1.5, 7.25])
    def test_periodic_in_whole_laps(self, square_outline, progress):
        param = parameterize_track(square_outline)

        a = sample_position(param, progress)
        b = sample_position(param, progress + 1)

        assert _close(a, b, tol=1e-6)

    def test_negative_progress_wraps_backwards(self, square_outline):
        param = parameterize_track(square_outline)

        # 0.75 laps into the loop
        assert _close(sample_position(param, -0.25), Point2D(x=0, y=100))

    def test_two_point_outline_runs_out_and_back(self):
        outline = [Point2D(x=0, y=0), Point2D(x=10, y=0)]
        param = parameterize_track(outline)

        assert param.total_dist == pytest.approx(20.0)
        assert _close(sample_position(param, 0.25), Point2D(x=5, y=0))
        assert _close(sample_position(param, 0.5), Point2D(x=10, y=0))
        assert _close(sample_position(param, 0.75), Point2D(x=5, y=0))

    def test_zero_length_segment_is_skipped(self):
        outline = [Point2D(x=0, y=0), Point2D(x=0, y=0), Point2D(x=10, y=0)]
        param = parameterize_track(outline)

        pos = sample_position(param, 0.25)

        assert _close(pos, Point2D(x=5, y=0))
