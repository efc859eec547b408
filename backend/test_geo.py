"""Tests for spherical projection, view cones and distance helpers."""
import math

import pytest

from geo import (
    GeoPoint, CONE_SEGMENTS, coerce_point, destination_point, great_circle_distance,
    initial_bearing, is_finite_number, is_finite_point, path_length, project, to_finite_float,
    view_cone_polygon,
)


RIO = GeoPoint(-22.9673, -43.1788)


class TestFiniteGuards:
    """Tests for the NaN/infinity guards."""

    def test_numbers(self):
        assert is_finite_number(0)
        assert is_finite_number(-43.17)
        assert not is_finite_number(float("nan"))
        assert not is_finite_number(float("inf"))
        assert not is_finite_number("12.5")
        assert not is_finite_number(None)

    def test_bool_is_not_a_coordinate(self):
        assert not is_finite_number(True)

    def test_to_finite_float(self):
        assert to_finite_float("12.5") == 12.5
        assert to_finite_float(3) == 3.0
        for bad in (None, "abc", True, float("nan"), float("inf")):
            with pytest.raises((TypeError, ValueError)):
                to_finite_float(bad)

    def test_points(self):
        assert is_finite_point(RIO)
        assert not is_finite_point(GeoPoint(float("nan"), 0))
        assert not is_finite_point(None)

    def test_coerce_point_accepts_lon_alias(self):
        assert coerce_point({"lat": 1, "lon": 2}) == GeoPoint(1.0, 2.0)

    def test_coerce_point_rejects_garbage(self):
        assert coerce_point({"lat": "x", "lng": 2}) is None
        assert coerce_point({"lat": 1}) is None
        assert coerce_point([1, 2]) is None
        assert coerce_point(GeoPoint(float("inf"), 0)) is None


class TestProjection:
    """Tests for destination point projection."""

    def test_zero_distance_returns_origin(self):
        result = project(RIO, 0, 123)
        assert result.lat == pytest.approx(RIO.lat)
        assert result.lng == pytest.approx(RIO.lng)

    def test_distance_and_bearing_are_preserved(self):
        for distance, bearing in [(100, 30), (500, 90), (2500, 225), (10000, 315)]:
            result = project(RIO, distance, bearing)
            assert great_circle_distance(RIO, result) == pytest.approx(distance, rel=1e-6)
            assert initial_bearing(RIO, result) == pytest.approx(bearing, abs=1e-4)

    def test_north_moves_latitude_only(self):
        result = project(GeoPoint(0, 0), 111195, 0)
        assert result.lat == pytest.approx(1.0, abs=1e-3)
        assert result.lng == pytest.approx(0.0, abs=1e-9)

    def test_non_finite_input_fails(self):
        assert project(GeoPoint(float("nan"), 0), 100, 0) is None
        assert project(RIO, float("inf"), 0) is None
        assert project(RIO, 100, float("nan")) is None

    def test_destination_point_sentinel(self):
        assert destination_point(GeoPoint(float("nan"), 0), 100, 0) == GeoPoint(0.0, 0.0)

    def test_destination_point_success(self):
        assert destination_point(RIO, 100, 0) == project(RIO, 100, 0)


class TestViewCone:
    """Tests for the view cone fan polygon."""

    def test_full_cone_shape(self):
        polygon = view_cone_polygon(RIO, 100, 45, 60)
        assert len(polygon) == CONE_SEGMENTS + 3
        assert polygon[0] == RIO
        assert polygon[-1] == RIO

    def test_rays_span_the_spread(self):
        polygon = view_cone_polygon(RIO, 100, 90, 60)
        assert initial_bearing(RIO, polygon[1]) == pytest.approx(60, abs=1e-3)
        assert initial_bearing(RIO, polygon[-2]) == pytest.approx(120, abs=1e-3)
        for point in polygon[1:-1]:
            assert great_circle_distance(RIO, point) == pytest.approx(100, rel=1e-6)

    def test_invalid_center_yields_empty(self):
        assert view_cone_polygon(GeoPoint(float("nan"), 1), 100, 0, 60) == []

    def test_failed_rays_are_dropped(self):
        polygon = view_cone_polygon(RIO, float("nan"), 0, 60)
        assert polygon == [RIO, RIO]
        assert len(polygon) <= CONE_SEGMENTS + 3


class TestDistances:

    def test_distance_symmetry(self):
        other = GeoPoint(-15.79, -47.88)
        assert great_circle_distance(RIO, other) == pytest.approx(great_circle_distance(other, RIO))

    def test_bearing_range(self):
        bearing = initial_bearing(RIO, GeoPoint(-23.5, -46.6))
        assert 0 <= bearing < 360

    def test_path_length(self):
        a = RIO
        b = project(a, 300, 0)
        c = project(b, 400, 90)
        assert path_length([a, b, c]) == pytest.approx(700, rel=1e-6)
        assert path_length([a]) == 0
        assert not math.isnan(path_length([]))
