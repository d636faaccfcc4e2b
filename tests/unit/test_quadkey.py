"""
Quadkey encoder tests.

Known vectors, nesting, cell containment, midpoint tie-breaks,
hierarchy helpers and validation of caller-supplied keys.
"""

import pytest

from core.errors import ErrorCode
from core.models import GeoPoint, WORLD_BOUNDS
from core.quadkey import (
    cell_polygon,
    child_quadkeys,
    encode,
    encode_coordinate,
    is_descendant,
    iter_quadkeys,
    parent_quadkey,
    quadkey_bounds,
    sort_deepest_first,
    validate_quadkey,
    zoom_of,
)
from exceptions import QuadKeyValidationError


class TestEncode:

    def test_known_vector_zoom_4(self, moscow_point):
        assert encode(moscow_point, 4) == "3203"

    def test_known_vector_zoom_6(self, moscow_point):
        assert encode(moscow_point, 6) == "320310"

    def test_length_equals_zoom(self, sample_points):
        for point in sample_points:
            for zoom in (1, 5, 12):
                assert len(encode(point, zoom)) == zoom

    def test_digits_only(self, sample_points):
        for point in sample_points:
            assert set(encode(point, 16)) <= set("0123")

    def test_zoom_zero_is_empty(self, moscow_point):
        assert encode(moscow_point, 0) == ""

    def test_deterministic(self, moscow_point):
        assert encode(moscow_point, 15) == encode(moscow_point, 15)


class TestTieBreak:
    """At or above the midpoint goes upper/right, strictly below goes lower/left."""

    def test_origin_is_north_east(self):
        assert encode_coordinate(0.0, 0.0, 1) == "3"

    def test_just_west_of_meridian(self):
        assert encode_coordinate(-0.0001, 0.0, 1) == "2"

    def test_just_south_of_equator(self):
        assert encode_coordinate(0.0, -1e-9, 1) == "1"

    def test_south_west_corner(self):
        assert encode_coordinate(-180.0, -85.0, 3) == "000"

    def test_north_east_corner(self):
        assert encode_coordinate(180.0, 85.0, 3) == "333"

    def test_walk_applies_same_rule(self):
        origin = GeoPoint(id=1, longitude=0.0, latitude=0.0)
        assert list(iter_quadkeys(origin, 1, 3)) == [(1, "3"), (2, "30")]
        assert encode_coordinate(0.0, 0.0, 2) == "30"


class TestNesting:

    def test_prefix_property(self, sample_points):
        for point in sample_points:
            for zoom in range(1, 18):
                assert encode(point, zoom + 1).startswith(encode(point, zoom))

    def test_iter_quadkeys_matches_encode(self, sample_points):
        for point in sample_points:
            walked = list(iter_quadkeys(point, 3, 9))
            assert walked == [(z, encode(point, z)) for z in range(3, 9)]

    def test_iter_quadkeys_half_open(self, moscow_point):
        zooms = [zoom for zoom, _ in iter_quadkeys(moscow_point, 10, 16)]
        assert zooms == list(range(10, 16))

    def test_iter_quadkeys_empty_range(self, moscow_point):
        assert list(iter_quadkeys(moscow_point, 5, 5)) == []


class TestCellBounds:

    def test_point_inside_its_cell(self, sample_points):
        for point in sample_points:
            for zoom in (1, 4, 10, 16):
                rect = quadkey_bounds(encode(point, zoom))
                assert rect.contains(point.longitude, point.latitude)

    def test_empty_key_is_world(self):
        assert quadkey_bounds("") == WORLD_BOUNDS

    def test_quadrant_layout(self):
        south_west = quadkey_bounds("0")
        north_east = quadkey_bounds("3")
        assert south_west.as_bbox() == (-180.0, -85.0, 0.0, 0.0)
        assert north_east.as_bbox() == (0.0, 0.0, 180.0, 85.0)

    def test_cell_polygon_area(self):
        polygon = cell_polygon("3")
        assert polygon.area == pytest.approx(180.0 * 85.0)

    def test_children_tile_parent(self):
        parent = cell_polygon("320")
        union_area = sum(cell_polygon(child).area for child in child_quadkeys("320"))
        assert union_area == pytest.approx(parent.area)


class TestHierarchy:

    def test_parent(self):
        assert parent_quadkey("3203") == "320"

    def test_parent_of_zoom_one_is_none(self):
        assert parent_quadkey("3") is None

    def test_children(self):
        assert child_quadkeys("32") == ["320", "321", "322", "323"]

    def test_zoom_of(self):
        assert zoom_of("320310") == 6

    def test_is_descendant_strict(self):
        assert is_descendant("3203", "32")
        assert not is_descendant("32", "32")
        assert not is_descendant("3103", "32")

    def test_sort_deepest_first(self):
        keys = ["3", "32", "320", "1", "321", "10"]
        assert sort_deepest_first(keys) == ["320", "321", "10", "32", "1", "3"]


class TestValidateQuadkey:

    def test_valid_key_returned(self):
        assert validate_quadkey("3203", max_zoom=16) == "3203"

    def test_max_length_accepted(self):
        assert validate_quadkey("0" * 16, max_zoom=16) == "0" * 16

    @pytest.mark.parametrize("value", ["", None])
    def test_empty_is_not_found(self, value):
        with pytest.raises(QuadKeyValidationError) as excinfo:
            validate_quadkey(value, max_zoom=16)
        assert excinfo.value.error_code == ErrorCode.RESOURCE_NOT_FOUND

    def test_too_long_is_invalid(self):
        with pytest.raises(QuadKeyValidationError) as excinfo:
            validate_quadkey("0" * 17, max_zoom=16)
        assert excinfo.value.error_code == ErrorCode.INVALID_PARAMETER

    @pytest.mark.parametrize("value", [123, 3.0, b"32", ["3"]])
    def test_non_string_is_invalid(self, value):
        with pytest.raises(QuadKeyValidationError) as excinfo:
            validate_quadkey(value, max_zoom=16)
        assert excinfo.value.error_code == ErrorCode.INVALID_PARAMETER

    @pytest.mark.parametrize("value", ["0124", "32a", "3 2", "-1"])
    def test_bad_digits_are_invalid(self, value):
        with pytest.raises(QuadKeyValidationError) as excinfo:
            validate_quadkey(value, max_zoom=16)
        assert excinfo.value.error_code == ErrorCode.INVALID_PARAMETER
        assert excinfo.value.quadkey == value


class TestOutOfBounds:
    """Out-of-range input is not validated; keys stay well formed and nested."""

    def test_longitude_beyond_range(self):
        point = GeoPoint(id=1, longitude=200.0, latitude=10.0)
        key = encode(point, 8)
        assert len(key) == 8
        assert encode(point, 9).startswith(key)
