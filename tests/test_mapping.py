import numpy as np
import pytest

from config import DEFAULT_REGION, DisplayRegion
from data_processing import DataPoint
from mapping import GridCoordinateMapper, Marker, SpatialPicker, grid_to_lonlat

SQUARE = DisplayRegion(left_x=0, right_x=100, bottom_y=0, top_y=100)


def test_region_contains_is_inclusive():
    r = DEFAULT_REGION
    assert r.contains(r.left_x, r.bottom_y)
    assert r.contains(r.right_x, r.top_y)
    assert not r.contains(r.left_x - 1, r.bottom_y)
    assert not r.contains(r.right_x, r.top_y + 1)


def test_region_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        DisplayRegion(left_x=10, right_x=10, bottom_y=0, top_y=1)
    with pytest.raises(ValueError):
        DisplayRegion(left_x=0, right_x=10, bottom_y=5, top_y=1)


def test_to_screen_corners():
    mapper = GridCoordinateMapper()
    r = DEFAULT_REGION
    assert mapper.to_screen(r.left_x, r.bottom_y, 800, 462) == pytest.approx((0.0, 462.0))
    assert mapper.to_screen(r.right_x, r.top_y, 800, 462) == pytest.approx((800.0, 0.0))
    mid = mapper.to_screen((r.left_x + r.right_x) / 2, (r.bottom_y + r.top_y) / 2, 800, 462)
    assert mid == pytest.approx((400.0, 231.0))


def test_to_screen_is_monotonic():
    mapper = GridCoordinateMapper()
    x0, y0 = mapper.to_screen(520000, 180000, 640, 480)
    x1, y1 = mapper.to_screen(520001, 180000, 640, 480)
    x2, y2 = mapper.to_screen(520000, 180001, 640, 480)
    assert x1 > x0 and y1 == y0
    assert y2 < y0 and x2 == x0


def test_to_screen_array_matches_scalar():
    mapper = GridCoordinateMapper()
    xs = [510394, 530000, 553297]
    ys = [168504, 180000, 193305]
    sx, sy = mapper.to_screen_array(xs, ys, 800, 462)
    for i, (x, y) in enumerate(zip(xs, ys)):
        assert (sx[i], sy[i]) == pytest.approx(mapper.to_screen(x, y, 800, 462))


def test_to_grid_inverts_to_screen():
    mapper = GridCoordinateMapper()
    sx, sy = mapper.to_screen(531234, 187654, 800, 462)
    assert mapper.to_grid(sx, sy, 800, 462) == pytest.approx((531234, 187654))


def test_non_positive_canvas_rejected():
    mapper = GridCoordinateMapper()
    with pytest.raises(ValueError):
        mapper.to_screen(520000, 180000, 0, 100)
    with pytest.raises(ValueError):
        mapper.to_screen_array([520000], [180000], 100, -1)


def test_grid_to_lonlat_is_in_london():
    lonlat = grid_to_lonlat(530000, 180000)
    assert lonlat is not None
    lon, lat = lonlat
    assert -0.6 < lon < 0.4
    assert 51.3 < lat < 51.8


def test_marker_geometry():
    m = Marker(DataPoint(1, 0, 0, 1.0), 10.0, 20.0)
    assert (m.left, m.top, m.right, m.bottom) == (8.0, 18.0, 23.0, 33.0)
    assert m.center == (15.0, 25.0)
    assert m.contains(8.0, 33.0)
    assert not m.contains(7.9, 20.0)


def _picker(points, width=100, height=100):
    return SpatialPicker.build(points, GridCoordinateMapper(SQUARE), width, height)


# On the 100x100 canvas over SQUARE, screen = (x, 100 - y)
A = DataPoint(1, 10, 90, 5.0)   # marker [8, 23] x [8, 23], center (15, 15)
B = DataPoint(2, 20, 90, 6.0)   # marker [18, 33] x [8, 23], center (25, 15)


def test_pick_none_outside_every_marker():
    picker = _picker([A, B])
    assert picker.pick(50, 50) is None
    assert picker.pick(7.9, 10) is None
    assert _picker([]).pick(10, 10) is None


def test_pick_inside_single_marker_including_edges():
    picker = _picker([A, B])
    assert picker.pick(8, 8) == A
    assert picker.pick(33, 23) == B


def test_pick_closest_center_wins_on_overlap():
    picker = _picker([A, B])
    assert picker.pick(19, 15) == A
    assert picker.pick(22, 15) == B
    # drawing order does not matter
    assert _picker([B, A]).pick(19, 15) == A


def test_pick_equal_distance_goes_to_first_marker():
    assert _picker([A, B]).pick(20, 15) == A
    assert _picker([B, A]).pick(20, 15) == B


def test_picker_skips_invalid_and_out_of_region_points():
    hidden = DataPoint(3, 10, 90, -1.0)
    outside = DataPoint(4, 150, 90, 9.0)
    picker = _picker([hidden, outside, A])
    assert len(picker) == 1
    assert picker.pick(15, 15) == A


def test_markers_at_same_position_are_all_kept():
    twin = DataPoint(9, 10, 90, 8.0)
    picker = _picker([A, twin])
    assert len(picker) == 2
    assert picker.pick(15, 15) == A


def test_picker_rebuilt_for_new_canvas_size():
    small = _picker([A], 100, 100)
    large = _picker([A], 200, 200)
    assert small.pick(15, 15) == A
    assert large.pick(15, 15) is None
    marker = large.pick_marker(25, 25)
    assert marker is not None
    assert (marker.screen_x, marker.screen_y) == pytest.approx((20.0, 20.0))
    assert isinstance(large.markers[0].screen_x, float)
    assert np.isclose(marker.center[0], 25.0)
