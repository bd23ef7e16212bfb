import pytest

from cardmatch.conftest import rectangle
from cardmatch.core.types import Point, Rect, ValidationError
from cardmatch.detection.geometry import (
    GeometricValidator,
    average_dimensions,
    calculate_bounding_box,
    calculate_polygon_area,
)


@pytest.mark.parametrize("side", [1.0, 3.0, 250.0])
def test_square_area(side):
    assert calculate_polygon_area(rectangle(10, 20, side, side)) == pytest.approx(side * side)


def test_area_does_not_depend_on_winding():
    corners = rectangle(0, 0, 40, 25)
    assert calculate_polygon_area(corners[::-1]) == pytest.approx(1000.0)


def test_collinear_polygon_has_no_area():
    corners = (Point(0, 0), Point(10, 10), Point(20, 20), Point(30, 30))
    assert calculate_polygon_area(corners) == 0.0


def test_too_few_points_have_no_area():
    assert calculate_polygon_area(()) == 0.0
    assert calculate_polygon_area((Point(0, 0), Point(5, 5))) == 0.0


def test_average_dimensions_and_bounding_box():
    corners = rectangle(100, 50, 320, 200)
    assert average_dimensions(corners) == pytest.approx((320.0, 200.0))
    assert calculate_bounding_box(corners) == Rect(100, 50, 420, 250)
    assert calculate_bounding_box(()) is None


def test_centered_card_is_valid():
    check = GeometricValidator().validate(rectangle(300, 375, 400, 250), (1000, 1000))
    assert check.valid
    assert check.reason is None
    assert check.area == pytest.approx(100000.0)
    assert check.aspect_ratio == pytest.approx(1.6)


def test_corner_outside_frame():
    corners = (Point(-10, 100), Point(400, 100), Point(400, 350), Point(0, 350))
    check = GeometricValidator().validate(corners, (1000, 1000))
    assert check.reason is ValidationError.CORNER_OUT_OF_BOUNDS


def test_area_above_maximum():
    # 90% of the frame
    check = GeometricValidator().validate(rectangle(0, 50, 1000, 900), (1000, 1000))
    assert not check.valid
    assert check.reason is ValidationError.AREA_OUT_OF_RANGE


def test_area_below_minimum():
    check = GeometricValidator().validate(rectangle(10, 10, 160, 100), (1000, 1000))
    assert check.reason is ValidationError.AREA_OUT_OF_RANGE


def test_degenerate_polygon_is_rejected():
    corners = (Point(0, 0), Point(10, 10), Point(20, 20), Point(30, 30))
    check = GeometricValidator().validate(corners, (100, 100))
    assert check.reason is ValidationError.AREA_OUT_OF_RANGE


def test_too_narrow():
    check = GeometricValidator().validate(rectangle(10, 10, 140, 88), (600, 400))
    assert check.reason is ValidationError.TOO_SMALL


def test_diagonal_too_short():
    check = GeometricValidator().validate(rectangle(10, 10, 160, 100), (600, 400))
    assert check.reason is ValidationError.TOO_SMALL
    assert "diagonal" in check.message


def test_square_is_not_a_card():
    check = GeometricValidator().validate(rectangle(300, 300, 400, 400), (1000, 1000))
    assert check.reason is ValidationError.ASPECT_RATIO_MISMATCH
    assert check.aspect_ratio == pytest.approx(1.0)


def test_two_corners_outside_overlay():
    overlay = Rect.from_xywh(300, 375, 400, 250)
    corners = rectangle(450, 375, 400, 250)
    check = GeometricValidator().validate(corners, (1000, 1000), overlay)
    assert check.reason is ValidationError.OVERLAY_MISALIGNED


def test_one_corner_outside_overlay_is_tolerated():
    overlay = Rect.from_xywh(300, 375, 400, 250)
    corners = (Point(300, 375), Point(700, 375), Point(720, 640), Point(300, 625))
    check = GeometricValidator().validate(corners, (1000, 1000), overlay)
    assert check.valid


def test_overlay_margin():
    overlay = Rect.from_xywh(300, 375, 400, 250)
    # every corner a few pixels outside, inside the margin
    corners = rectangle(297, 372, 406, 256)
    assert GeometricValidator().validate(corners, (1000, 1000), overlay).valid


def test_card_too_small_for_overlay():
    overlay = Rect.from_xywh(200, 310, 600, 380)
    check = GeometricValidator().validate(rectangle(300, 375, 400, 250), (1000, 1000), overlay)
    assert check.reason is ValidationError.INSUFFICIENT_COVERAGE
