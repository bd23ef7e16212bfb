import itertools

import pytest

from cardmatch.conftest import rectangle
from cardmatch.core.types import Point
from cardmatch.detection.confidence import ConfidenceScorer


def test_match_score_saturates():
    scorer = ConfidenceScorer()
    assert scorer.match_score(0) == 0.0
    assert scorer.match_score(18) == pytest.approx(0.5)
    assert scorer.match_score(36) == 1.0
    assert scorer.match_score(500) == 1.0


def test_only_matches_count_without_homography():
    breakdown = ConfidenceScorer().score(36, False, rectangle(300, 375, 400, 250), (1000, 1000))
    assert breakdown.geometry == breakdown.size == breakdown.distance == 0.0
    assert breakdown.total == pytest.approx(0.3)


def test_parallelogram_edges_are_consistent():
    assert ConfidenceScorer.geometry_score(rectangle(0, 0, 400, 250)) == pytest.approx(1.0)


def test_trapezoid_loses_geometry_credit():
    corners = (Point(0, 0), Point(400, 0), Point(300, 250), Point(100, 250))
    # top 400, bottom 200: width difference 0.5, heights equal
    assert ConfidenceScorer.geometry_score(corners) == pytest.approx(0.75)


@pytest.mark.parametrize("width,expected", [(480, 1.0), (360, 0.8), (200, 0.5), (120, 0.0)])
def test_size_steps(width, expected):
    corners = rectangle(0, 0, width, width / 1.6)
    assert ConfidenceScorer().size_score(corners) == expected


def test_distance_prefers_large_centered_cards():
    scorer = ConfidenceScorer()
    centered = scorer.distance_score(rectangle(300, 375, 400, 250), (1000, 1000))
    corner = scorer.distance_score(rectangle(0, 0, 400, 250), (1000, 1000))
    assert centered == pytest.approx(0.9)
    assert corner < centered


def test_scenario_with_twenty_matches():
    breakdown = ConfidenceScorer().score(20, True, rectangle(300, 375, 400, 250), (1000, 1000))
    assert breakdown.match == pytest.approx(20 / 36)
    assert breakdown.geometry == pytest.approx(1.0)
    assert breakdown.size == 0.8
    assert breakdown.total == pytest.approx(0.3 * 20 / 36 + 0.25 + 0.2 + 0.2 * 0.9)
    assert breakdown.total > 0.3


def test_score_is_bounded():
    scorer = ConfidenceScorer()
    polygons = [
        None,
        rectangle(0, 0, 1000, 1000),
        rectangle(300, 375, 400, 250),
        (Point(0, 0), Point(10, 10), Point(20, 20), Point(30, 30)),
        (Point(0, 0), Point(500, 500), Point(500, 0), Point(0, 500)),
    ]
    for matches, found, corners in itertools.product([0, 5, 12, 40, 10000], [True, False], polygons):
        total = scorer.score(matches, found, corners, (1000, 1000)).total
        assert 0.0 <= total <= 1.0


def test_corners_at_infinity_score_nothing_but_matches():
    nan = float("nan")
    corners = (Point(nan, nan), Point(1, 1), Point(2, 2), Point(nan, 0))
    breakdown = ConfidenceScorer().score(36, True, corners, (1000, 1000))
    assert breakdown.total == pytest.approx(0.3 + 0.2 * 0.1)
