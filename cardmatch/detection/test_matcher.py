import numpy as np

from cardmatch.core.types import FeatureSet, Keypoint, Point
from cardmatch.detection.features import FeatureExtractor
from cardmatch.detection.matcher import Matcher
from cardmatch.detection.preprocessing import FramePreprocessor


def _features(template, fast_settings):
    normalized = FramePreprocessor(fast_settings.preprocess).normalize(template, is_reference=True)
    return FeatureExtractor(fast_settings.features).extract(normalized.pixels)


def test_empty_side_gives_no_matches(template, fast_settings):
    features = _features(template, fast_settings)
    matcher = Matcher()

    assert len(matcher.match(FeatureSet.empty(), features)) == 0
    assert len(matcher.match(features, FeatureSet.empty())) == 0
    assert matcher.match(FeatureSet.empty(), FeatureSet.empty()).total == 0


def test_single_reference_descriptor_has_no_second_neighbour():
    rng = np.random.default_rng(3)
    keypoint = Keypoint(Point(1, 1), 31.0, 0.0)
    frame = FeatureSet((keypoint,) * 4, rng.integers(0, 256, (4, 32), dtype=np.uint8))
    reference = FeatureSet((keypoint,), rng.integers(0, 256, (1, 32), dtype=np.uint8))

    matches = Matcher().match(frame, reference)
    assert len(matches) == 0
    assert matches.total == 4


def test_self_match_keeps_most_features(template, fast_settings):
    features = _features(template, fast_settings)
    matches = Matcher(fast_settings.matching).match(features, features)

    assert matches.total == len(features)
    assert len(matches) > len(features) // 2
    assert len(matches) <= matches.total
    agreeing = sum(1 for p in matches.pairs if p.frame_point == p.reference_point)
    assert agreeing > len(matches) * 0.9


def test_matching_is_deterministic(template, fast_settings):
    features = _features(template, fast_settings)
    matcher = Matcher()
    assert matcher.match(features, features) == matcher.match(features, features)
