from dataclasses import replace

import cv2 as cv
import numpy as np
import pytest

from cardmatch.conftest import CARD_CORNERS, FRAME_SIZE, rectangle
from cardmatch.config import Settings
from cardmatch.core.errors import Deadline
from cardmatch.core.types import FeatureSet, FrameSample, Rect, ValidationError, polygon_to_array
from cardmatch.detection import DocumentValidator


def _without_time(result):
    return replace(result, processing_time_ms=0)


def test_finds_card_in_warped_frame(validator, warped_sample):
    result = validator.validate(warped_sample)

    assert result.is_valid, result.error_message
    assert result.reason is None
    assert result.homography_found
    assert result.perspective_corrected
    assert result.good_matches >= validator.settings.matching.min_match_count
    assert result.good_matches <= result.total_matches
    assert 0.3 < result.confidence <= 1.0

    corners = polygon_to_array(result.corner_polygon)
    errors = np.linalg.norm(corners - CARD_CORNERS, axis=1)
    assert np.all(errors < 10.0), errors

    box = result.bounding_box
    assert box.left == pytest.approx(250, abs=10)
    assert box.bottom == pytest.approx(510, abs=10)


def test_reference_to_frame_maps_reference_corners(validator, warped_sample):
    result = validator.validate(warped_sample)
    assert result.reference_to_frame is not None
    w, h = validator.reference.normalized_size
    corner = cv.perspectiveTransform(np.float64([[[w, h]]]), result.reference_to_frame)[0, 0]
    assert np.linalg.norm(corner - CARD_CORNERS[2]) < 10.0


def test_rotation_metadata_is_applied(validator, warped_frame):
    upright = validator.validate(FrameSample.from_image(warped_frame, 0.0))
    # stored rotated a quarter turn counter-clockwise, needs 90 degrees clockwise
    stored = cv.rotate(warped_frame, cv.ROTATE_90_COUNTERCLOCKWISE)
    rotated = validator.validate(FrameSample.from_image(stored, 0.0, rotation_degrees=90))
    assert _without_time(rotated) == _without_time(upright)


def test_validation_is_idempotent(validator, warped_sample):
    first = validator.validate(warped_sample)
    second = validator.validate(warped_sample)
    assert _without_time(first) == _without_time(second)


def _first_pass_only(settings, template):
    matching = replace(settings.matching, refine_with_perspective=False)
    return DocumentValidator(replace(settings, matching=matching), reference_image=template)


def test_first_pass_alone_can_validate(fast_settings, template, warped_sample):
    result = _first_pass_only(fast_settings, template).validate(warped_sample)
    assert result.is_valid, result.error_message
    assert result.homography_found
    assert not result.perspective_corrected


def test_refinement_without_descriptors_keeps_first_pass(fast_settings, template, warped_sample, monkeypatch):
    first_pass = _first_pass_only(fast_settings, template).validate(warped_sample)

    validator = DocumentValidator(fast_settings, reference_image=template)
    extract = validator.extractor.extract
    calls = []

    def blind_on_corrected_frame(image):
        calls.append(image.shape)
        if len(calls) == 2:
            return FeatureSet.empty()
        return extract(image)

    monkeypatch.setattr(validator.extractor, "extract", blind_on_corrected_frame)
    result = validator.validate(warped_sample)

    assert len(calls) == 2
    assert result.is_valid, result.error_message
    assert result.homography_found
    assert not result.perspective_corrected
    assert result.good_matches == first_pass.good_matches
    assert result.total_matches == first_pass.total_matches
    assert result.corner_polygon is not None


def test_accepts_plain_images(validator, warped_frame, warped_sample):
    assert _without_time(validator.validate(warped_frame)) == _without_time(validator.validate(warped_sample))


def test_overlay_around_card(validator, warped_sample):
    result = validator.validate(warped_sample, Rect.from_xywh(230, 160, 540, 370))
    assert result.is_valid, result.error_message


def test_overlay_elsewhere(validator, warped_sample):
    result = validator.validate(warped_sample, Rect.from_xywh(0, 0, 300, 190))
    assert not result.is_valid
    assert result.reason is ValidationError.OVERLAY_MISALIGNED
    assert result.corner_polygon is not None


def test_blank_frame_has_no_features(validator):
    blank = np.full((FRAME_SIZE[1], FRAME_SIZE[0], 3), 128, dtype=np.uint8)
    result = validator.validate(FrameSample.from_image(blank, 0.0))
    assert not result.is_valid
    assert result.reason is ValidationError.NO_FEATURES
    assert result.confidence == 0.0
    assert result.error_message.startswith("NoFeatures")


def test_missing_reference_disables_validation(fast_settings, warped_sample, tmp_path):
    settings = fast_settings.with_reference(str(tmp_path / "missing.png"))
    validator = DocumentValidator(settings)

    assert not validator.available
    for _ in range(2):
        result = validator.validate(warped_sample)
        assert not result.is_valid
        assert result.reason is ValidationError.REFERENCE_UNAVAILABLE
        assert result.confidence == 0.0


def test_featureless_reference_is_unavailable(fast_settings):
    validator = DocumentValidator(fast_settings, reference_image=np.full((322, 512), 200, dtype=np.uint8))
    assert not validator.available
    assert validator.validate(np.zeros((10, 10), dtype=np.uint8)).reason is ValidationError.REFERENCE_UNAVAILABLE


def test_expired_deadline_times_out(validator, warped_sample):
    result = validator.validate(warped_sample, deadline=Deadline(-1))
    assert not result.is_valid
    assert result.reason is ValidationError.TIMEOUT


def test_internal_errors_are_reported(validator, warped_frame):
    result = validator.validate(FrameSample.from_image(warped_frame, 0.0, rotation_degrees=45))
    assert not result.is_valid
    assert result.reason is ValidationError.ANALYSIS_ERROR
    assert result.error_message.startswith("AnalysisError")


class TestAssess:
    """Judgment from synthetic statistics, no images involved."""

    @pytest.fixture(scope="class")
    def judge(self):
        return DocumentValidator(Settings(reference_path="/nonexistent/reference.png"))

    def test_too_few_matches_for_homography(self, judge):
        result = judge.assess(40, 5, False, None, (1000, 1000))
        assert not result.is_valid
        assert result.reason is ValidationError.INSUFFICIENT_MATCHES_FOR_HOMOGRAPHY
        assert result.confidence == pytest.approx(0.3 * 5 / 36)

    def test_homography_failed(self, judge):
        result = judge.assess(40, 20, False, None, (1000, 1000))
        assert result.reason is ValidationError.HOMOGRAPHY_FAILED
        assert result.confidence > 0.0

    def test_well_framed_card(self, judge):
        result = judge.assess(50, 20, True, rectangle(300, 375, 400, 250), (1000, 1000))
        assert result.is_valid
        assert result.confidence > 0.3
        assert result.bounding_box == Rect(300, 375, 700, 625)

    def test_card_filling_the_frame(self, judge):
        result = judge.assess(400, 300, True, rectangle(0, 50, 1000, 900), (1000, 1000))
        assert not result.is_valid
        assert result.reason is ValidationError.AREA_OUT_OF_RANGE

    def test_card_beside_overlay(self, judge):
        overlay = Rect.from_xywh(300, 375, 400, 250)
        result = judge.assess(50, 20, True, rectangle(450, 375, 400, 250), (1000, 1000), overlay)
        assert not result.is_valid
        assert result.reason is ValidationError.OVERLAY_MISALIGNED

    def test_refined_matches_below_minimum(self, judge):
        result = judge.assess(50, 7, True, rectangle(300, 375, 400, 250), (1000, 1000))
        assert result.reason is ValidationError.INSUFFICIENT_MATCHES

    def test_low_confidence(self):
        settings = Settings.from_dict({
            "reference_path": "/nonexistent/reference.png",
            "confidence": {"min_confidence": 0.95},
        })
        result = DocumentValidator(settings).assess(50, 20, True, rectangle(300, 375, 400, 250), (1000, 1000))
        assert result.reason is ValidationError.LOW_CONFIDENCE

    def test_good_matches_never_exceed_total(self, judge):
        with pytest.raises(ValueError):
            judge.assess(10, 20, False, None, (1000, 1000))
