"""
Single-frame document validation.

Runs preprocess -> extract -> match -> homography -> (perspective refinement)
-> geometry -> confidence for one frame against the reference model and
reports the judgment as a `ValidationResult`. Errors never escape `validate`.
"""

import logging
import time
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from cardmatch.config import Settings
from cardmatch.core.errors import Deadline, DeadlineExceeded, ReferenceUnavailable
from cardmatch.core.types import (
    FrameSample,
    MatchSet,
    OverlayRect,
    Point,
    ReferenceModel,
    ValidationError,
    ValidationResult,
    polygon_from_array,
)
from cardmatch.detection.confidence import ConfidenceScorer
from cardmatch.detection.features import (
    FeatureExtractor,
    build_reference_model,
    load_reference_image,
)
from cardmatch.detection.geometry import GeometricValidator, calculate_bounding_box
from cardmatch.detection.homography import (
    HomographyEstimator,
    project_points,
    transformation_metrics,
    warp_to_reference,
)
from cardmatch.detection.matcher import Matcher
from cardmatch.detection.preprocessing import FramePreprocessor, rotate_upright

logger = logging.getLogger(__name__)


class DocumentValidator:
    """
    Decides whether a frame shows the reference document, well framed.

    The reference model is built in the constructor. If that fails the
    validator stays usable but every call returns `ReferenceUnavailable`.
    """

    def __init__(self, settings: Settings = Settings(),
                 reference_image: Optional[npt.NDArray[np.uint8]] = None):
        """
        Args:
            settings (Settings): Full configuration
            reference_image (numpy.ndarray): Decoded template; loaded from
                `settings.reference_path` when omitted
        """
        self.settings = settings
        self.preprocessor = FramePreprocessor(settings.preprocess)
        self.extractor = FeatureExtractor(settings.features)
        self.matcher = Matcher(settings.matching)
        self.estimator = HomographyEstimator(settings.matching)
        self.geometry = GeometricValidator(settings.geometry)
        self.scorer = ConfidenceScorer(
            settings.confidence,
            min_matches_for_homography=settings.matching.min_matches_for_homography,
            min_diagonal=settings.geometry.min_diagonal,
        )

        self.reference: Optional[ReferenceModel] = None
        self.reference_error: Optional[str] = None
        self.frame_preprocessor: Optional[FramePreprocessor] = None

        try:
            if reference_image is None:
                reference_image = load_reference_image(settings.reference_path)
            self.reference = build_reference_model(reference_image, self.preprocessor, self.extractor)
            self.frame_preprocessor = self.preprocessor.for_reference(self.reference.normalized_size)
        except ReferenceUnavailable as e:
            self.reference_error = str(e)
            logger.error(f"Reference unavailable, validation disabled: {e}")

    @property
    def available(self) -> bool:
        return self.reference is not None

    def validate(self, frame: Union[FrameSample, npt.NDArray[np.uint8]],
                 overlay: Optional[OverlayRect] = None,
                 deadline: Optional[Deadline] = None) -> ValidationResult:
        """
        Validate one frame.

        Args:
            frame: FrameSample, or an upright BGR/grayscale image
            overlay (OverlayRect): Optional guide rectangle in frame pixels
            deadline (Deadline): Cycle budget checked between stages

        Returns:
            ValidationResult: Always returned, failures are reported as data
        """
        start = time.monotonic()

        if self.reference is None:
            return ValidationResult.failure(ValidationError.REFERENCE_UNAVAILABLE, self.reference_error or "")

        if deadline is None:
            deadline = Deadline.unlimited()

        try:
            result = self._run(frame, overlay, deadline)
        except DeadlineExceeded as e:
            logger.warning(f"Validation timed out: {e}")
            result = ValidationResult.failure(ValidationError.TIMEOUT, str(e))
        except Exception as e:
            logger.error(f"Validation error: {e}", exc_info=True)
            result = ValidationResult.failure(ValidationError.ANALYSIS_ERROR, str(e))

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = result.with_processing_time(elapsed_ms)

        logger.debug(f"Validation completed: valid={result.is_valid}, "
                     f"confidence={result.confidence:.2f}, "
                     f"matches={result.good_matches}/{result.total_matches}, "
                     f"homography={result.homography_found}, "
                     f"scale={result.scale_ratio:.2f}, "
                     f"rotation={result.rotation_angle_degrees:.1f}, "
                     f"reason={result.error_message}, {elapsed_ms}ms")
        return result

    def _run(self, frame: Union[FrameSample, npt.NDArray[np.uint8]],
             overlay: Optional[OverlayRect], deadline: Deadline) -> ValidationResult:
        reference = self.reference

        if isinstance(frame, FrameSample):
            image = rotate_upright(frame.pixels, frame.rotation_degrees)
        else:
            image = frame
        raw_h, raw_w = image.shape[:2]

        deadline.check("preprocess")
        normalized = self.frame_preprocessor.normalize(image)

        deadline.check("extract")
        features = self.extractor.extract(normalized.pixels)
        if features.is_empty or reference.features.is_empty:
            return ValidationResult.failure(ValidationError.NO_FEATURES, "no descriptors in frame")

        deadline.check("match")
        matches = self.matcher.match(features, reference.features)
        scale_ratio, rotation = transformation_metrics(
            matches.pairs,
            self.settings.matching.metric_pair_min_distance,
            self.settings.matching.metric_max_points,
        )

        homography = None
        if len(matches) >= self.settings.matching.min_matches_for_homography:
            deadline.check("homography")
            homography = self.estimator.estimate(matches.pairs, normalized.size)

        perspective_corrected = False
        corners = None
        reference_to_frame = None

        if homography is not None:
            if self.settings.matching.refine_with_perspective:
                deadline.check("refine")
                refined = self._refine(normalized.pixels, homography)
                if refined is not None:
                    matches = refined
                    perspective_corrected = True

            # reference -> normalized frame -> raw frame
            to_raw = np.diag([1.0 / normalized.scale, 1.0 / normalized.scale, 1.0])
            reference_to_frame = to_raw @ homography.inverse
            corners = polygon_from_array(project_points(reference.corners_array, reference_to_frame))

        deadline.check("validate")
        return self.assess(
            total_matches=matches.total,
            good_matches=len(matches),
            homography_found=homography is not None,
            corners=corners,
            frame_size=(raw_w, raw_h),
            overlay=overlay,
            perspective_corrected=perspective_corrected,
            scale_ratio=scale_ratio,
            rotation_angle_degrees=rotation,
            reference_to_frame=reference_to_frame,
        )

    def _refine(self, normalized: npt.NDArray[np.uint8], homography) -> Optional[MatchSet]:
        """
        Warp the frame into the reference plane and match again.
        Returns None when the corrected frame has no descriptors.
        """
        corrected = warp_to_reference(normalized, homography, self.reference.normalized_size)
        features = self.extractor.extract(corrected)
        if features.is_empty:
            logger.debug("Perspective-corrected frame has no descriptors, keeping first pass")
            return None

        refined = self.matcher.match(features, self.reference.features)
        logger.debug(f"Refinement: {len(refined)}/{refined.total} good matches")
        return refined

    def assess(self, total_matches: int, good_matches: int, homography_found: bool,
               corners: Optional[Sequence[Point]], frame_size: Tuple[int, int],
               overlay: Optional[OverlayRect] = None, perspective_corrected: bool = False,
               scale_ratio: float = 1.0, rotation_angle_degrees: float = 0.0,
               reference_to_frame: Optional[npt.NDArray[np.float64]] = None) -> ValidationResult:
        """
        Turn match statistics and the projected polygon into a judgment.

        Only uses configuration, so it can be driven directly with synthetic
        numbers.
        """
        cfg = self.settings
        has_polygon = homography_found and corners is not None
        breakdown = self.scorer.score(good_matches, has_polygon, corners, frame_size)

        metrics = dict(
            confidence=breakdown.total,
            total_matches=total_matches,
            good_matches=good_matches,
            homography_found=homography_found,
            perspective_corrected=perspective_corrected,
            scale_ratio=scale_ratio,
            rotation_angle_degrees=rotation_angle_degrees,
        )

        if not has_polygon:
            if good_matches < cfg.matching.min_matches_for_homography:
                return ValidationResult.failure(
                    ValidationError.INSUFFICIENT_MATCHES_FOR_HOMOGRAPHY,
                    f"{good_matches} < {cfg.matching.min_matches_for_homography}",
                    **metrics,
                )
            return ValidationResult.failure(
                ValidationError.HOMOGRAPHY_FAILED, f"{good_matches} matches", **metrics,
            )

        corners = tuple(corners)
        metrics.update(
            corner_polygon=corners,
            bounding_box=calculate_bounding_box(corners),
            reference_to_frame=reference_to_frame,
        )

        check = self.geometry.validate(corners, frame_size, overlay)
        if not check.valid:
            logger.debug(f"Geometry rejected: {check.reason.value} {check.message}")
            return ValidationResult.failure(check.reason, check.message, **metrics)

        if good_matches < cfg.matching.min_match_count:
            return ValidationResult.failure(
                ValidationError.INSUFFICIENT_MATCHES,
                f"{good_matches} < {cfg.matching.min_match_count}",
                **metrics,
            )

        if breakdown.total <= cfg.confidence.min_confidence:
            return ValidationResult.failure(
                ValidationError.LOW_CONFIDENCE,
                f"{breakdown.total:.2f} <= {cfg.confidence.min_confidence}",
                **metrics,
            )

        return ValidationResult(is_valid=True, **metrics)
