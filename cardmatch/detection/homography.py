"""
Robust homography estimation between a frame and the reference.
"""

import logging
import math
from typing import Optional, Sequence, Tuple

import cv2 as cv
import numpy as np
import numpy.typing as npt

from cardmatch.config import MatchingConfig
from cardmatch.core.types import Homography, MatchPair

logger = logging.getLogger(__name__)


class HomographyEstimator:
    """
    RANSAC fit of the projective transform mapping frame points to reference points.
    """

    def __init__(self, config: MatchingConfig = MatchingConfig()):
        self.config = config

    def estimate(self, pairs: Sequence[MatchPair], frame_size: Tuple[int, int]) -> Optional[Homography]:
        """
        Args:
            pairs: Ratio-test matches (frame -> reference)
            frame_size (tuple): (width, height) of the image the frame points live in

        Returns:
            Homography or None: None below the minimum pair count or when RANSAC
            does not converge
        """
        if len(pairs) < self.config.min_matches_for_homography:
            return None

        scene = np.array([p.frame_point.coords for p in pairs], dtype=np.float32)
        obj = np.array([p.reference_point.coords for p in pairs], dtype=np.float32)

        H, mask_out = cv.findHomography(
            scene, obj, cv.RANSAC,
            ransacReprojThreshold=self.config.ransac_reproj_threshold,
            maxIters=self.config.ransac_max_iters,
            confidence=self.config.ransac_confidence,
        )

        if H is None or mask_out is None:
            logger.debug("RANSAC did not converge")
            return None

        if not np.all(np.isfinite(H)) or abs(np.linalg.det(H)) < 1e-12:
            logger.debug("Discarding singular homography")
            return None

        inliers = int(np.sum(mask_out))
        logger.debug(f"Homography inlier count: {inliers}/{len(pairs)}")
        return Homography(H, frame_size, inliers)


def warp_to_reference(image: npt.NDArray[np.uint8], homography: Homography,
                      reference_size: Tuple[int, int]) -> npt.NDArray[np.uint8]:
    """
    Perspective-correct a normalized frame into the reference plane.
    """
    return cv.warpPerspective(image, homography.matrix, reference_size)


def project_points(points: npt.NDArray, matrix: npt.NDArray) -> npt.NDArray[np.float64]:
    """
    Apply a 3x3 projective matrix to an (N, 2) array of points.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    return cv.perspectiveTransform(pts, np.asarray(matrix, dtype=np.float64)).reshape(-1, 2)


def transformation_metrics(pairs: Sequence[MatchPair], min_distance: float = 10.0,
                           max_points: int = 300) -> Tuple[float, float]:
    """
    Average scale ratio and rotation between frame and reference.

    Every pair of matched points spans a segment in both images; the ratio of
    segment lengths (reference / frame) and the difference of their angles are
    averaged over all segments longer than `min_distance` on both sides.

    Returns:
        tuple: (scale_ratio, rotation_angle_degrees); (1.0, 0.0) when undetermined
    """
    if len(pairs) < 2:
        return 1.0, 0.0

    subset = pairs[:max_points]
    src = np.array([p.frame_point.coords for p in subset], dtype=np.float64)
    dst = np.array([p.reference_point.coords for p in subset], dtype=np.float64)

    i, j = np.triu_indices(len(subset), k=1)
    src_vec = src[j] - src[i]
    dst_vec = dst[j] - dst[i]
    src_dist = np.hypot(src_vec[:, 0], src_vec[:, 1])
    dst_dist = np.hypot(dst_vec[:, 0], dst_vec[:, 1])

    valid = (src_dist > min_distance) & (dst_dist > min_distance)
    if not np.any(valid):
        return 1.0, 0.0

    scale = float(np.mean(dst_dist[valid] / src_dist[valid]))

    delta = (np.arctan2(dst_vec[valid, 1], dst_vec[valid, 0])
             - np.arctan2(src_vec[valid, 1], src_vec[valid, 0]))
    # wrap into (-pi, pi] before averaging
    delta = np.arctan2(np.sin(delta), np.cos(delta))
    rotation = math.degrees(float(np.mean(delta)))

    return scale, rotation
