"""
Brute-force Hamming matching with Lowe's ratio test.
"""

import logging

import cv2 as cv

from cardmatch.config import MatchingConfig
from cardmatch.core.types import FeatureSet, MatchPair, MatchSet

logger = logging.getLogger(__name__)


class Matcher:
    """
    Matches frame descriptors against reference descriptors.

    For every frame descriptor the two nearest reference descriptors are
    retrieved; the best is kept only if it is clearly better than the second.
    """

    def __init__(self, config: MatchingConfig = MatchingConfig()):
        self.config = config
        # Reusable matcher (avoid per-call allocations)
        self.bf = cv.BFMatcher(cv.NORM_HAMMING, crossCheck=False)

    def match(self, frame: FeatureSet, reference: FeatureSet) -> MatchSet:
        """
        Args:
            frame (FeatureSet): Features of the (possibly corrected) frame
            reference (FeatureSet): Features of the reference model

        Returns:
            MatchSet: Unambiguous pairs, empty if either side has no descriptors
        """
        if frame.is_empty or reference.is_empty:
            return MatchSet.empty()

        knn_matches = self.bf.knnMatch(frame.descriptors, reference.descriptors, k=2)

        ratio = self.config.ratio_threshold
        pairs = []
        for match_pair in knn_matches:
            if len(match_pair) < 2:
                continue
            best, second = match_pair[0], match_pair[1]
            if best.distance < ratio * second.distance:
                pairs.append(MatchPair(
                    frame_point=frame.keypoints[best.queryIdx].position,
                    reference_point=reference.keypoints[best.trainIdx].position,
                    distance=float(best.distance),
                ))

        logger.debug(f"Ratio test kept {len(pairs)}/{len(knn_matches)} matches")
        return MatchSet(tuple(pairs), len(knn_matches))
