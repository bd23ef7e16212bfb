"""
ORB feature extraction and reference model construction.

The reference model is built once from the bundled template and shared
read-only by every analysis cycle.
"""

import logging
import os
from typing import Optional

import cv2 as cv
import numpy as np
import numpy.typing as npt

from cardmatch.config import FeatureConfig
from cardmatch.core.errors import ReferenceUnavailable
from cardmatch.core.types import FeatureSet, Keypoint, Point, ReferenceModel
from cardmatch.detection.preprocessing import FramePreprocessor

logger = logging.getLogger(__name__)


class FeatureExtractor:
    """
    Scale and rotation invariant keypoints with binary (Hamming) descriptors.

    The detector is configured for recall: many features over many pyramid
    levels with a low FAST threshold. The ratio test and RANSAC downstream
    tolerate the extra outliers.
    """

    def __init__(self, config: FeatureConfig = FeatureConfig()):
        self.config = config
        self.orb = cv.ORB_create(
            nfeatures=config.n_features,
            scaleFactor=config.scale_factor,
            nlevels=config.n_levels,
            edgeThreshold=config.edge_threshold,
            firstLevel=config.first_level,
            WTA_K=config.wta_k,
            scoreType=cv.ORB_HARRIS_SCORE if config.use_harris_score else cv.ORB_FAST_SCORE,
            patchSize=config.patch_size,
            fastThreshold=config.fast_threshold,
        )

    def extract(self, image: npt.NDArray[np.uint8]) -> FeatureSet:
        """
        Detect keypoints and compute descriptors on a normalized image.

        Returns:
            FeatureSet: Empty when nothing distinctive was found
        """
        keypoints, descriptors = self.orb.detectAndCompute(image, None)

        if descriptors is None or len(keypoints) == 0:
            return FeatureSet.empty()

        converted = tuple(
            Keypoint(Point(float(kp.pt[0]), float(kp.pt[1])), float(kp.size), float(kp.angle))
            for kp in keypoints
        )
        return FeatureSet(converted, descriptors)


def load_reference_image(path: str) -> npt.NDArray[np.uint8]:
    """
    Decode the template image.

    Raises:
        ReferenceUnavailable: If the file is missing or cannot be decoded
    """
    if not os.path.isfile(path):
        raise ReferenceUnavailable(f"Reference image not found: {path}")

    image = cv.imread(path, cv.IMREAD_COLOR)
    if image is None:
        raise ReferenceUnavailable(f"Reference image could not be decoded: {path}")
    return image


def build_reference_model(image: Optional[npt.NDArray[np.uint8]],
                          preprocessor: FramePreprocessor,
                          extractor: FeatureExtractor) -> ReferenceModel:
    """
    Normalize the template and extract its descriptors.

    Args:
        image (numpy.ndarray): Decoded template image
        preprocessor (FramePreprocessor): Preprocessor used in reference mode
        extractor (FeatureExtractor): Extractor shared with live frames

    Returns:
        ReferenceModel: Immutable reference descriptor set

    Raises:
        ReferenceUnavailable: If the image is empty or yields no descriptors
    """
    if image is None or image.size == 0:
        raise ReferenceUnavailable("Reference image is empty")

    src_h, src_w = image.shape[:2]
    normalized = preprocessor.normalize(image, is_reference=True)
    features = extractor.extract(normalized.pixels)

    if features.is_empty:
        raise ReferenceUnavailable("Reference image produced no descriptors")

    w, h = normalized.size
    corners = (Point(0.0, 0.0), Point(float(w), 0.0), Point(float(w), float(h)), Point(0.0, float(h)))

    logger.info(f"Reference normalized: {src_w}x{src_h} -> {w}x{h}, "
                f"{len(features)} keypoints")

    return ReferenceModel(
        keypoints=features.keypoints,
        descriptors=features.descriptors,
        corner_polygon=corners,
        normalized_size=(w, h),
        source_size=(src_w, src_h),
    )
