"""
Frame normalization for feature matching.

Brings the reference template and live frames to a comparable single-channel,
contrast-equalized image at a matching working resolution.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2 as cv
import numpy as np
import numpy.typing as npt

from cardmatch.config import PreprocessConfig

logger = logging.getLogger(__name__)

_ROTATIONS = {
    90: cv.ROTATE_90_CLOCKWISE,
    180: cv.ROTATE_180,
    270: cv.ROTATE_90_COUNTERCLOCKWISE,
}


@dataclass(frozen=True, eq=False)
class NormalizedImage:
    """
    Preprocessed image plus the factor that maps input pixels to its pixels.
    """

    pixels: npt.NDArray[np.uint8]
    scale: float
    "normalized = input * scale (aspect ratio is preserved)."

    @property
    def size(self) -> Tuple[int, int]:
        h, w = self.pixels.shape[:2]
        return w, h


def rotate_upright(image: npt.NDArray[np.uint8], rotation_degrees: int) -> npt.NDArray[np.uint8]:
    """
    Apply the camera's rotation metadata. Only multiples of 90 degrees are supported.
    """
    rotation = rotation_degrees % 360
    if rotation == 0:
        return image
    if rotation not in _ROTATIONS:
        raise ValueError(f"Unsupported frame rotation: {rotation_degrees}")
    return cv.rotate(image, _ROTATIONS[rotation])


def to_grayscale(image: npt.NDArray[np.uint8]) -> npt.NDArray[np.uint8]:
    """Convert BGR, BGRA or single-channel input to a single channel."""
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 3:
        return cv.cvtColor(image, cv.COLOR_BGR2GRAY)
    if channels == 4:
        return cv.cvtColor(image, cv.COLOR_BGRA2GRAY)
    raise ValueError(f"Unsupported channel count: {channels}")


class FramePreprocessor:
    """
    Converts a raw image into the normalized sample used for feature extraction.

    The reference is fit into a fixed target envelope. Live frames are scaled
    relative to the already adapted reference size, so matching does not
    depend on the camera resolution. After resizing: Gaussian denoise, CLAHE,
    then an edge-preserving bilateral pass. Equalizing before the bilateral
    pass keeps sensor noise from turning into spurious keypoints.
    """

    def __init__(self, config: PreprocessConfig = PreprocessConfig(),
                 reference_size: Optional[Tuple[int, int]] = None):
        """
        Args:
            config (PreprocessConfig): Enhancement and resolution parameters
            reference_size (tuple): (width, height) of the normalized reference,
                required to normalize live frames
        """
        self.config = config
        self.reference_size = reference_size
        self._clahe = cv.createCLAHE(
            clipLimit=config.clahe_clip_limit,
            tileGridSize=(config.clahe_tile_size, config.clahe_tile_size),
        )

    def for_reference(self, reference_size: Tuple[int, int]) -> "FramePreprocessor":
        """Return a preprocessor for live frames matched against this reference size."""
        return FramePreprocessor(self.config, reference_size)

    def normalize(self, image: npt.NDArray[np.uint8], is_reference: bool = False) -> NormalizedImage:
        """
        Normalize a raw image.

        Args:
            image (numpy.ndarray): Upright BGR, BGRA or grayscale image
            is_reference (bool): Fit into the reference envelope instead of
                scaling relative to the reference

        Returns:
            NormalizedImage: Enhanced single-channel image and its scale factor
        """
        if image is None or image.size == 0:
            raise ValueError("Cannot normalize an empty image")

        gray = to_grayscale(image)
        h, w = gray.shape[:2]

        if is_reference:
            scale = self._reference_scale(w, h)
        else:
            scale = self._frame_scale(w, h)

        new_size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
        adapted = cv.resize(gray, new_size, interpolation=cv.INTER_CUBIC)

        k = self.config.gaussian_kernel
        blurred = cv.GaussianBlur(adapted, (k, k), 0)
        equalized = self._clahe.apply(blurred)
        smoothed = cv.bilateralFilter(
            equalized,
            self.config.bilateral_diameter,
            self.config.bilateral_sigma_color,
            self.config.bilateral_sigma_space,
        )

        logger.debug(f"Normalized {'reference' if is_reference else 'frame'}: "
                     f"{w}x{h} -> {new_size[0]}x{new_size[1]} (scale {scale:.3f})")
        return NormalizedImage(smoothed, new_size[0] / w)

    def _reference_scale(self, w: int, h: int) -> float:
        scale_x = self.config.reference_target_width / w
        scale_y = self.config.reference_target_height / h
        return min(scale_x, scale_y)

    def _frame_scale(self, w: int, h: int) -> float:
        if self.reference_size is None:
            raise ValueError("Live frames need the normalized reference size")

        ref_w, ref_h = self.reference_size
        ref_ratio = ref_w / ref_h
        ratio = w / h
        factor = self.config.scale_invariant_factor

        if ratio > ref_ratio:
            # wider than the reference, match heights
            return ref_h * factor / h
        return ref_w * factor / w
