"""
Named regions of the reference document and their location in a frame.

Once a frame is validated, `reference_to_frame` lets downstream consumers
(text readers, barcode decoders) find or cut out a region of the card without
running their own detection.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import cv2 as cv
import numpy as np
import numpy.typing as npt

from cardmatch.core.types import Point, Rect, ReferenceModel, ValidationResult, polygon_from_array
from cardmatch.detection.homography import project_points

logger = logging.getLogger(__name__)


def _default_regions() -> Dict[str, Rect]:
    return {
        "chip": Rect.from_xywh(131, 329, 257, 233),
        "barcode": Rect.from_xywh(650, 41, 548, 86),
        "mrz": Rect.from_xywh(32, 663, 1479, 259),
        "pen_number": Rect.from_xywh(1486, 173, 49, 262),
        "ministry_text": Rect.from_xywh(418, 234, 640, 314),
    }


@dataclass(frozen=True)
class ReferenceLayout:
    """
    Region rectangles defined on a template of `size` pixels.
    """

    size: Tuple[int, int] = (1536, 1024)
    "(width, height) the region coordinates refer to."
    regions: Dict[str, Rect] = field(default_factory=_default_regions)

    def region(self, name: str) -> Rect:
        try:
            return self.regions[name]
        except KeyError:
            raise KeyError(f"Unknown region '{name}', known: {sorted(self.regions)}") from None

    def in_reference(self, name: str, reference: ReferenceModel) -> Rect:
        """
        The region in normalized reference pixels.
        """
        ref_w, ref_h = reference.normalized_size
        layout_w, layout_h = self.size
        return self.region(name).scaled(ref_w / layout_w, ref_h / layout_h)


DEFAULT_LAYOUT = ReferenceLayout()


def project_region(result: ValidationResult, region: Rect) -> Optional[Tuple[Point, ...]]:
    """
    Project a rectangle given in normalized reference pixels into the frame.

    Returns:
        tuple: Four Points (TL, TR, BR, BL) in raw frame pixels, or None when
        the result carries no transform
    """
    if result.reference_to_frame is None:
        return None
    corners = np.array([
        [region.left, region.top],
        [region.right, region.top],
        [region.right, region.bottom],
        [region.left, region.bottom],
    ], dtype=np.float64)
    return polygon_from_array(project_points(corners, result.reference_to_frame))


def extract_region(image: npt.NDArray[np.uint8], result: ValidationResult, region: Rect,
                   output_size: Optional[Tuple[int, int]] = None) -> Optional[npt.NDArray[np.uint8]]:
    """
    Cut a region out of the (upright) frame and rectify it.

    Args:
        image (numpy.ndarray): The frame the result was computed on
        result (ValidationResult): A result with `reference_to_frame`
        region (Rect): Region in normalized reference pixels
        output_size (tuple): (width, height) of the crop, region size by default

    Returns:
        numpy.ndarray or None: Rectified crop, None without a transform
    """
    if result.reference_to_frame is None:
        return None

    if output_size is None:
        output_size = (max(int(round(region.width)), 1), max(int(round(region.height)), 1))
    out_w, out_h = output_size

    # crop pixels -> reference pixels -> frame pixels
    crop_to_reference = np.array([
        [region.width / out_w, 0.0, region.left],
        [0.0, region.height / out_h, region.top],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)
    crop_to_frame = np.asarray(result.reference_to_frame, dtype=np.float64) @ crop_to_reference

    logger.debug(f"Extracting {region} as {out_w}x{out_h}")
    return cv.warpPerspective(
        image, crop_to_frame, (out_w, out_h),
        flags=cv.INTER_LINEAR | cv.WARP_INVERSE_MAP,
    )
