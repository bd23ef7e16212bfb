"""
Geometric checks on the projected document polygon.

All measurements are in raw frame pixels. The polygon is ordered
top-left, top-right, bottom-right, bottom-left.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from cardmatch.config import GeometryConfig
from cardmatch.core.types import OverlayRect, Point, Rect, ValidationError

logger = logging.getLogger(__name__)


def calculate_polygon_area(corners: Sequence[Point]) -> float:
    """
    Area of a simple polygon with the shoelace formula.
    Collinear or empty input yields 0.
    """
    n = len(corners)
    if n < 3:
        return 0.0

    area = 0.0
    for i in range(n):
        j = (i + 1) % n
        area += corners[i].x * corners[j].y
        area -= corners[j].x * corners[i].y
    return abs(area) / 2.0


def edge_lengths(corners: Sequence[Point]) -> Tuple[float, float, float, float]:
    """
    (top, bottom, right, left) edge lengths of a quadrilateral.
    """
    if len(corners) != 4:
        return 0.0, 0.0, 0.0, 0.0
    top = corners[0].distance_to(corners[1])
    bottom = corners[2].distance_to(corners[3])
    right = corners[1].distance_to(corners[2])
    left = corners[3].distance_to(corners[0])
    return top, bottom, right, left


def average_dimensions(corners: Sequence[Point]) -> Tuple[float, float]:
    """
    Width and height as the mean of each pair of opposite edges.
    """
    top, bottom, right, left = edge_lengths(corners)
    return (top + bottom) / 2, (right + left) / 2


def diagonal_length(corners: Sequence[Point]) -> float:
    width, height = average_dimensions(corners)
    return math.hypot(width, height)


def calculate_bounding_box(corners: Sequence[Point]) -> Optional[Rect]:
    if not corners:
        return None
    xs = [p.x for p in corners]
    ys = [p.y for p in corners]
    return Rect(min(xs), min(ys), max(xs), max(ys))


def polygon_center(corners: Sequence[Point]) -> Point:
    return Point(sum(p.x for p in corners) / len(corners), sum(p.y for p in corners) / len(corners))


@dataclass(frozen=True)
class GeometryCheck:
    """
    Outcome of the geometric validation.
    """

    valid: bool
    reason: Optional[ValidationError] = None
    message: str = ""
    area: float = 0.0
    aspect_ratio: float = 0.0

    @classmethod
    def reject(cls, reason: ValidationError, message: str, area: float = 0.0,
               aspect_ratio: float = 0.0) -> "GeometryCheck":
        return cls(False, reason, message, area, aspect_ratio)


class GeometricValidator:
    """
    Checks bounds, area, size, aspect ratio and overlay placement, in that
    order, stopping at the first failure.
    """

    def __init__(self, config: GeometryConfig = GeometryConfig()):
        self.config = config

    def validate(self, corners: Sequence[Point], frame_size: Tuple[int, int],
                 overlay: Optional[OverlayRect] = None) -> GeometryCheck:
        """
        Args:
            corners: Projected template corners in frame pixels
            frame_size (tuple): (width, height) of the frame
            overlay (OverlayRect): Optional guide rectangle in frame pixels

        Returns:
            GeometryCheck: valid, or the first failing reason
        """
        cfg = self.config
        frame_w, frame_h = frame_size

        for i, corner in enumerate(corners):
            if not (0 <= corner.x <= frame_w and 0 <= corner.y <= frame_h):
                return GeometryCheck.reject(
                    ValidationError.CORNER_OUT_OF_BOUNDS,
                    f"corner {i} {corner} outside {frame_w}x{frame_h}",
                )

        area = calculate_polygon_area(corners)
        frame_area = float(frame_w * frame_h)
        area_ratio = area / frame_area if frame_area > 0 else 0.0
        logger.debug(f"Card area: {area:.0f}, frame area: {frame_area:.0f}, ratio: {area_ratio:.3f}")

        if area_ratio < cfg.min_area_ratio:
            return GeometryCheck.reject(
                ValidationError.AREA_OUT_OF_RANGE,
                f"ratio={area_ratio:.3f} < {cfg.min_area_ratio}", area,
            )
        if area_ratio > cfg.max_area_ratio:
            return GeometryCheck.reject(
                ValidationError.AREA_OUT_OF_RANGE,
                f"ratio={area_ratio:.3f} > {cfg.max_area_ratio}", area,
            )

        width, height = average_dimensions(corners)
        diagonal = math.hypot(width, height)
        logger.debug(f"Card dimensions: {width:.0f}x{height:.0f}, diagonal {diagonal:.0f}")

        if width < cfg.min_width or height < cfg.min_height:
            return GeometryCheck.reject(
                ValidationError.TOO_SMALL,
                f"{width:.0f}x{height:.0f} below {cfg.min_width:.0f}x{cfg.min_height:.0f}", area,
            )
        if diagonal < cfg.min_diagonal:
            return GeometryCheck.reject(
                ValidationError.TOO_SMALL,
                f"diagonal {diagonal:.0f} < {cfg.min_diagonal:.0f}", area,
            )

        aspect_ratio = width / height
        if abs(aspect_ratio - cfg.document_aspect_ratio) > cfg.aspect_ratio_tolerance:
            return GeometryCheck.reject(
                ValidationError.ASPECT_RATIO_MISMATCH,
                f"{aspect_ratio:.2f} (expected {cfg.document_aspect_ratio}"
                f"±{cfg.aspect_ratio_tolerance})",
                area, aspect_ratio,
            )

        if overlay is not None:
            check = self._validate_overlay(corners, overlay, area, aspect_ratio)
            if not check.valid:
                return check

        return GeometryCheck(True, area=area, aspect_ratio=aspect_ratio)

    def _validate_overlay(self, corners: Sequence[Point], overlay: OverlayRect,
                          area: float, aspect_ratio: float) -> GeometryCheck:
        cfg = self.config

        outside = [i for i, c in enumerate(corners) if not overlay.contains(c, cfg.overlay_margin)]
        if len(outside) > cfg.max_corners_outside_overlay:
            return GeometryCheck.reject(
                ValidationError.OVERLAY_MISALIGNED,
                f"{len(outside)} corners {outside} outside {overlay}",
                area, aspect_ratio,
            )

        overlay_area = overlay.area
        coverage = area / overlay_area if overlay_area > 0 else 0.0
        logger.debug(f"Overlay coverage: card={area:.0f}, overlay={overlay_area:.0f}, ratio={coverage:.2f}")

        if coverage < cfg.min_overlay_coverage:
            return GeometryCheck.reject(
                ValidationError.INSUFFICIENT_COVERAGE,
                f"{coverage:.2f} < {cfg.min_overlay_coverage}",
                area, aspect_ratio,
            )
        return GeometryCheck(True, area=area, aspect_ratio=aspect_ratio)
