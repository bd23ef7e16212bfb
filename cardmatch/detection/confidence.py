"""
Interpretable confidence score for a candidate document.

The score is a weighted sum of four sub-scores, each bounded to [0, 1], so
every contribution can be logged and tuned on its own.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from cardmatch.config import ConfidenceConfig
from cardmatch.core.types import Point
from cardmatch.detection.geometry import (
    calculate_polygon_area,
    diagonal_length,
    edge_lengths,
    polygon_center,
)

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class ConfidenceBreakdown:
    match: float = 0.0
    geometry: float = 0.0
    size: float = 0.0
    distance: float = 0.0
    total: float = 0.0

    def __str__(self) -> str:
        return (f"match={self.match:.2f}, geometry={self.geometry:.2f}, "
                f"size={self.size:.2f}, distance={self.distance:.2f} -> {self.total:.3f}")


class ConfidenceScorer:
    """
    Fuses match count, shape consistency, absolute size and centring.
    """

    def __init__(self, config: ConfidenceConfig = ConfidenceConfig(),
                 min_matches_for_homography: int = 12, min_diagonal: float = 200.0):
        self.config = config
        self.min_matches_for_homography = min_matches_for_homography
        self.min_diagonal = min_diagonal

    def score(self, match_count: int, homography_found: bool,
              corners: Optional[Sequence[Point]],
              frame_size: Optional[Tuple[int, int]] = None) -> ConfidenceBreakdown:
        """
        Args:
            match_count (int): Good matches after refinement
            homography_found (bool): Whether a homography was estimated
            corners: Projected corners in frame pixels, None without a homography
            frame_size (tuple): (width, height) of the frame the corners live in

        Returns:
            ConfidenceBreakdown: Sub-scores and the clamped weighted total
        """
        cfg = self.config
        match = self.match_score(match_count)

        geometry = size = distance = 0.0
        if homography_found and corners is not None and len(corners) == 4:
            geometry = self.geometry_score(corners)
            size = self.size_score(corners)
            if frame_size is not None:
                distance = self.distance_score(corners, frame_size)

        total = _clamp(
            match * cfg.match_weight
            + geometry * cfg.geometry_weight
            + size * cfg.size_weight
            + distance * cfg.distance_weight
        )
        breakdown = ConfidenceBreakdown(match, geometry, size, distance, total)
        logger.debug(f"Confidence breakdown: {breakdown}")
        return breakdown

    def match_score(self, match_count: int) -> float:
        saturation = self.min_matches_for_homography * self.config.match_saturation_multiplier
        if saturation <= 0:
            return 0.0
        return _clamp(match_count / saturation)

    @staticmethod
    def geometry_score(corners: Sequence[Point]) -> float:
        """
        1 minus the mean relative difference of opposite edge lengths.
        """
        top, bottom, right, left = edge_lengths(corners)
        longest_w = max(top, bottom)
        longest_h = max(right, left)
        if longest_w <= 0 or longest_h <= 0:
            return 0.0
        width_diff = abs(top - bottom) / longest_w
        height_diff = abs(right - left) / longest_h
        return _clamp(1.0 - (width_diff + height_diff) / 2.0)

    def size_score(self, corners: Sequence[Point]) -> float:
        diagonal = diagonal_length(corners)
        for threshold, value in self.config.size_steps:
            if diagonal >= threshold:
                return value
        if diagonal >= self.min_diagonal:
            return self.config.size_floor_score
        return 0.0

    def distance_score(self, corners: Sequence[Point], frame_size: Tuple[int, int]) -> float:
        """
        Mean of an area step (closer cards look larger) and a centring step.
        """
        frame_w, frame_h = frame_size
        frame_area = float(frame_w * frame_h)
        if frame_area <= 0:
            return 0.0

        area_ratio = calculate_polygon_area(corners) / frame_area
        area_score = 0.0
        for threshold, value in self.config.area_steps:
            if area_ratio >= threshold:
                area_score = value
                break

        center = polygon_center(corners)
        offset = center.distance_to(Point(frame_w / 2.0, frame_h / 2.0)) / math.hypot(frame_w, frame_h)
        center_score = self.config.center_fallback_score
        for threshold, value in self.config.center_steps:
            if offset <= threshold:
                center_score = value
                break

        return (area_score + center_score) / 2.0
