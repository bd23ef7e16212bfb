"""
Configuration module for cardmatch.

All tunable constants used by the matching pipeline and the stream analyzer
live here, grouped by concern. Every group is a frozen dataclass so a
configuration can be shared between threads and replaced wholesale.

TUNING NOTES:
- The ratio test, RANSAC confidence, overlay margin and coverage defaults were
  tuned empirically on ID-1 sized cards. Treat them as starting points.
- Lowering `reference_target_width/height` makes every cycle much faster at the
  cost of fewer keypoints; useful on slow machines and in tests.
- With the default 1920x1200 envelope a 720p or 1080p frame is worked on at
  about 3200x1800, which takes most of the 500 ms `cycle_budget_ms` on a
  single core and occasionally exceeds it. On such machines pass a smaller
  envelope (`--envelope 1280x800` or a JSON override) or raise the budget.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_REFERENCE_PATH = os.path.join(PACKAGE_DIR, "assets", "reference_card.pgm")


# ==================== Feature Extraction Configuration ====================
@dataclass(frozen=True)
class FeatureConfig:
    """ORB detector/descriptor parameters."""

    n_features: int = 2000
    "Maximum number of keypoints retained per image."
    scale_factor: float = 1.2
    "Pyramid decimation ratio."
    n_levels: int = 12
    "Number of pyramid levels."
    edge_threshold: int = 20
    "Border size where features are not detected."
    first_level: int = 0
    wta_k: int = 2
    "Points compared per descriptor element (2 keeps descriptors Hamming-comparable)."
    use_harris_score: bool = True
    "Rank keypoints with the Harris score instead of the FAST score."
    patch_size: int = 31
    fast_threshold: int = 10
    "Low corner-strength threshold trades CPU for recall."


# ==================== Preprocessing Configuration ====================
@dataclass(frozen=True)
class PreprocessConfig:
    """Resolution adaptation and enhancement parameters."""

    reference_target_width: int = 1920
    reference_target_height: int = 1200
    "The reference is fit inside this envelope, aspect ratio preserved."
    scale_invariant_factor: float = 1.5
    "Live frames are scaled to the adapted reference size times this factor."
    gaussian_kernel: int = 3
    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 8
    bilateral_diameter: int = 9
    bilateral_sigma_color: float = 75.0
    bilateral_sigma_space: float = 75.0


# ==================== Matching Configuration ====================
@dataclass(frozen=True)
class MatchingConfig:
    """Descriptor matching and homography estimation parameters."""

    ratio_threshold: float = 0.65
    "Lowe's ratio test threshold."
    min_matches_for_homography: int = 12
    "Below this many good matches no homography is attempted."
    min_match_count: int = 8
    "Minimum refined good matches for a positive judgment."
    ransac_reproj_threshold: float = 3.0
    "Inlier threshold in pixels of the working resolution."
    ransac_confidence: float = 0.99
    ransac_max_iters: int = 2000
    refine_with_perspective: bool = True
    "Warp the frame with the first homography and match again."
    metric_pair_min_distance: float = 10.0
    "Point pairs closer than this are ignored for scale/rotation metrics."
    metric_max_points: int = 300
    "Cap on matched points used for the pairwise scale/rotation metrics."


# ==================== Geometry Configuration ====================
@dataclass(frozen=True)
class GeometryConfig:
    """Projected polygon validation parameters (raw frame pixels)."""

    document_aspect_ratio: float = 1.59
    "ID-1 card, 85.60mm x 53.98mm."
    aspect_ratio_tolerance: float = 0.20
    min_area_ratio: float = 0.05
    max_area_ratio: float = 0.80
    min_width: float = 150.0
    min_height: float = 90.0
    min_diagonal: float = 200.0
    overlay_margin: float = 5.0
    max_corners_outside_overlay: int = 1
    min_overlay_coverage: float = 0.65


# ==================== Confidence Configuration ====================
@dataclass(frozen=True)
class ConfidenceConfig:
    """Weights and step thresholds of the confidence score."""

    match_weight: float = 0.30
    geometry_weight: float = 0.25
    size_weight: float = 0.25
    distance_weight: float = 0.20

    match_saturation_multiplier: int = 3
    "Match sub-score saturates at min_matches_for_homography times this."

    size_steps: Tuple[Tuple[float, float], ...] = ((500.0, 1.0), (400.0, 0.8))
    "(minimum diagonal px, score) pairs, largest first. min_diagonal scores size_floor_score."
    size_floor_score: float = 0.5

    area_steps: Tuple[Tuple[float, float], ...] = ((0.16, 1.0), (0.10, 0.8), (0.065, 0.5))
    "(minimum polygon/frame area ratio, score) pairs, largest first."

    center_steps: Tuple[Tuple[float, float], ...] = ((0.125, 1.0), (0.19, 0.8), (0.25, 0.5))
    "(maximum centre distance / frame diagonal, score) pairs, closest first."
    center_fallback_score: float = 0.2

    min_confidence: float = 0.3
    "A result is only valid above this confidence."


# ==================== Analyzer Configuration ====================
@dataclass(frozen=True)
class AnalyzerConfig:
    """Scheduling parameters of the stream analyzer."""

    analysis_interval_ms: int = 200
    min_interval_ms: int = 100
    max_interval_ms: int = 2000
    failure_streak_for_backoff: int = 5
    backoff_factor: float = 1.5
    success_streak_for_speedup: int = 3
    speedup_factor: float = 0.8
    success_cooldown_ms: int = 2000
    cycle_budget_ms: int = 500
    "Wall-clock budget of one extract/match/estimate/validate/score cycle."
    stats_log_every: int = 10
    "Log a performance summary every N analyses."
    queue_get_timeout: float = 0.2
    shutdown_timeout: float = 2.0


# ==================== Camera Configuration ====================
@dataclass(frozen=True)
class CameraConfig:
    """Camera capture configuration parameters."""

    default_width: int = 1920
    default_height: int = 1080
    buffer_size: int = 1
    target_fps: int = 30
    first_frame_timeout: float = 2.0
    rotation_degrees: int = 0
    "Rotation metadata attached to every captured frame."


# ==================== UI Configuration ====================
@dataclass(frozen=True)
class UIConfig:
    """Debug preview window configuration."""

    window_name: str = "cardmatch"
    color_valid: Tuple[int, int, int] = (0, 255, 0)
    color_invalid: Tuple[int, int, int] = (0, 0, 255)
    color_overlay: Tuple[int, int, int] = (255, 255, 255)
    color_text: Tuple[int, int, int] = (0, 255, 255)
    font_scale: float = 0.6
    font_thickness: int = 2


@dataclass(frozen=True)
class Settings:
    """Complete configuration, one group per concern."""

    reference_path: str = DEFAULT_REFERENCE_PATH
    "Template image the reference model is built from."
    features: FeatureConfig = field(default_factory=FeatureConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """
        Build settings from a nested dictionary of overrides.

        Groups and keys not present keep their defaults. Unknown groups or
        keys raise `ValueError` so typos do not silently fall back.
        """
        settings = cls()
        updates: Dict[str, Any] = {}
        known = {f.name: f for f in fields(cls)}

        for name, value in data.items():
            if name not in known:
                raise ValueError(f"Unknown settings group: {name}")
            if name == "reference_path":
                updates[name] = str(value)
                continue
            if not isinstance(value, dict):
                raise ValueError(f"Settings group '{name}' must be an object")
            updates[name] = _override(getattr(settings, name), value, name)

        return replace(settings, **updates)

    def with_reference(self, path: Optional[str]) -> "Settings":
        if not path:
            return self
        return replace(self, reference_path=path)

    def with_envelope(self, size: Optional[Tuple[int, int]]) -> "Settings":
        """Replace the working resolution the reference is fit into."""
        if size is None:
            return self
        width, height = size
        preprocess = replace(self.preprocess, reference_target_width=width, reference_target_height=height)
        return replace(self, preprocess=preprocess)


def _override(group: Any, values: Dict[str, Any], group_name: str) -> Any:
    allowed = {f.name for f in fields(group)}
    for key in values:
        if key not in allowed:
            raise ValueError(f"Unknown setting '{group_name}.{key}'")

    coerced = {}
    for key, value in values.items():
        current = getattr(group, key)
        # JSON has no tuples
        if isinstance(current, tuple) and isinstance(value, list):
            value = tuple(tuple(v) if isinstance(v, list) else v for v in value)
        coerced[key] = value
    return replace(group, **coerced)


def load_settings(filename: Optional[str]) -> Settings:
    """
    Load settings overrides from a JSON file.

    Args:
        filename (str): Path to the JSON file, or None for defaults

    Returns:
        Settings: Defaults updated with the file contents

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file contains unknown groups or keys
    """
    if not filename:
        return Settings()

    if not os.path.isfile(filename):
        logger.error(f"No settings file found at {filename}")
        raise FileNotFoundError(filename)

    with open(filename, "r") as f:
        data = json.load(f)

    logger.info(f"Loaded settings from {filename}")
    return Settings.from_dict(data)
