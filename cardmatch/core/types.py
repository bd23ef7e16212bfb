"""
Value objects shared by the matching pipeline and the stream analyzer.

Instances are immutable. Numpy arrays held by them are flagged read-only.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt


@dataclass(frozen=True)
class Point:
    """
    A 2D point in pixel coordinates.
    """

    x: float
    "X coordinate."
    y: float
    "Y coordinate."

    @property
    def coords(self) -> Tuple[float, float]:
        return self.x, self.y

    def distance_to(self, other: "Point") -> float:
        """
        Returns the Euclidean distance between the point and another one.
        """
        return math.hypot(self.x - other.x, self.y - other.y)

    def __str__(self) -> str:
        return f"({self.x:.1f}, {self.y:.1f})"


@dataclass(frozen=True)
class Rect:
    """
    Axis-aligned rectangle given by its edges.
    Used for the overlay guide and for bounding boxes.
    """

    left: float
    top: float
    right: float
    bottom: float

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> "Rect":
        return cls(x, y, x + w, y + h)

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    @property
    def center(self) -> Point:
        return Point((self.left + self.right) / 2, (self.top + self.bottom) / 2)

    def contains(self, point: Point, margin: float = 0.0) -> bool:
        """
        Check whether the point lies inside the rectangle grown by `margin` on every side.
        """
        return (
            self.left - margin <= point.x <= self.right + margin
            and self.top - margin <= point.y <= self.bottom + margin
        )

    def scaled(self, sx: float, sy: float) -> "Rect":
        return Rect(self.left * sx, self.top * sy, self.right * sx, self.bottom * sy)

    def __str__(self) -> str:
        return f"Rect({self.left:.0f}, {self.top:.0f} - {self.right:.0f}, {self.bottom:.0f})"


OverlayRect = Rect
"Screen-space guide rectangle, in the coordinate space of the analyzed frames."


@dataclass(frozen=True)
class Keypoint:
    """
    A distinctive image location with its scale and orientation.
    """

    position: Point
    scale: float
    "Diameter of the meaningful neighbourhood, in pixels."
    orientation: float
    "Dominant orientation in degrees, -1 when not applicable."


def _readonly(array: npt.NDArray) -> npt.NDArray:
    array = np.ascontiguousarray(array)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class FeatureSet:
    """
    Keypoints and their binary descriptors, row i of `descriptors` belongs to `keypoints[i]`.
    """

    keypoints: Tuple[Keypoint, ...]
    descriptors: npt.NDArray[np.uint8]

    EMPTY_DESCRIPTOR_BYTES = 32

    def __post_init__(self) -> None:
        object.__setattr__(self, "descriptors", _readonly(self.descriptors))

    @classmethod
    def empty(cls) -> "FeatureSet":
        return cls((), np.empty((0, cls.EMPTY_DESCRIPTOR_BYTES), dtype=np.uint8))

    @property
    def is_empty(self) -> bool:
        return len(self.keypoints) == 0 or self.descriptors.shape[0] == 0

    def __len__(self) -> int:
        return len(self.keypoints)


@dataclass(frozen=True, eq=False)
class ReferenceModel:
    """
    Descriptor set of the bundled template, resolution-normalized.
    Built once at startup and never modified afterwards.
    """

    keypoints: Tuple[Keypoint, ...]
    descriptors: npt.NDArray[np.uint8]
    corner_polygon: Tuple[Point, Point, Point, Point]
    "Template corners in normalized reference pixels (TL, TR, BR, BL)."
    normalized_size: Tuple[int, int]
    "(width, height) of the normalized reference image."
    source_size: Tuple[int, int] = (0, 0)
    "(width, height) of the template before normalization."

    def __post_init__(self) -> None:
        object.__setattr__(self, "descriptors", _readonly(self.descriptors))

    @property
    def features(self) -> FeatureSet:
        return FeatureSet(self.keypoints, self.descriptors)

    @property
    def corners_array(self) -> npt.NDArray[np.float32]:
        return np.array([p.coords for p in self.corner_polygon], dtype=np.float32)


@dataclass(frozen=True, eq=False)
class FrameSample:
    """
    One camera frame. Consumed by a single analysis cycle and not retained by the core.
    """

    pixels: npt.NDArray[np.uint8]
    width: int
    height: int
    timestamp_monotonic: float
    "Capture time from time.monotonic(), in seconds."
    rotation_degrees: int = 0
    "Clockwise rotation needed to bring the frame upright (0, 90, 180 or 270)."

    @classmethod
    def from_image(
        cls, image: npt.NDArray[np.uint8], timestamp: float, rotation_degrees: int = 0
    ) -> "FrameSample":
        h, w = image.shape[:2]
        return cls(image, w, h, timestamp, rotation_degrees)

    @property
    def upright_size(self) -> Tuple[int, int]:
        """
        (width, height) once the rotation metadata is applied.
        """
        if self.rotation_degrees % 180 == 90:
            return self.height, self.width
        return self.width, self.height


@dataclass(frozen=True)
class MatchPair:
    """
    One unambiguous descriptor correspondence.
    """

    frame_point: Point
    reference_point: Point
    distance: float
    "Hamming distance of the best match."


@dataclass(frozen=True)
class MatchSet:
    """
    Result of a ratio-test matching pass.
    """

    pairs: Tuple[MatchPair, ...]
    total: int
    "Number of frame descriptors that were queried against the reference."

    @classmethod
    def empty(cls) -> "MatchSet":
        return cls((), 0)

    def __len__(self) -> int:
        return len(self.pairs)


@dataclass(frozen=True, eq=False)
class Homography:
    """
    Projective transform mapping normalized frame points to reference points.
    Only meaningful together with the frame size it was estimated against.
    """

    matrix: npt.NDArray[np.float64]
    frame_size: Tuple[int, int]
    inlier_count: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "matrix", _readonly(np.asarray(self.matrix, dtype=np.float64)))

    @property
    def inverse(self) -> npt.NDArray[np.float64]:
        return np.linalg.inv(self.matrix)


class ValidationError(Enum):
    """
    Reasons a cycle ends with an invalid result. Values are the names reported in
    `ValidationResult.error_message`.
    """

    REFERENCE_UNAVAILABLE = "ReferenceUnavailable"
    NO_FEATURES = "NoFeatures"
    INSUFFICIENT_MATCHES = "InsufficientMatches"
    INSUFFICIENT_MATCHES_FOR_HOMOGRAPHY = "InsufficientMatchesForHomography"
    HOMOGRAPHY_FAILED = "HomographyFailed"
    CORNER_OUT_OF_BOUNDS = "CornerOutOfBounds"
    AREA_OUT_OF_RANGE = "AreaOutOfRange"
    TOO_SMALL = "TooSmall"
    ASPECT_RATIO_MISMATCH = "AspectRatioMismatch"
    OVERLAY_MISALIGNED = "OverlayMisaligned"
    INSUFFICIENT_COVERAGE = "InsufficientCoverage"
    LOW_CONFIDENCE = "LowConfidence"
    TIMEOUT = "Timeout"
    ANALYSIS_ERROR = "AnalysisError"


@dataclass(frozen=True)
class ValidationResult:
    """
    Judgment for one analysis cycle, with the metrics that support it.
    """

    is_valid: bool
    confidence: float
    total_matches: int = 0
    good_matches: int = 0
    homography_found: bool = False
    perspective_corrected: bool = False
    scale_ratio: float = 1.0
    rotation_angle_degrees: float = 0.0
    corner_polygon: Optional[Tuple[Point, ...]] = None
    "Projected template corners in raw frame pixels (TL, TR, BR, BL)."
    bounding_box: Optional[Rect] = None
    processing_time_ms: int = 0
    error_message: Optional[str] = None
    reason: Optional[ValidationError] = None
    reference_to_frame: Optional[npt.NDArray[np.float64]] = field(default=None, compare=False)
    "Maps normalized reference pixels to raw frame pixels."

    def __post_init__(self) -> None:
        confidence = float(self.confidence) if math.isfinite(self.confidence) else 0.0
        object.__setattr__(self, "confidence", min(max(confidence, 0.0), 1.0))
        if self.good_matches > self.total_matches:
            raise ValueError(
                f"good_matches ({self.good_matches}) exceeds total_matches ({self.total_matches})"
            )
        if self.reference_to_frame is not None:
            object.__setattr__(self, "reference_to_frame", _readonly(self.reference_to_frame))

    @classmethod
    def failure(
        cls,
        reason: ValidationError,
        detail: str = "",
        processing_time_ms: int = 0,
        **metrics,
    ) -> "ValidationResult":
        """
        Build an invalid result. `metrics` may carry match counts and confidence.
        """
        message = f"{reason.value}: {detail}" if detail else reason.value
        metrics.setdefault("confidence", 0.0)
        return cls(
            is_valid=False,
            processing_time_ms=processing_time_ms,
            error_message=message,
            reason=reason,
            **metrics,
        )

    def with_processing_time(self, processing_time_ms: int) -> "ValidationResult":
        return replace(self, processing_time_ms=int(processing_time_ms))


def polygon_from_array(points: Sequence[Sequence[float]]) -> Tuple[Point, ...]:
    """
    Convert an (N, 2) or cv.perspectiveTransform style (N, 1, 2) array into Points.
    """
    flat = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return tuple(Point(float(x), float(y)) for x, y in flat)


def polygon_to_array(polygon: Sequence[Point]) -> npt.NDArray[np.float64]:
    return np.array([p.coords for p in polygon], dtype=np.float64).reshape(-1, 2)
