"""
Detection Module - Reference document matching for single frames.

This module contains:
- FramePreprocessor: Grayscale, resize, denoise and contrast normalization
- FeatureExtractor: ORB keypoints and descriptors
- Matcher: Hamming kNN matching with the ratio test
- HomographyEstimator: RANSAC frame -> reference transform
- GeometricValidator: Shape, size and overlay checks of the projected card
- ConfidenceScorer: Weighted confidence of a candidate
- DocumentValidator: The full single-frame pipeline
"""

from .confidence import ConfidenceBreakdown, ConfidenceScorer
from .features import FeatureExtractor, build_reference_model, load_reference_image
from .geometry import GeometricValidator, GeometryCheck, calculate_polygon_area
from .homography import HomographyEstimator, transformation_metrics
from .matcher import Matcher
from .preprocessing import FramePreprocessor, NormalizedImage, rotate_upright
from .regions import DEFAULT_LAYOUT, ReferenceLayout, extract_region, project_region
from .validator import DocumentValidator

__all__ = [
    # Pipeline stages
    'FramePreprocessor',
    'NormalizedImage',
    'rotate_upright',
    'FeatureExtractor',
    'build_reference_model',
    'load_reference_image',
    'Matcher',
    'HomographyEstimator',
    'transformation_metrics',
    'GeometricValidator',
    'GeometryCheck',
    'calculate_polygon_area',
    'ConfidenceScorer',
    'ConfidenceBreakdown',
    # Orchestration
    'DocumentValidator',
    # Regions
    'ReferenceLayout',
    'DEFAULT_LAYOUT',
    'project_region',
    'extract_region',
]
