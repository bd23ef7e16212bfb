"""
Core Module - Shared value types, errors and the stream analyzer.

This module contains:
- types: Immutable frame, match and result value objects
- errors: Internal exceptions and the cycle deadline
- analyzer_state: Pure state transitions of the scheduler
- analyzer: StreamAnalyzer, throttling and rolling statistics
- workers: Background validation thread
- camera_thread: Threaded camera capture producing FrameSamples
"""

from .analyzer import AnalysisOutcome, StreamAnalyzer
from .analyzer_state import AnalyzerMode, AnalyzerState, FrameDecision
from .camera_thread import ThreadedCamera, setup_camera
from .errors import Deadline, DeadlineExceeded, ReferenceUnavailable
from .types import (
    FeatureSet,
    FrameSample,
    Homography,
    Keypoint,
    MatchPair,
    MatchSet,
    OverlayRect,
    Point,
    Rect,
    ReferenceModel,
    ValidationError,
    ValidationResult,
)
from .workers import AnalysisJob, ValidationWorker

__all__ = [
    # Value types
    'Point',
    'Rect',
    'OverlayRect',
    'Keypoint',
    'FeatureSet',
    'ReferenceModel',
    'FrameSample',
    'MatchPair',
    'MatchSet',
    'Homography',
    'ValidationError',
    'ValidationResult',
    # Errors
    'ReferenceUnavailable',
    'DeadlineExceeded',
    'Deadline',
    # Scheduling
    'AnalyzerMode',
    'AnalyzerState',
    'FrameDecision',
    'AnalysisOutcome',
    'StreamAnalyzer',
    'AnalysisJob',
    'ValidationWorker',
    # Capture
    'ThreadedCamera',
    'setup_camera',
]
