"""
Config Module - Centralized settings and command line parsing.
"""

from .settings import (
    DEFAULT_REFERENCE_PATH,
    AnalyzerConfig,
    CameraConfig,
    ConfidenceConfig,
    FeatureConfig,
    GeometryConfig,
    MatchingConfig,
    PreprocessConfig,
    Settings,
    UIConfig,
    load_settings,
)

__all__ = [
    'DEFAULT_REFERENCE_PATH',
    'AnalyzerConfig',
    'CameraConfig',
    'ConfidenceConfig',
    'FeatureConfig',
    'GeometryConfig',
    'MatchingConfig',
    'PreprocessConfig',
    'Settings',
    'UIConfig',
    'load_settings',
]
