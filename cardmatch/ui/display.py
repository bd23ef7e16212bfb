"""
UI Display Module - Drawing helpers for the debug preview window.

Renders the overlay guide, the detected card polygon and the analyzer
status on a copy of the camera frame.
"""

import logging
import time

import cv2 as cv
import numpy as np

from cardmatch.config import UIConfig
from cardmatch.core.types import polygon_to_array
from cardmatch.detection.preprocessing import rotate_upright

logger = logging.getLogger(__name__)


def upright_preview(sample):
    """
    Drawable copy of a camera frame in the upright orientation results are
    reported in.
    """
    return rotate_upright(sample.pixels, sample.rotation_degrees).copy()


def draw_polygon(image, corners, color=(0, 255, 0), thickness=3):
    """
    Draw a closed polygon with corner markers.

    Args:
        image (numpy.ndarray): Image to draw on
        corners: Sequence of Points, or None
        color (tuple): BGR color
        thickness (int): Line thickness

    Returns:
        numpy.ndarray: Image with the polygon drawn
    """
    if not corners:
        return image

    pts = polygon_to_array(corners)
    if not np.all(np.isfinite(pts)):
        return image

    pts_int = np.int32(np.round(pts))
    cv.polylines(image, [pts_int], isClosed=True, color=color, thickness=thickness)
    for x, y in pts_int:
        cv.circle(image, (int(x), int(y)), 4, color, -1)
    return image


def draw_overlay(image, overlay, color=(255, 255, 255), thickness=2):
    """Draw the guide rectangle the user aligns the card with."""
    if overlay is None:
        return image
    cv.rectangle(image, (int(overlay.left), int(overlay.top)),
                 (int(overlay.right), int(overlay.bottom)), color, thickness)
    return image


def draw_status(image, outcome, status, fps_state, ui_config=UIConfig()):
    """
    Draw the latest result and analyzer status.

    Args:
        image: Image to draw on
        outcome (AnalysisOutcome): Latest completed analysis, or None
        status (dict): StreamAnalyzer.analysis_status()
        fps_state (dict): FPS tracking state with keys: 'display_count',
                         'start_time', 'display_fps'
        ui_config (UIConfig): Colors and font

    Returns:
        dict: Updated fps_state
    """
    font = cv.FONT_HERSHEY_SIMPLEX
    scale = ui_config.font_scale
    thickness = ui_config.font_thickness

    if outcome is not None and outcome.result is not None:
        result = outcome.result
        color = ui_config.color_valid if result.is_valid else ui_config.color_invalid
        draw_polygon(image, result.corner_polygon, color=color)

        text = "VALID" if result.is_valid else (result.error_message or "invalid")
        cv.putText(image, text, (10, 30), font, scale, color, thickness)
        cv.putText(image, f"Confidence: {result.confidence:.2f}  "
                          f"Matches: {result.good_matches}/{result.total_matches}  "
                          f"{result.processing_time_ms}ms",
                   (10, 60), font, scale, ui_config.color_text, thickness)

    cv.putText(image, f"Analyzer: {status['mode']}  interval {status['current_interval_ms']:.0f}ms",
               (10, 90), font, scale, ui_config.color_text, thickness)

    # Update display FPS every second
    current_time = time.monotonic()
    fps_state['display_count'] += 1
    elapsed = current_time - fps_state['start_time']
    if elapsed >= 1.0:
        fps_state['display_fps'] = fps_state['display_count'] / elapsed
        fps_state['display_count'] = 0
        fps_state['start_time'] = current_time

    if fps_state['display_fps'] > 0:
        cv.putText(image, f"Display: {fps_state['display_fps']:.1f} FPS",
                   (10, 120), font, scale, ui_config.color_text, thickness)

    return fps_state


def new_fps_state():
    return {'display_count': 0, 'start_time': time.monotonic(), 'display_fps': 0.0}
