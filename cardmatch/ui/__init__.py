"""
UI Module - Debug preview rendering.
"""

from .display import draw_overlay, draw_polygon, draw_status, new_fps_state, upright_preview

__all__ = [
    'draw_polygon',
    'draw_overlay',
    'draw_status',
    'new_fps_state',
    'upright_preview',
]
