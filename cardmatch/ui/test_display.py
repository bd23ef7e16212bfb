import cv2 as cv
import numpy as np

from cardmatch.conftest import CARD_CORNERS
from cardmatch.core.types import FrameSample
from cardmatch.ui import draw_polygon, upright_preview


def test_preview_is_upright_copy():
    upright = np.arange(40 * 60 * 3, dtype=np.uint8).reshape(40, 60, 3)
    stored = cv.rotate(upright, cv.ROTATE_90_COUNTERCLOCKWISE)
    sample = FrameSample.from_image(stored, 0.0, rotation_degrees=90)

    preview = upright_preview(sample)
    assert np.array_equal(preview, upright)
    assert preview.flags.writeable
    assert not np.shares_memory(preview, sample.pixels)

    plain = FrameSample.from_image(upright, 0.0)
    assert not np.shares_memory(upright_preview(plain), plain.pixels)


def test_card_outline_lands_on_rotated_frame(validator, warped_frame):
    stored = cv.rotate(warped_frame, cv.ROTATE_90_COUNTERCLOCKWISE)
    sample = FrameSample.from_image(stored, 0.0, rotation_degrees=90)
    result = validator.validate(sample)
    assert result.is_valid, result.error_message

    preview = upright_preview(sample)
    assert preview.shape[:2] == warped_frame.shape[:2]

    green = (0, 255, 0)
    draw_polygon(preview, result.corner_polygon, color=green)
    for x, y in CARD_CORNERS:
        patch = preview[int(y) - 12:int(y) + 13, int(x) - 12:int(x) + 13]
        assert np.any(np.all(patch == green, axis=-1))
