import cv2 as cv
import numpy as np
import pytest

from cardmatch.config import DEFAULT_REFERENCE_PATH, PreprocessConfig, Settings
from cardmatch.core.types import FrameSample, Point
from cardmatch.detection import DocumentValidator

FRAME_SIZE = (1000, 700)

# Where the card lands in the synthetic frame (TL, TR, BR, BL)
CARD_CORNERS = np.float32([[250, 180], [750, 200], [740, 510], [260, 500]])


def rectangle(left, top, width, height):
    """Corners of an axis-aligned card, TL, TR, BR, BL."""
    return (
        Point(left, top),
        Point(left + width, top),
        Point(left + width, top + height),
        Point(left, top + height),
    )


@pytest.fixture(scope="session")
def fast_settings():
    # a smaller working resolution keeps every cycle quick
    return Settings(preprocess=PreprocessConfig(reference_target_width=640, reference_target_height=400))


@pytest.fixture(scope="session")
def template():
    image = cv.imread(DEFAULT_REFERENCE_PATH, cv.IMREAD_COLOR)
    assert image is not None
    return image


@pytest.fixture(scope="session")
def validator(fast_settings, template):
    return DocumentValidator(fast_settings, reference_image=template)


@pytest.fixture(scope="session")
def warped_frame(template):
    h, w = template.shape[:2]
    src = np.float32([[0, 0], [w, 0], [w, h], [0, h]])
    matrix = cv.getPerspectiveTransform(src, CARD_CORNERS)
    return cv.warpPerspective(
        template, matrix, FRAME_SIZE,
        borderMode=cv.BORDER_CONSTANT, borderValue=(120, 120, 120),
    )


@pytest.fixture
def warped_sample(warped_frame):
    return FrameSample.from_image(warped_frame, 0.0)
