import numpy as np
import pytest

from cardmatch.config import PreprocessConfig
from cardmatch.detection.preprocessing import FramePreprocessor, rotate_upright, to_grayscale

CONFIG = PreprocessConfig(reference_target_width=640, reference_target_height=400)


def test_reference_fits_envelope(template):
    normalized = FramePreprocessor(CONFIG).normalize(template, is_reference=True)
    w, h = normalized.size
    assert normalized.pixels.ndim == 2
    assert normalized.pixels.dtype == np.uint8
    assert w <= 640 and h <= 400
    assert max(w / 640, h / 400) == pytest.approx(1.0, abs=0.01)
    assert normalized.scale == pytest.approx(w / template.shape[1])


def test_frame_scales_relative_to_reference():
    preprocessor = FramePreprocessor(CONFIG, reference_size=(640, 400))
    narrow = preprocessor.normalize(np.full((720, 960), 128, dtype=np.uint8))
    wide = preprocessor.normalize(np.full((500, 1200), 128, dtype=np.uint8))

    # narrower than the reference: widths follow the reference width
    assert narrow.size[0] == 960
    # wider than the reference: heights follow the reference height
    assert wide.size[1] == 600


def test_frames_need_reference_size():
    with pytest.raises(ValueError):
        FramePreprocessor(CONFIG).normalize(np.zeros((10, 10), dtype=np.uint8))


def test_empty_image_is_rejected():
    with pytest.raises(ValueError):
        FramePreprocessor(CONFIG).normalize(np.zeros((0, 0), dtype=np.uint8), is_reference=True)


def test_grayscale_conversion():
    assert to_grayscale(np.zeros((4, 6, 3), dtype=np.uint8)).shape == (4, 6)
    assert to_grayscale(np.zeros((4, 6, 4), dtype=np.uint8)).shape == (4, 6)
    assert to_grayscale(np.zeros((4, 6, 1), dtype=np.uint8)).shape == (4, 6)
    with pytest.raises(ValueError):
        to_grayscale(np.zeros((4, 6, 2), dtype=np.uint8))


def test_rotation_metadata():
    image = np.arange(12, dtype=np.uint8).reshape(3, 4)
    assert rotate_upright(image, 0) is image
    assert rotate_upright(image, 90).shape == (4, 3)
    assert rotate_upright(image, -90).shape == (4, 3)
    np.testing.assert_array_equal(rotate_upright(image, 180), image[::-1, ::-1])
    with pytest.raises(ValueError):
        rotate_upright(image, 45)
