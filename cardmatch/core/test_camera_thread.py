import time

import cv2 as cv
import numpy as np
import pytest

from cardmatch.config import CameraConfig
from cardmatch.core.camera_thread import ThreadedCamera
from cardmatch.core.utils import load_frame


class FakeCapture:
    def __init__(self, fail_first=0):
        self.count = 0
        self.fail_first = fail_first
        self.released = False

    def read(self):
        time.sleep(0.002)
        self.count += 1
        if self.count <= self.fail_first:
            return False, None
        return True, np.full((48, 64, 3), self.count % 256, dtype=np.uint8)

    def isOpened(self):
        return not self.released

    def release(self):
        self.released = True


def test_latest_frame_with_rotation():
    cap = FakeCapture(fail_first=3)
    camera = ThreadedCamera(cap, CameraConfig(rotation_degrees=90, first_frame_timeout=2.0))
    try:
        sample = camera.read()
        assert sample is not None
        assert (sample.width, sample.height) == (64, 48)
        assert sample.rotation_degrees == 90
        assert sample.upright_size == (48, 64)
        assert camera.is_opened()
    finally:
        camera.release()
    assert cap.released


def test_load_frame(tmp_path):
    path = str(tmp_path / "frame.png")
    cv.imwrite(path, np.zeros((30, 40, 3), dtype=np.uint8))

    sample = load_frame(path, rotation_degrees=180)
    assert (sample.width, sample.height) == (40, 30)
    assert sample.rotation_degrees == 180

    with pytest.raises(FileNotFoundError):
        load_frame(str(tmp_path / "missing.png"))

    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")
    with pytest.raises(ValueError):
        load_frame(str(broken))
