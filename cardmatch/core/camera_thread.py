"""
Threaded camera capture for non-blocking frame reading.

A background thread keeps reading the camera and holds on to the newest
frame only, so a slow consumer never makes frames pile up.
"""

import logging
import threading
import time
from typing import Optional

import cv2 as cv

from cardmatch.config import CameraConfig
from cardmatch.core.types import FrameSample

logger = logging.getLogger(__name__)


class ThreadedCamera:
    """
    Background thread for continuous camera frame capture.

    `read()` returns the latest frame as a `FrameSample` stamped with its
    capture time and the configured rotation.
    """

    def __init__(self, cap, config: CameraConfig = CameraConfig()):
        """
        Initialize threaded camera capture.

        Args:
            cap: OpenCV VideoCapture object
            config (CameraConfig): Rotation and first-frame timeout
        """
        self.cap = cap
        self.config = config
        self.sample: Optional[FrameSample] = None
        self.stopped = False
        self.lock = threading.Lock()

        # FPS tracking for camera capture rate
        self.frame_count = 0
        self.fps_start_time = time.monotonic()
        self.camera_fps = 0.0

        self.thread = threading.Thread(target=self._read_frames, daemon=True, name="ThreadedCamera")
        self.thread.start()

        start_time = time.monotonic()
        while self.sample is None and (time.monotonic() - start_time) < config.first_frame_timeout:
            time.sleep(0.01)

        if self.sample is None:
            logger.warning("ThreadedCamera started but no frame captured yet")
        else:
            logger.info("ThreadedCamera started and ready")

    def _read_frames(self):
        """Background thread that continuously reads frames."""
        while not self.stopped:
            ret, frame = self.cap.read()
            timestamp = time.monotonic()

            if not ret or frame is None:
                time.sleep(0.01)
                continue

            sample = FrameSample.from_image(frame, timestamp, self.config.rotation_degrees)
            with self.lock:
                self.sample = sample

                self.frame_count += 1
                elapsed = timestamp - self.fps_start_time
                if elapsed >= 1.0:
                    self.camera_fps = self.frame_count / elapsed
                    self.frame_count = 0
                    self.fps_start_time = timestamp

    def read(self) -> Optional[FrameSample]:
        """
        Get the latest frame (non-blocking).

        Returns:
            FrameSample or None: None until the first frame arrives
        """
        with self.lock:
            return self.sample

    def stop(self):
        """Stop the background thread."""
        self.stopped = True
        self.thread.join(timeout=1.0)
        logger.info("ThreadedCamera stopped")

    def release(self):
        """Release the camera (stops thread and releases VideoCapture)."""
        self.stop()
        self.cap.release()

    def is_opened(self) -> bool:
        return self.cap.isOpened()

    def get_fps(self) -> float:
        with self.lock:
            return self.camera_fps


def setup_camera(cam_port: int, config: CameraConfig = CameraConfig()) -> ThreadedCamera:
    """
    Open and configure the camera, wrapped in threaded capture.

    Args:
        cam_port (int): Camera port number
        config (CameraConfig): Resolution, buffer and frame rate

    Returns:
        ThreadedCamera: Running capture
    """
    logger.info(f"Setting up camera on port {cam_port}")
    cap = cv.VideoCapture(cam_port)

    # Set buffer size BEFORE other properties to reduce latency
    cap.set(cv.CAP_PROP_BUFFERSIZE, config.buffer_size)
    cap.set(cv.CAP_PROP_FPS, config.target_fps)
    cap.set(cv.CAP_PROP_FRAME_HEIGHT, config.default_height)
    cap.set(cv.CAP_PROP_FRAME_WIDTH, config.default_width)

    actual_fps = cap.get(cv.CAP_PROP_FPS)
    actual_width = cap.get(cv.CAP_PROP_FRAME_WIDTH)
    actual_height = cap.get(cv.CAP_PROP_FRAME_HEIGHT)
    logger.info(f"Camera configured: {actual_width:.0f}x{actual_height:.0f} @ {actual_fps:.1f}fps")

    return ThreadedCamera(cap, config)
