"""
Utility functions for cardmatch.

Camera discovery and image loading used by the command line runner.
"""

import logging
import os
import time

import cv2 as cv

from cardmatch.core.types import FrameSample

logger = logging.getLogger(__name__)


# ==================== Camera Management ====================

def list_camera_ports(max_failures=3):
    """
    Test camera ports and return available and working ports.

    Args:
        max_failures (int): Stop after this many non-working ports

    Returns:
        tuple: (available_ports, working_ports, non_working_ports)
               working_ports contains tuples of (port, height, width)
    """
    non_working_ports = []
    dev_port = 0
    working_ports = []
    available_ports = []

    while len(non_working_ports) < max_failures:
        camera = cv.VideoCapture(dev_port)
        if not camera.isOpened():
            non_working_ports.append(dev_port)
            logger.info(f"Port {dev_port} is not working.")
        else:
            is_reading, _ = camera.read()
            w = camera.get(cv.CAP_PROP_FRAME_WIDTH)
            h = camera.get(cv.CAP_PROP_FRAME_HEIGHT)
            if is_reading:
                logger.info(f"Port {dev_port} is working and reads images ({h} x {w})")
                working_ports.append((dev_port, h, w))
            else:
                logger.info(f"Port {dev_port} for camera ({h} x {w}) is present but does not read.")
                available_ports.append(dev_port)
        camera.release()
        dev_port += 1

    return available_ports, working_ports, non_working_ports


def select_camera_port():
    """
    Pick the first camera port that delivers frames.

    Returns:
        int: Selected camera port number, 0 if none works
    """
    _, working_ports, _ = list_camera_ports()

    if working_ports:
        port = working_ports[0][0]
        if len(working_ports) > 1:
            logger.info(f"{len(working_ports)} cameras detected, use --camera to pick another one")
        logger.info(f"Auto-selected camera port {port}")
        return port

    logger.warning("No working cameras detected, using default port 0")
    return 0


# ==================== File Loading ====================

def load_frame(filename, rotation_degrees=0):
    """
    Read an image file as a frame sample.

    Args:
        filename (str): Image path
        rotation_degrees (int): Rotation metadata to attach

    Returns:
        FrameSample: Frame stamped with the current monotonic time

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If the file cannot be decoded
    """
    if not os.path.isfile(filename):
        raise FileNotFoundError(filename)

    image = cv.imread(filename, cv.IMREAD_COLOR)
    if image is None:
        raise ValueError(f"Could not decode image: {filename}")

    return FrameSample.from_image(image, time.monotonic(), rotation_degrees)
