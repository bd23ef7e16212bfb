"""
cardmatch runner - validate camera frames or image files against the reference card.

Live mode feeds the camera into the stream analyzer and shows a preview with
the detected card. With --images every file is validated once and a summary
line is printed per file.
"""

import logging
import signal
import sys
import threading

import cv2 as cv

from cardmatch.config import load_settings
from cardmatch.config.args_parser import get_args
from cardmatch.core import Rect, StreamAnalyzer, setup_camera
from cardmatch.core.utils import load_frame, select_camera_port
from cardmatch.detection import DocumentValidator
from cardmatch.ui import draw_overlay, draw_status, new_fps_state, upright_preview

logger = logging.getLogger(__name__)


def setup_signal_handler(stop_event):
    """
    Setup signal handler for graceful shutdown.

    Args:
        stop_event (threading.Event): Event to signal on interrupt
    """
    def signal_handler(sig, frame):
        logger.info("Signal received, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)


def validate_images(validator, paths, overlay, rotation_degrees=0):
    """
    Validate image files one by one.

    Returns:
        int: Number of files judged valid
    """
    valid = 0
    for path in paths:
        try:
            frame = load_frame(path, rotation_degrees)
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Skipping {path}: {e}")
            continue

        result = validator.validate(frame, overlay)
        if result.is_valid:
            valid += 1
        status = "VALID" if result.is_valid else result.error_message
        print(f"{path}: {status} confidence={result.confidence:.2f} "
              f"matches={result.good_matches}/{result.total_matches} "
              f"scale={result.scale_ratio:.2f} rotation={result.rotation_angle_degrees:.1f} "
              f"{result.processing_time_ms}ms")
    return valid


def run_main_loop(cap, analyzer, stop_event, overlay, settings, headless=False):
    """
    Feed the newest camera frame to the analyzer until stopped.

    Controls: 'q' quit, 'f' force analysis, 'd' disable/enable, 'r' reset stats.
    """
    ui = settings.ui
    fps_state = new_fps_state()
    last_sample = None
    analyzer.update_overlay(overlay)

    while not stop_event.is_set():
        sample = cap.read()
        if sample is None or sample is last_sample:
            if headless:
                stop_event.wait(0.005)
                continue
        else:
            last_sample = sample
            analyzer.submit(sample)

        if headless:
            continue

        if last_sample is None:
            cv.waitKey(1)
            continue

        display_img = upright_preview(last_sample)
        draw_overlay(display_img, overlay, color=ui.color_overlay)
        fps_state = draw_status(display_img, analyzer.latest_outcome, analyzer.analysis_status(),
                                fps_state, ui)
        cv.imshow(ui.window_name, display_img)

        waitkey = cv.waitKey(1) & 0xFF
        if waitkey == ord('q'):
            stop_event.set()
        elif waitkey == ord('f'):
            analyzer.force_analysis()
        elif waitkey == ord('d'):
            if analyzer.analysis_status()["enabled"]:
                analyzer.disable()
            else:
                analyzer.enable()
        elif waitkey == ord('r'):
            analyzer.reset_performance_stats()


def main(argv=None):
    args = get_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    settings = load_settings(args.settings).with_reference(args.reference).with_envelope(args.envelope)
    overlay = Rect.from_xywh(*args.overlay) if args.overlay else None

    validator = DocumentValidator(settings)
    if not validator.available:
        logger.error("No usable reference, every frame will be rejected")

    if args.images:
        valid = validate_images(validator, args.images, overlay, settings.camera.rotation_degrees)
        logger.info(f"{valid}/{len(args.images)} images valid")
        return 0

    cam_port = args.camera if args.camera is not None else select_camera_port()
    cap = setup_camera(cam_port, settings.camera)

    stop_event = threading.Event()
    setup_signal_handler(stop_event)

    analyzer = StreamAnalyzer(validator, settings.analyzer).start()

    if not args.headless:
        logger.info("Controls: 'q'=quit, 'f'=force analysis, 'd'=disable/enable, 'r'=reset stats")
    else:
        logger.info("Running in headless mode. Send SIGINT (Ctrl+C) to stop.")

    try:
        run_main_loop(cap, analyzer, stop_event, overlay, settings, headless=args.headless)
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received, shutting down...")
        stop_event.set()
    finally:
        logger.info("Cleaning up resources...")
        analyzer.stop()
        cap.release()
        if not args.headless:
            cv.destroyAllWindows()
        stats = analyzer.performance_stats()
        logger.info(f"Analyses: {stats['successful_analyses']}/{stats['total_analyses']} successful, "
                    f"avg {stats['average_processing_time_ms']:.0f}ms")

    return 0


if __name__ == "__main__":
    sys.exit(main())
