import argparse


def parse_overlay(value: str):
    """
    Parse an overlay guide given as `x,y,w,h` in frame pixels.
    """
    try:
        x, y, w, h = (float(v) for v in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Overlay must be 'x,y,w,h', got '{value}'")
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError("Overlay width and height must be positive")
    return x, y, w, h


def parse_envelope(value: str):
    """
    Parse a working resolution given as `WxH`.
    """
    try:
        width, height = (int(v) for v in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Envelope must be 'WxH', got '{value}'")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("Envelope width and height must be positive")
    return width, height


cardmatch_parser = argparse.ArgumentParser(
    description="Live reference-document matching for camera frames."
)

cardmatch_parser.add_argument(
    "--reference",
    help="Path to the reference template image. Defaults to the bundled card.",
    default=None,
)
cardmatch_parser.add_argument(
    "--settings",
    help="Path to a JSON file with settings overrides.",
    default=None,
)

cardmatch_parser.add_argument(
    "--envelope",
    help="Working resolution 'WxH' the reference is fit into. Smaller is faster.",
    type=parse_envelope,
    default=None,
)

cardmatch_parser.add_argument(
    "--camera",
    help="Camera port. Auto-selected when omitted.",
    type=int,
    default=None,
)
cardmatch_parser.add_argument(
    "--images",
    help="Validate these image files instead of reading the camera.",
    nargs="+",
    default=None,
)
cardmatch_parser.add_argument(
    "--overlay",
    help="Guide rectangle 'x,y,w,h' in frame pixels.",
    type=parse_overlay,
    default=None,
)

cardmatch_parser.add_argument(
    "--headless",
    help="Run without the preview window.",
    action="store_true",
    default=False,
)
cardmatch_parser.add_argument(
    "--debug",
    help="Enable debug logging.",
    action="store_true",
    default=False,
)

get_args = cardmatch_parser.parse_args
