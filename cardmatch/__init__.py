"""
cardmatch - live camera matching of a reference document.

Decides, frame by frame, whether a camera image shows the bundled reference
card well enough framed to hand it to a text recognition stage.
"""

__version__ = "0.1.0"
