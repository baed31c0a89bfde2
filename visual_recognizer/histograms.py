"""
Joint RGB color histogram extraction.

Produces a B×B×B occupancy fingerprint of the visible object pixels,
flattened to B³ bins as ``r*B² + g*B + b`` and normalized by the number
of pixels actually counted. Transparent and near-black pixels are treated
as background and skipped, so a dark backdrop does not dominate the
fingerprint.

The histogram is rotation and translation invariant. It captures the
color signature of an object without any geometric assumptions, which is
why it is paired with the edge-orientation descriptor for matching.
"""

import os
import logging

import numpy as np

from .preprocessing import Frame, decode_image

logger = logging.getLogger(__name__)

# Per-channel bin count. Total dimensions = COLOR_BINS ** 3.
COLOR_BINS = int(os.environ.get("COLOR_BINS", "8"))
HIST_DIM = COLOR_BINS ** 3

# Pixels below this alpha are invisible and ignored
ALPHA_MIN = int(os.environ.get("COLOR_ALPHA_MIN", "128"))
# Pixels with all three channels below this level count as background
BLACK_LEVEL = int(os.environ.get("COLOR_BLACK_LEVEL", "10"))


def histogram_dim(bins: int = None) -> int:
    """Length of the color vector for a given per-channel bin count."""
    bins = COLOR_BINS if bins is None else bins
    return bins ** 3


def extract_color_histogram(frame: Frame, bins: int = None) -> np.ndarray:
    """
    Extract a normalized joint RGB histogram from a frame.

    Process:
        1. Decode to RGBA at full resolution
        2. Drop pixels with alpha < ALPHA_MIN or all channels < BLACK_LEVEL
        3. Quantize each channel into ``bins`` equal-width buckets
        4. Count pixels per flattened (r, g, b) bin
        5. Divide by the number of counted pixels

    Args:
        frame: Encoded image or decoded array (see decode_image()).
        bins: Per-channel bin count, defaults to COLOR_BINS.

    Returns:
        Float32 vector of length bins**3 summing to 1.0, or all zeros
        when no pixel was counted or the frame could not be decoded.

    Raises:
        ValueError: If bins is not between 1 and 256.
    """
    bins = COLOR_BINS if bins is None else bins
    if not 1 <= bins <= 256:
        raise ValueError(f"Color bin count must be in [1, 256], got {bins}")
    dim = bins ** 3

    try:
        rgba = decode_image(frame)
        if rgba is None:
            return np.zeros(dim, dtype=np.float32)

        pixels = rgba.reshape(-1, 4).astype(np.int64)
        r, g, b, a = pixels[:, 0], pixels[:, 1], pixels[:, 2], pixels[:, 3]

        near_black = (r < BLACK_LEVEL) & (g < BLACK_LEVEL) & (b < BLACK_LEVEL)
        counted = (a >= ALPHA_MIN) & ~near_black

        total = int(np.count_nonzero(counted))
        if total == 0:
            return np.zeros(dim, dtype=np.float32)

        r_bin = r[counted] * bins // 256
        g_bin = g[counted] * bins // 256
        b_bin = b[counted] * bins // 256
        index = r_bin * bins * bins + g_bin * bins + b_bin

        hist = np.bincount(index, minlength=dim).astype(np.float64)
        return (hist / total).astype(np.float32)

    except Exception as e:
        logger.error(f"Color histogram extraction failed: {e}")
        return np.zeros(dim, dtype=np.float32)
