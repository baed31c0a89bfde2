"""
Edge-orientation shape descriptor extraction.

Fills the gap where the color histogram sees only color: two objects of
identical color can still differ in outline and texture. The descriptor
is a magnitude-weighted histogram of unsigned gradient orientations:

    1. Luma grayscale (0.299 R + 0.587 G + 0.114 B), rounded to 8 bits
    2. 3×3 Sobel gradients on every interior pixel
    3. Orientation folded into [0, 180) degrees
    4. Each pixel adds its gradient magnitude to its orientation bin
    5. Bins divided by the total magnitude

The vector length is fixed by the bin count and independent of image
size, so exemplars captured at different resolutions stay comparable.
"""

import os
import logging

import cv2
import numpy as np

from .preprocessing import Frame, decode_image

logger = logging.getLogger(__name__)

# Number of unsigned orientation bins over [0, 180)
ORIENTATION_BINS = int(os.environ.get("ORIENTATION_BINS", "9"))
SHAPE_DIM = ORIENTATION_BINS

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def luma_grayscale(rgba: np.ndarray) -> np.ndarray:
    """Weighted luma of an RGBA buffer, rounded and clamped to 0-255."""
    gray = rgba[:, :, :3].astype(np.float64) @ LUMA_WEIGHTS
    return np.clip(np.rint(gray), 0, 255)


def sobel_gradients(gray: np.ndarray):
    """
    Horizontal and vertical Sobel responses for the interior pixels.

    Uses the kernels
        Gx = [[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]]
        Gy = [[-1, -2, -1], [0, 0, 0], [1, 2, 1]]
    and drops the one-pixel border, so a (h, w) input yields two
    (h - 2, w - 2) arrays.
    """
    gray = gray.astype(np.float64)
    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3)[1:-1, 1:-1]
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3)[1:-1, 1:-1]
    # Normalize signed zeros so atan2 folds (-0, -x) like (0, -x)
    return gx + 0.0, gy + 0.0


def extract_orientation_histogram(frame: Frame, bins: int = None) -> np.ndarray:
    """
    Extract a normalized edge-orientation histogram from a frame.

    Args:
        frame: Encoded image or decoded array (see decode_image()).
        bins: Orientation bin count, defaults to ORIENTATION_BINS.

    Returns:
        Float32 vector of length ``bins`` summing to 1.0, or all zeros
        for flat images, images smaller than 3×3, or undecodable frames.

    Raises:
        ValueError: If bins is not positive.
    """
    bins = ORIENTATION_BINS if bins is None else bins
    if bins < 1:
        raise ValueError(f"Orientation bin count must be positive, got {bins}")

    try:
        rgba = decode_image(frame)
        if rgba is None:
            return np.zeros(bins, dtype=np.float32)

        h, w = rgba.shape[:2]
        if h < 3 or w < 3:
            return np.zeros(bins, dtype=np.float32)

        gx, gy = sobel_gradients(luma_grayscale(rgba))

        magnitude = np.sqrt(gx * gx + gy * gy)
        total = float(magnitude.sum())
        if total <= 0:
            return np.zeros(bins, dtype=np.float32)

        angles = np.degrees(np.arctan2(gy, gx))
        angles = np.where(angles < 0, angles + 180.0, angles)

        bin_index = np.floor(angles / (180.0 / bins)).astype(np.int64)
        bin_index = np.minimum(bin_index, bins - 1)

        hist = np.bincount(bin_index.ravel(), weights=magnitude.ravel(),
                           minlength=bins)
        return (hist / total).astype(np.float32)

    except Exception as e:
        logger.error(f"Orientation histogram extraction failed: {e}")
        return np.zeros(bins, dtype=np.float32)
