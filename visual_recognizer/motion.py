"""
Frame-to-frame motion gating.

A cheap test run on every tick to decide whether the expensive feature
extraction is worth doing. Frames are resized to a small S×S square
(aspect ratio discarded) and reduced to grayscale by averaging R, G and
B, which bounds the cost independently of camera resolution and ignores
color noise.
"""

import os
import logging
from typing import Optional

import cv2
import numpy as np

from .preprocessing import Frame, decode_image

logger = logging.getLogger(__name__)

# Side length of the downsampled snapshot
MOTION_SIZE = int(os.environ.get("MOTION_SIZE", "32"))
# Mean absolute gray difference (0-255) above which a frame counts as motion.
# Lower = more sensitive.
MOTION_THRESHOLD = float(os.environ.get("MOTION_THRESHOLD", "10"))


def grayscale_snapshot(rgba: np.ndarray, size: int) -> np.ndarray:
    """Resize an RGBA buffer to size×size and average its color channels."""
    small = cv2.resize(np.ascontiguousarray(rgba[:, :, :3]), (size, size),
                       interpolation=cv2.INTER_AREA)
    return np.rint(small.astype(np.float64).mean(axis=2))


class MotionGate:
    """
    Detects motion between consecutive frames.

    Holds the previous frame's grayscale snapshot. The first frame after
    construction or reset() always counts as motion so that the first
    frame of a session gets classified.
    """

    def __init__(self, size: int = None, threshold: float = None):
        self.size = MOTION_SIZE if size is None else size
        self.threshold = MOTION_THRESHOLD if threshold is None else threshold
        if self.size < 1:
            raise ValueError(f"Snapshot size must be positive, got {self.size}")
        if self.threshold < 0:
            raise ValueError(f"Motion threshold must be non-negative, got {self.threshold}")
        self._previous: Optional[np.ndarray] = None

    @property
    def has_snapshot(self) -> bool:
        return self._previous is not None

    def difference(self, snapshot: np.ndarray) -> Optional[float]:
        """Mean absolute difference against the stored snapshot, if any."""
        if self._previous is None:
            return None
        return float(np.mean(np.abs(snapshot - self._previous)))

    def check(self, frame: Frame) -> bool:
        """
        Compare a frame with the previous one.

        The stored snapshot is always replaced by the current one, so
        motion is judged frame to frame rather than against a baseline.

        Args:
            frame: Encoded image or decoded array.

        Returns:
            True on the first observation or when the mean gray
            difference exceeds the threshold. False otherwise, including
            when the frame cannot be decoded (the snapshot is then kept).
        """
        rgba = decode_image(frame)
        if rgba is None:
            return False

        snapshot = grayscale_snapshot(rgba, self.size)
        diff = self.difference(snapshot)
        self._previous = snapshot

        if diff is None:
            logger.debug("First frame observed, treating as motion")
            return True

        logger.debug(f"Motion difference {diff:.2f} (threshold {self.threshold})")
        return diff > self.threshold

    def reset(self):
        """Forget the previous snapshot; the next check() acts as a first observation."""
        self._previous = None
