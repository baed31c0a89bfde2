"""
Frame decoding and normalization for feature extraction.

Every extractor works on a PixelBuffer: a uint8 RGBA array of shape
(height, width, 4), freshly allocated per decode and marked read-only.
16-bit images are reduced to 8 bits per channel.
Frames arrive either encoded (JPEG/PNG bytes, a base64 string or a
``data:`` URL as produced by browser canvases) or already decoded as
gray, RGB or RGBA arrays.

Decoding never raises: an unreadable frame yields None and callers
fall back to their "no information" result.
"""

import os
import base64
import binascii
import logging
from typing import Optional, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Longest side of the thumbnails kept with learned items
THUMBNAIL_SIZE = int(os.environ.get("THUMBNAIL_SIZE", "96"))
THUMBNAIL_QUALITY = int(os.environ.get("THUMBNAIL_QUALITY", "80"))

Frame = Union[bytes, bytearray, memoryview, str, np.ndarray]


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8."""
    if image_np.dtype == np.uint16:
        # 16-bit PNGs keep the full range; the high byte is the 8-bit value
        image_np = (image_np >> 8).astype(np.uint8)
    elif image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).round().astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)
    return image_np


def to_rgba(image_np: np.ndarray) -> np.ndarray:
    """
    Convert a gray, RGB or RGBA array to a contiguous RGBA array.

    Arrays without an alpha channel are treated as fully opaque.

    Raises:
        ValueError: If the array is not a 2-D or 3-D image.
    """
    image_np = np.ascontiguousarray(normalize_image(np.asarray(image_np)))

    if image_np.ndim == 2:
        return cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGBA)
    if image_np.ndim != 3:
        raise ValueError(f"Expected a 2-D or 3-D image, got shape {image_np.shape}")

    channels = image_np.shape[2]
    if channels == 1:
        return cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        return cv2.cvtColor(image_np, cv2.COLOR_RGB2RGBA)
    if channels == 4:
        return image_np
    raise ValueError(f"Unsupported channel count: {channels}")


def _payload_bytes(frame: Union[bytes, bytearray, memoryview, str]) -> bytes:
    """Extract raw encoded bytes from bytes, base64 text or a data URL."""
    if isinstance(frame, str):
        # Strip a "data:image/jpeg;base64," prefix
        if frame.startswith("data:"):
            frame = frame.split(",", 1)[1] if "," in frame else ""
        return base64.b64decode(frame, validate=False)
    return bytes(frame)


def decode_image(frame: Optional[Frame]) -> Optional[np.ndarray]:
    """
    Decode a frame into an RGBA PixelBuffer owned by the caller.

    Args:
        frame: Encoded image bytes, base64 string / data URL, or an
               already-decoded gray, RGB or RGBA uint8 array.

    Returns:
        uint8 array of shape (height, width, 4), or None when the frame
        is missing or cannot be decoded.
    """
    if frame is None:
        return None

    try:
        if isinstance(frame, np.ndarray):
            rgba = to_rgba(frame).copy()
        else:
            raw = np.frombuffer(_payload_bytes(frame), dtype=np.uint8)
            if raw.size == 0:
                logger.warning("Empty frame payload")
                return None

            decoded = cv2.imdecode(raw, cv2.IMREAD_UNCHANGED)
            if decoded is None:
                logger.warning("Could not decode frame")
                return None

            decoded = normalize_image(decoded)
            if decoded.ndim == 2:
                rgba = cv2.cvtColor(decoded, cv2.COLOR_GRAY2RGBA)
            elif decoded.shape[2] == 4:
                rgba = cv2.cvtColor(decoded, cv2.COLOR_BGRA2RGBA)
            else:
                rgba = cv2.cvtColor(decoded, cv2.COLOR_BGR2RGBA)

        if rgba.shape[0] == 0 or rgba.shape[1] == 0:
            logger.warning("Decoded frame has no pixels")
            return None

        rgba.setflags(write=False)
        return rgba

    except (ValueError, TypeError, binascii.Error, cv2.error) as e:
        logger.warning(f"Frame decoding failed: {e}")
        return None


def encode_png(image_np: np.ndarray) -> bytes:
    """
    Encode a gray, RGB or RGBA array as PNG bytes.

    Raises:
        ValueError: If OpenCV refuses to encode the image.
    """
    bgra = cv2.cvtColor(to_rgba(image_np), cv2.COLOR_RGBA2BGRA)
    ok, buffer = cv2.imencode(".png", bgra)
    if not ok:
        raise ValueError("PNG encoding failed")
    return buffer.tobytes()


def make_thumbnail(frame: Optional[Frame],
                   max_side: int = None) -> Optional[bytes]:
    """
    Produce a small JPEG thumbnail for display next to a learned item.

    Args:
        frame: Any frame accepted by decode_image().
        max_side: Longest side of the thumbnail in pixels.

    Returns:
        JPEG bytes, or None if the frame could not be decoded.

    Raises:
        ValueError: If max_side is not positive.
    """
    max_side = THUMBNAIL_SIZE if max_side is None else max_side
    if max_side < 1:
        raise ValueError(f"Thumbnail size must be positive, got {max_side}")

    rgba = decode_image(frame)
    if rgba is None:
        return None

    h, w = rgba.shape[:2]
    scale = max_side / max(h, w)
    bgr = np.ascontiguousarray(rgba[:, :, 2::-1])
    if scale < 1.0:
        bgr = cv2.resize(bgr, (max(1, int(w * scale)), max(1, int(h * scale))),
                         interpolation=cv2.INTER_AREA)

    ok, buffer = cv2.imencode(".jpg", bgr,
                              [cv2.IMWRITE_JPEG_QUALITY, THUMBNAIL_QUALITY])
    if not ok:
        logger.warning("Thumbnail encoding failed")
        return None
    return buffer.tobytes()
