"""
Feature-kind registry.

A FeatureBundle maps a feature-kind name to its vector. The known kinds
and their extractors live here so that the store, the scorer and the
pipeline agree on names and vector lengths.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

import numpy as np

from .preprocessing import Frame, decode_image
from .histograms import extract_color_histogram, histogram_dim
from .shape_descriptors import ORIENTATION_BINS, extract_orientation_histogram

logger = logging.getLogger(__name__)

COLOR = "color"
SHAPE = "shape"

FeatureBundle = Dict[str, np.ndarray]

FEATURE_EXTRACTORS: Dict[str, Callable[..., np.ndarray]] = {
    COLOR: extract_color_histogram,
    SHAPE: extract_orientation_histogram,
}

FEATURE_KINDS = frozenset(FEATURE_EXTRACTORS)


def feature_dims(color_bins: int = None, orientation_bins: int = None) -> Dict[str, int]:
    """Expected vector length per feature kind."""
    return {
        COLOR: histogram_dim(color_bins),
        SHAPE: ORIENTATION_BINS if orientation_bins is None else orientation_bins,
    }


def extract_features(frame: Frame,
                     kinds: Optional[Iterable[str]] = None,
                     color_bins: int = None,
                     orientation_bins: int = None) -> FeatureBundle:
    """
    Fingerprint a frame with every requested feature kind.

    The frame is decoded once and the pixel buffer handed to each
    extractor, so the buffer is owned by this call alone.

    Args:
        frame: Encoded image or decoded array.
        kinds: Feature kinds to compute (default: all registered kinds).
        color_bins: Per-channel bin count for the color histogram.
        orientation_bins: Bin count for the orientation histogram.

    Returns:
        Dict mapping feature-kind name to float32 vector. Undecodable
        frames yield zero vectors of the right lengths.

    Raises:
        ValueError: If an unknown feature kind is requested.
    """
    kinds = list(FEATURE_KINDS if kinds is None else kinds)
    unknown = set(kinds) - FEATURE_KINDS
    if unknown:
        raise ValueError(f"Unknown feature kinds: {sorted(unknown)}")

    pixels = decode_image(frame)
    if pixels is None:
        logger.warning("Frame could not be decoded, using empty fingerprint")
        dims = feature_dims(color_bins, orientation_bins)
        return {kind: np.zeros(dims[kind], dtype=np.float32) for kind in kinds}

    bins = {COLOR: color_bins, SHAPE: orientation_bins}
    return {kind: FEATURE_EXTRACTORS[kind](pixels, bins=bins[kind]) for kind in kinds}
