"""
Weighted similarity scoring and single-best-match classification.

Each feature kind is compared by histogram intersection, which lies in
[0, 1] for two normalized histograms of equal length. Per-kind scores
are combined as a convex combination using the operator's weights, so
the combined score also lies in [0, 1].

Weights are loaded from configuration to allow tuning without code
changes; the UI expresses them as 0-100 sliders (see
weights_from_sliders()). Only their ratios matter.
"""

import os
import math
import logging
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional

import numpy as np

from .features import COLOR, FEATURE_KINDS, SHAPE, FeatureBundle

logger = logging.getLogger(__name__)

# Default slider positions (0-100). Color dominates so that an exemplar
# with a flat, all-zero shape fingerprint still matches itself.
DEFAULT_WEIGHTS = {
    COLOR: float(os.environ.get("SCORE_COLOR_W", "70")),
    SHAPE: float(os.environ.get("SCORE_SHAPE_W", "30")),
}

# Best score must be strictly above this to count as a match
MATCH_THRESHOLD = float(os.environ.get("MATCH_THRESHOLD", "0.60"))

SLIDER_MAX = 100.0


class Match(NamedTuple):
    item_id: str
    label: str
    score: float


def validate_weights(weights: Mapping[str, float],
                     kinds: Optional[Iterable[str]] = None) -> Dict[str, float]:
    """
    Check a weight vector and return it as a plain dict of floats.

    Args:
        weights: Mapping of feature kind to non-negative weight.
        kinds: If given, the only feature kinds allowed as keys.

    Raises:
        ValueError: On negative or non-finite weights, or unknown kinds.
    """
    if kinds is not None:
        unknown = set(weights) - set(kinds)
        if unknown:
            raise ValueError(f"Unknown feature kinds in weights: {sorted(unknown)}")

    validated = {}
    for kind, weight in weights.items():
        weight = float(weight)
        if not math.isfinite(weight) or weight < 0:
            raise ValueError(f"Weight for '{kind}' must be a non-negative number, got {weight}")
        validated[kind] = weight
    return validated


def weights_from_sliders(sliders: Mapping[str, float]) -> Dict[str, float]:
    """Convert 0-100 UI slider positions to weights, clamping out-of-range values."""
    return {
        kind: min(max(float(value), 0.0), SLIDER_MAX) / SLIDER_MAX
        for kind, value in sliders.items()
    }


def histogram_intersection(a: np.ndarray, b: np.ndarray) -> float:
    """
    Sum of element-wise minimums of two histograms.

    1.0 for identical normalized distributions, 0.0 for disjoint support
    or when either side is all zeros. Vectors of different lengths are
    compared over their shared prefix.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if len(a) != len(b):
        logger.warning(f"Histogram length mismatch: {len(a)} vs {len(b)}")
        n = min(len(a), len(b))
        a, b = a[:n], b[:n]
    return float(np.minimum(a, b).sum())


def score(query: FeatureBundle,
          candidate: FeatureBundle,
          weights: Mapping[str, float] = None,
          kinds: Optional[Iterable[str]] = FEATURE_KINDS) -> float:
    """
    Weighted similarity between two feature bundles.

    Every kind in the weight vector counts toward the total weight, even
    when one of the bundles lacks it; such a kind simply contributes 0.
    Kinds not in the weight vector are ignored entirely.

    Args:
        query: Feature bundle of the incoming frame.
        candidate: Feature bundle of a stored exemplar.
        weights: Feature kind to non-negative weight (default: DEFAULT_WEIGHTS).
        kinds: Feature kinds allowed in the weights (default: the
               registered kinds). None accepts any kind name.

    Returns:
        Score in [0, 1]; 0 when the total weight is 0.

    Raises:
        ValueError: On unknown kinds or negative weights.
    """
    weights = validate_weights(DEFAULT_WEIGHTS if weights is None else weights, kinds)

    total_weight = sum(weights.values())
    if total_weight <= 0:
        return 0.0

    combined = 0.0
    for kind, weight in weights.items():
        if weight <= 0:
            continue
        q, c = query.get(kind), candidate.get(kind)
        if q is None or c is None:
            continue
        combined += histogram_intersection(q, c) * (weight / total_weight)

    return float(combined)


def rank_matches(query: FeatureBundle,
                 items: Iterable,
                 weights: Mapping[str, float] = None,
                 kinds: Optional[Iterable[str]] = FEATURE_KINDS) -> List[Match]:
    """
    Score every stored item against a query, highest score first.

    Items with equal scores keep their insertion order.

    Args:
        query: Feature bundle of the incoming frame.
        items: LearnedItems (or a FeatureStore) in insertion order.
        weights: Feature kind to non-negative weight.
        kinds: Feature kinds allowed in the weights (see score()).

    Returns:
        List of Match tuples sorted by descending score.
    """
    weights = validate_weights(DEFAULT_WEIGHTS if weights is None else weights, kinds)
    results = [Match(item.id, item.label, score(query, item.features, weights, kinds))
               for item in items]
    return sorted(results, key=lambda m: -m.score)


def best_match(query: FeatureBundle,
               items: Iterable,
               weights: Mapping[str, float] = None,
               kinds: Optional[Iterable[str]] = FEATURE_KINDS) -> Optional[Match]:
    """
    Highest-scoring item, or None for an empty collection.

    Uses a strict ``>`` running maximum so the first of several equally
    scoring items wins.
    """
    weights = validate_weights(DEFAULT_WEIGHTS if weights is None else weights, kinds)

    items = tuple(items)
    if not items:
        return None

    best = None
    for item in items:
        s = score(query, item.features, weights, kinds)
        if best is None or s > best.score:
            best = Match(item.id, item.label, s)
    return best


def classify(query: FeatureBundle,
             items: Iterable,
             weights: Mapping[str, float] = None,
             threshold: float = None,
             kinds: Optional[Iterable[str]] = FEATURE_KINDS) -> Optional[str]:
    """
    Label of the best-matching item, or None if nothing matches well enough.

    Args:
        query: Feature bundle of the incoming frame.
        items: LearnedItems (or a FeatureStore) in insertion order.
        weights: Feature kind to non-negative weight.
        threshold: Best score must be strictly greater than this.
            Defaults to MATCH_THRESHOLD.
        kinds: Feature kinds allowed in the weights (see score()).

    Returns:
        The winning label, or None for an empty store or a best score at
        or below the threshold.

    Raises:
        ValueError: On unknown kinds or negative weights.
    """
    threshold = MATCH_THRESHOLD if threshold is None else threshold

    match = best_match(query, items, weights, kinds)
    if match is None:
        logger.debug("No learned items, skipping classification")
        return None

    if match.score > threshold:
        logger.debug(f"Matched '{match.label}' with score {match.score:.3f}")
        return match.label

    logger.debug(
        f"Best candidate '{match.label}' scored {match.score:.3f}, "
        f"below threshold {threshold:.2f}"
    )
    return None
