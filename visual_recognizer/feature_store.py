"""
In-memory collection of learned exemplars.

Each LearnedItem pairs an operator-supplied label with the feature
bundle fingerprinted from a single captured frame. Items are immutable
once created and only leave the store through an explicit delete.

Writers take a lock; readers get an immutable snapshot, so a delete
issued while a classification pass is iterating never disturbs it.
"""

import uuid
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .features import FeatureBundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class LearnedItem:
    """A labeled exemplar: one fingerprint captured at learn time."""

    id: str
    label: str
    features: FeatureBundle = field(repr=False)
    thumbnail: Optional[bytes] = field(default=None, repr=False)


def _freeze_bundle(features: FeatureBundle) -> FeatureBundle:
    frozen = {}
    for kind, vector in features.items():
        array = np.array(vector, dtype=np.float32).ravel()
        array.setflags(write=False)
        frozen[kind] = array
    return frozen


class FeatureStore:
    """
    Ordered, thread-safe store of LearnedItems.

    Insertion order is preserved and matters: the classifier resolves
    equal scores in favor of the earliest item.
    """

    def __init__(self):
        self._items: Tuple[LearnedItem, ...] = ()
        self._dims: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[LearnedItem]:
        return iter(self._items)

    def __contains__(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def snapshot(self) -> Tuple[LearnedItem, ...]:
        """Current items in insertion order; unaffected by later writes."""
        return self._items

    def items(self) -> List[LearnedItem]:
        return list(self._items)

    def get(self, item_id: str) -> Optional[LearnedItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def add(self, label: str, features: FeatureBundle,
            thumbnail: Optional[bytes] = None,
            item_id: Optional[str] = None) -> LearnedItem:
        """
        Append a new exemplar.

        Args:
            label: Display label; surrounding whitespace is stripped.
            features: Feature bundle for the exemplar.
            thumbnail: Optional encoded image for the management UI.
            item_id: Explicit id (default: a fresh uuid4 hex string).

        Returns:
            The stored LearnedItem.

        Raises:
            ValueError: On an empty label, empty bundle, duplicate id, or
                a vector whose length differs from the one already
                stored for the same feature kind.
        """
        label = (label or "").strip()
        if not label:
            raise ValueError("Label must be a non-empty string")
        if not features:
            raise ValueError("Feature bundle must contain at least one vector")

        frozen = _freeze_bundle(features)

        with self._lock:
            item_id = item_id or uuid.uuid4().hex
            if any(item.id == item_id for item in self._items):
                raise ValueError(f"Duplicate item id: {item_id}")

            for kind, vector in frozen.items():
                expected = self._dims.get(kind)
                if expected is not None and len(vector) != expected:
                    raise ValueError(
                        f"Feature '{kind}' has length {len(vector)}, "
                        f"expected {expected}"
                    )

            item = LearnedItem(id=item_id, label=label,
                               features=frozen, thumbnail=thumbnail)
            for kind, vector in frozen.items():
                self._dims.setdefault(kind, len(vector))
            self._items = self._items + (item,)

        logger.info(f"Learned '{label}' as {item_id} ({len(self._items)} items)")
        return item

    def delete(self, item_id: str) -> bool:
        """Remove an item by id. Returns False if no such item exists."""
        with self._lock:
            remaining = tuple(item for item in self._items if item.id != item_id)
            if len(remaining) == len(self._items):
                return False
            self._items = remaining
            if not remaining:
                self._dims = {}

        logger.info(f"Deleted item {item_id} ({len(remaining)} items left)")
        return True

    def clear(self):
        with self._lock:
            self._items = ()
            self._dims = {}
