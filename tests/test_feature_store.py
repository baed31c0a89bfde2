"""Tests for the learned-item store and feature bundle extraction."""

import numpy as np
import pytest

from visual_recognizer.feature_store import FeatureStore, LearnedItem
from visual_recognizer.features import (
    FEATURE_KINDS, extract_features, feature_dims,
)


def bundle(color_len=512, shape_len=9):
    return {
        "color": np.full(color_len, 1.0 / color_len, dtype=np.float32),
        "shape": np.full(shape_len, 1.0 / shape_len, dtype=np.float32),
    }


class TestExtractFeatures:
    """Tests for the feature-kind registry."""

    def test_all_kinds_by_default(self, red_square_image):
        features = extract_features(red_square_image)
        assert set(features) == FEATURE_KINDS == {"color", "shape"}
        assert features["color"].shape == (512,)
        assert features["shape"].shape == (9,)

    def test_subset_of_kinds(self, red_square_image):
        assert set(extract_features(red_square_image, kinds=["shape"])) == {"shape"}

    def test_unknown_kind_raises(self, red_image):
        with pytest.raises(ValueError, match="Unknown feature kinds"):
            extract_features(red_image, kinds=["texture"])

    def test_custom_bins(self, red_square_image):
        features = extract_features(red_square_image, color_bins=4, orientation_bins=12)
        assert features["color"].shape == (64,)
        assert features["shape"].shape == (12,)
        assert feature_dims(4, 12) == {"color": 64, "shape": 12}

    def test_undecodable_frame_gives_zero_vectors(self):
        features = extract_features(b"not an image")
        assert features["color"].shape == (512,)
        assert features["shape"].shape == (9,)
        assert not np.any(features["color"]) and not np.any(features["shape"])


class TestFeatureStore:
    """Tests for adding, deleting and iterating learned items."""

    def test_add_returns_item(self):
        store = FeatureStore()
        item = store.add("  cup ", bundle(), thumbnail=b"jpeg")
        assert isinstance(item, LearnedItem)
        assert item.label == "cup"
        assert item.thumbnail == b"jpeg"
        assert len(store) == 1
        assert item.id in store

    def test_ids_are_unique(self):
        store = FeatureStore()
        ids = {store.add("cup", bundle()).id for _ in range(5)}
        assert len(ids) == 5

    def test_labels_need_not_be_unique(self):
        store = FeatureStore()
        store.add("cup", bundle())
        store.add("cup", bundle())
        assert [item.label for item in store] == ["cup", "cup"]

    def test_insertion_order(self):
        store = FeatureStore()
        for label in ("a", "b", "c"):
            store.add(label, bundle())
        assert [item.label for item in store.items()] == ["a", "b", "c"]

    def test_empty_label_raises(self):
        with pytest.raises(ValueError, match="Label"):
            FeatureStore().add("   ", bundle())

    def test_empty_bundle_raises(self):
        with pytest.raises(ValueError, match="at least one"):
            FeatureStore().add("cup", {})

    def test_duplicate_id_raises(self):
        store = FeatureStore()
        store.add("cup", bundle(), item_id="fixed")
        with pytest.raises(ValueError, match="Duplicate"):
            store.add("mug", bundle(), item_id="fixed")

    def test_length_mismatch_raises(self):
        store = FeatureStore()
        store.add("cup", bundle())
        with pytest.raises(ValueError, match="length"):
            store.add("mug", bundle(color_len=64))
        assert len(store) == 1

    def test_vectors_are_read_only(self):
        item = FeatureStore().add("cup", bundle())
        with pytest.raises(ValueError):
            item.features["color"][0] = 1.0

    def test_stored_copy_independent_of_input(self):
        features = bundle()
        item = FeatureStore().add("cup", features)
        features["color"][:] = 0
        assert item.features["color"].sum() == pytest.approx(1.0)

    def test_get(self):
        store = FeatureStore()
        item = store.add("cup", bundle())
        assert store.get(item.id) is item
        assert store.get("missing") is None

    def test_delete(self):
        store = FeatureStore()
        cup = store.add("cup", bundle())
        mug = store.add("mug", bundle())
        assert store.delete(cup.id) is True
        assert store.delete(cup.id) is False
        assert store.items() == [mug]

    def test_snapshot_survives_delete(self):
        store = FeatureStore()
        cup = store.add("cup", bundle())
        store.add("mug", bundle())
        snapshot = store.snapshot()
        iterator = iter(store)
        store.delete(cup.id)
        assert [item.label for item in snapshot] == ["cup", "mug"]
        assert [item.label for item in iterator] == ["cup", "mug"]
        assert len(store) == 1

    def test_lengths_reset_when_emptied(self):
        store = FeatureStore()
        item = store.add("cup", bundle())
        store.delete(item.id)
        store.add("mug", bundle(color_len=64))
        assert len(store) == 1

    def test_clear(self):
        store = FeatureStore()
        store.add("cup", bundle())
        store.clear()
        assert len(store) == 0
        store.add("mug", bundle(shape_len=18))
