"""
Camera-session classification pipeline.

Orchestrates the per-tick flow:
    1. Capture a frame from the FrameSource
    2. MotionGate: skip the expensive work if nothing changed
    3. Extract the color and edge-orientation fingerprints
    4. Score against every learned item and publish the best label

Learning bypasses the motion gate: a captured frame is always
fingerprinted and appended to the FeatureStore.

A classification failure is never fatal to the session. It is logged,
surfaces as "no match", and the next tick retries independently.
"""

import os
import time
import enum
import logging
import threading
from typing import Callable, List, Mapping, Optional, Protocol

from .preprocessing import Frame, make_thumbnail
from .features import FEATURE_KINDS, FeatureBundle, extract_features
from .feature_store import FeatureStore, LearnedItem
from .motion import MotionGate
from .scoring import (DEFAULT_WEIGHTS, MATCH_THRESHOLD, classify,
                      validate_weights, weights_from_sliders)

logger = logging.getLogger(__name__)

# Delay before a "no motion" tick clears the displayed label
CLEAR_DELAY = float(os.environ.get("CLEAR_DELAY_MS", "500")) / 1000.0


class FrameSource(Protocol):
    def capture(self) -> Optional[Frame]:
        """Return the latest encoded frame, or None if none is available. Never blocks."""


class SessionState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"


class ClassificationPipeline:
    """
    Motion-gated, single-worker classifier for one camera session.

    Ticks arriving while a classification is in flight are dropped,
    never queued. The published result is either a label or None.
    """

    def __init__(self,
                 frame_source: FrameSource,
                 store: FeatureStore = None,
                 motion_gate: MotionGate = None,
                 weights: Mapping[str, float] = None,
                 threshold: float = None,
                 clear_delay: float = None,
                 color_bins: int = None,
                 orientation_bins: int = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            frame_source: Object with a non-blocking capture() method.
            store: Learned items (a new empty store by default).
            motion_gate: Gate used on every tick (default settings if omitted).
            weights: Feature kind to non-negative weight; only ratios matter.
            threshold: Minimum score (exclusive) for a match.
            clear_delay: Seconds after a motionless tick before the
                         published result is cleared.
            color_bins: Per-channel bins for the color histogram.
            orientation_bins: Bins for the edge-orientation histogram.
            clock: Monotonic time source, injectable for tests.
        """
        self.frame_source = frame_source
        self.store = store if store is not None else FeatureStore()
        self.motion_gate = motion_gate or MotionGate()
        self.weights = validate_weights(
            DEFAULT_WEIGHTS if weights is None else weights, FEATURE_KINDS)
        self.threshold = MATCH_THRESHOLD if threshold is None else threshold
        self.clear_delay = CLEAR_DELAY if clear_delay is None else clear_delay
        self.color_bins = color_bins
        self.orientation_bins = orientation_bins
        self._clock = clock

        self.state = SessionState.IDLE
        self._result: Optional[str] = None
        self._clear_at: Optional[float] = None
        self._busy = threading.Lock()
        self._is_classifying = False
        self._is_learning = False
        # Bumped on every start/stop; a tick only publishes into its own session
        self._session = 0

    # --- session lifecycle -------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    def start(self):
        """Enter the active state with a fresh motion state and no result."""
        self._session += 1
        self.motion_gate.reset()
        self._publish(None)
        self.state = SessionState.ACTIVE
        logger.info("Classification session started")

    def stop(self):
        """Leave the active state, discarding motion state and result."""
        self._session += 1
        self.state = SessionState.IDLE
        self.motion_gate.reset()
        self._publish(None)
        logger.info("Classification session stopped")

    # --- published state ----------------------------------------------

    @property
    def result(self) -> Optional[str]:
        """Currently published label, or None."""
        self._apply_pending_clear()
        return self._result

    @property
    def is_classifying(self) -> bool:
        return self._is_classifying

    @property
    def is_learning(self) -> bool:
        return self._is_learning

    @property
    def items(self) -> List[LearnedItem]:
        return self.store.items()

    def _publish(self, result: Optional[str]):
        self._result = result
        self._clear_at = None

    def _schedule_clear(self):
        if self._result is not None and self._clear_at is None:
            self._clear_at = self._clock() + self.clear_delay

    def _apply_pending_clear(self):
        if self._clear_at is not None and self._clock() >= self._clear_at:
            logger.debug("No motion, clearing result")
            self._result = None
            self._clear_at = None

    # --- configuration ------------------------------------------------

    def set_weights(self, weights: Mapping[str, float]):
        self.weights = validate_weights(weights, FEATURE_KINDS)

    def set_slider_weights(self, sliders: Mapping[str, float]):
        self.set_weights(weights_from_sliders(sliders))

    def set_threshold(self, threshold: float):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold

    # --- operations ---------------------------------------------------

    def fingerprint(self, frame: Frame) -> FeatureBundle:
        return extract_features(frame,
                                color_bins=self.color_bins,
                                orientation_bins=self.orientation_bins)

    def classify_frame(self, frame: Frame) -> Optional[str]:
        """
        Fingerprint a frame and return the best label above the threshold.

        Errors during extraction or scoring are logged and reported as None.
        """
        try:
            query = self.fingerprint(frame)
            return classify(query, self.store.snapshot(), self.weights, self.threshold)
        except Exception as e:
            logger.error(f"Classification failed: {e}")
            return None

    def tick(self) -> bool:
        """
        Process one scheduler tick.

        Returns:
            True if a frame was processed, False if the tick was skipped
            (session idle, a classification still in flight, or no frame
            available).
        """
        if not self.is_active:
            return False

        if not self._busy.acquire(blocking=False):
            logger.debug("Previous frame still in flight, dropping tick")
            return False

        try:
            session = self._session
            self._apply_pending_clear()

            try:
                frame = self.frame_source.capture()
            except Exception as e:
                logger.error(f"Frame capture failed: {e}")
                return False
            if frame is None:
                return False

            try:
                moved = self.motion_gate.check(frame)
            except Exception as e:
                logger.error(f"Motion check failed: {e}")
                return False
            if not moved:
                self._schedule_clear()
                return True

            self._is_classifying = True
            try:
                result = self.classify_frame(frame)
            finally:
                self._is_classifying = False

            # A session stopped or restarted mid-classification keeps its own result
            if self.is_active and self._session == session:
                self._publish(result)
            return True

        finally:
            self._busy.release()

    def learn(self, label: str, frame: Frame = None) -> LearnedItem:
        """
        Fingerprint a frame and store it under a label.

        Args:
            label: Non-empty display label.
            frame: Frame to learn from; captured from the source if omitted.

        Returns:
            The new LearnedItem.

        Raises:
            ValueError: If the label is empty or no frame is available.
        """
        if not (label or "").strip():
            raise ValueError("Label must be a non-empty string")

        self._is_learning = True
        try:
            if frame is None:
                frame = self.frame_source.capture()
            if frame is None:
                raise ValueError("Failed to capture a frame to learn from")

            features = self.fingerprint(frame)
            return self.store.add(label, features, thumbnail=make_thumbnail(frame))
        finally:
            self._is_learning = False

    def delete(self, item_id: str) -> bool:
        return self.store.delete(item_id)
