"""
Periodic tick runner for a ClassificationPipeline.

One background thread calls pipeline.tick(), then waits for the
interval before re-arming. A slow classification therefore delays the
next tick instead of queueing it behind the current one.
"""

import os
import logging
import threading
from typing import Optional

from .engine import ClassificationPipeline

logger = logging.getLogger(__name__)

TICK_INTERVAL = float(os.environ.get("TICK_INTERVAL_MS", "500")) / 1000.0


class PipelineRunner:
    """Drives a pipeline's ticks from a single worker thread."""

    def __init__(self, pipeline: ClassificationPipeline, interval: float = None):
        self.pipeline = pipeline
        self.interval = TICK_INTERVAL if interval is None else interval
        if self.interval < 0:
            raise ValueError(f"Tick interval must be non-negative, got {self.interval}")
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the pipeline session and the tick loop."""
        if self.is_running:
            return
        self._stop.clear()
        self.pipeline.start()
        self._thread = threading.Thread(target=self._run, name="pipeline-ticks",
                                        daemon=True)
        self._thread.start()
        logger.info(f"Tick loop started ({self.interval * 1000:.0f} ms interval)")

    def stop(self, timeout: float = None):
        """Stop the tick loop, wait for the in-flight tick, end the session."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.pipeline.stop()
        logger.info("Tick loop stopped")

    def _run(self):
        while not self._stop.is_set():
            try:
                self.pipeline.tick()
            except Exception as e:
                logger.error(f"Tick failed: {e}")
            self._stop.wait(self.interval)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
