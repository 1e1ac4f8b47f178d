"""
Anchorlight Tracking - Detection Source Interface

The engine consumes marker detections from an external tracking subsystem
(headset marker manager, camera pipeline, ...). What it needs:
- subscribe(callback) / unsubscribe(handle): batches of DetectionEvent
- enabled: settable flag; False stops further callbacks

ReplayTrackingSource implements this in-process for demos and tests:
- deliver(batch): synchronous delivery on the caller's thread
- start()/stop(): background daemon thread replaying scripted batches
"""

import time
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

from .dispatcher import DetectionEvent

DetectionCallback = Callable[[List[DetectionEvent]], object]


class TrackingSubsystem(ABC):
    """Interface the engine depends on."""

    enabled: bool = True

    @abstractmethod
    def subscribe(self, callback: DetectionCallback) -> int:
        """Register a batch callback. Returns a handle for unsubscribe()."""
        pass

    @abstractmethod
    def unsubscribe(self, handle: int) -> None:
        pass


class ReplayTrackingSource(TrackingSubsystem):
    """
    Scripted detection source.

    Usage:
        source = ReplayTrackingSource(batches, interval=0.1)
        handle = source.subscribe(engine.on_detections)
        with source:
            source.wait_until_done()
    """

    def __init__(
        self,
        batches: Optional[Sequence[Sequence[DetectionEvent]]] = None,
        interval: float = 0.1,
        loop: bool = False
    ):
        """
        Args:
            batches: Scripted batches for the replay thread
            interval: Seconds between replayed batches
            loop: Restart from the first batch when the script ends
        """
        self.batches: List[List[DetectionEvent]] = [list(b) for b in (batches or [])]
        self.interval = interval
        self.loop = loop

        self._lock = threading.Lock()
        self._callbacks: Dict[int, DetectionCallback] = {}
        self._next_handle = 1
        self._enabled = True

        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Metrics
        self._delivered = 0
        self._suppressed = 0

        self.logger = logging.getLogger("ReplayTrackingSource")

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, callback: DetectionCallback) -> int:
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._callbacks[handle] = callback
        return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks)

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        with self._lock:
            changed = self._enabled != value
            self._enabled = value
        if changed:
            self.logger.info(f"Detection {'enabled' if value else 'disabled'}")

    def deliver(self, batch: Sequence[DetectionEvent]) -> bool:
        """
        Push one batch to every subscriber on the calling thread.

        Returns:
            False if the source is disabled (batch dropped)
        """
        with self._lock:
            if not self._enabled:
                self._suppressed += 1
                return False
            callbacks = list(self._callbacks.values())
            self._delivered += 1

        events = list(batch)
        for callback in callbacks:
            callback(events)
        return True

    # =========================================================================
    # REPLAY THREAD
    # =========================================================================

    def _replay_loop(self):
        index = 0
        while self._running:
            if index >= len(self.batches):
                if self.loop and self.batches:
                    index = 0
                else:
                    self.logger.info("End of detection script reached")
                    break

            self.deliver(self.batches[index])
            index += 1

            if self._stop_event.wait(self.interval):
                break
        self._running = False

    def start(self) -> bool:
        """Start the replay thread."""
        if self._running:
            return True

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._replay_loop, name="replay-tracking", daemon=True)
        self._thread.start()

        self.logger.info(f"Replay started: {len(self.batches)} batches every {self.interval:.2f}s")
        return True

    def stop(self):
        """Stop the replay thread."""
        self._running = False
        self._stop_event.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None

    def wait_until_done(self, timeout: Optional[float] = None) -> bool:
        """Block until the replay thread exits. Returns False on timeout."""
        thread = self._thread
        if thread is None:
            return True
        deadline = None if timeout is None else time.monotonic() + timeout
        while thread.is_alive():
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            thread.join(timeout=0.05 if remaining is None else min(0.05, remaining))
        return True

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def delivered_count(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def suppressed_count(self) -> int:
        with self._lock:
            return self._suppressed

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
