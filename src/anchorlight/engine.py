"""
Anchorlight Engine - Marker Registration & Highlight State Engine

Owns and wires every component for one session:

    tracking ──→ DetectionDispatcher ──→ Registry.match ──→ AnchorBinder
                                                              │
                                   EffectScheduler (flash) ←──┤
                                   CompletionMonitor ←────────┘

    workflow ──→ HighlightController ──→ Registry (visible) ──→ EmphasisBeam

Every state-mutating entry point (detections, set_visible, clear_all,
bind) runs under one re-entrant lock, so entries are only ever mutated
from a single logical thread of control. Effects run on their own
workers and only touch their own target.

Without a tracking subsystem the engine is disabled (ConfigMissing):
every call becomes a reported no-op.
"""

import logging
import threading
from typing import Callable, Iterable, Optional

from .anchors import AnchorBinder, AnchorBinding
from .completion import CompletionMonitor
from .config import EngineSettings
from .dispatcher import DetectionDispatcher, DetectionEvent, DispatchSummary
from .effects import EffectScheduler
from .geometry import Pose
from .highlight import HighlightController, HighlightResult
from .registry import Registry
from .reports import ReportChannel, ReportKind
from .tracking import TrackingSubsystem
from .visuals import EmphasisBeam


class MarkerEngine:
    """
    Core instance: one registry, one tracking subscription, one beam.

    Usage:
        engine = MarkerEngine(load_catalogue("kitchen.yaml"), tracking=source)
        with engine:                      # subscribes; unsubscribes on exit
            ...
            engine.set_visible("Salt", True)
    """

    def __init__(
        self,
        registry: Optional[Registry],
        tracking: Optional[TrackingSubsystem],
        settings: Optional[EngineSettings] = None,
        reports: Optional[ReportChannel] = None,
        scheduler: Optional[EffectScheduler] = None,
        beam_factory: Optional[Callable[[], EmphasisBeam]] = None
    ):
        self.settings = settings or EngineSettings()
        self.reports = reports or ReportChannel(history_size=self.settings.report_history)
        self.logger = logging.getLogger("MarkerEngine")

        self.registry = registry if registry is not None else Registry()
        self.tracking = tracking
        self.scheduler = scheduler or EffectScheduler()

        if beam_factory is None and self.settings.beam_enabled:
            beam_factory = EmphasisBeam

        self._lock = threading.RLock()
        self._subscription: Optional[int] = None

        # Components
        self.monitor = CompletionMonitor(self.registry, tracking, self.reports)
        self.binder = AnchorBinder(
            self.scheduler,
            self.reports,
            flash_seconds=self.settings.flash_seconds,
            monitor=self.monitor
        )
        self.dispatcher = DetectionDispatcher(self.registry, self.binder, self.reports)
        self.controller = HighlightController(
            self.registry,
            self.reports,
            scheduler=self.scheduler,
            beam_factory=beam_factory
        )

        # Highlights start hidden
        for entry in self.registry:
            if entry.highlight_visual is not None:
                entry.highlight_visual.set_active(False)

        missing = []
        if registry is None:
            missing.append("registry")
        if tracking is None:
            missing.append("tracking subsystem")
        self._disabled = bool(missing)
        if self._disabled:
            self.reports.emit(
                ReportKind.CONFIG_MISSING,
                "engine",
                f"missing {', '.join(missing)}; engine disabled"
            )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> bool:
        """Subscribe to the tracking subsystem. Returns False when disabled."""
        if self._disabled:
            self.reports.emit(ReportKind.CONFIG_MISSING, "start", "engine disabled, not subscribing")
            return False

        with self._lock:
            if self._subscription is not None:
                return True
            self._subscription = self.tracking.subscribe(self.on_detections)
            if not self.monitor.fired:
                self.tracking.enabled = True

        self.logger.info(
            f"Engine started: {len(self.registry)} objects, "
            f"{self.registry.registered_count} already registered"
        )
        return True

    def stop(self) -> None:
        """Release the subscription and settle every running effect."""
        with self._lock:
            subscription = self._subscription
            self._subscription = None

        if subscription is not None and self.tracking is not None:
            self.tracking.unsubscribe(subscription)
            self.logger.info("Engine stopped")

        self.scheduler.cancel_all()

    def close(self) -> None:
        """stop() and refuse any further effects."""
        self.stop()
        self.scheduler.shutdown()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # =========================================================================
    # DETECTION PATH
    # =========================================================================

    def on_detections(self, events: Iterable[DetectionEvent]) -> DispatchSummary:
        """Tracking callback: one batch of detections."""
        if self._disabled:
            self.reports.emit(ReportKind.DISABLED, "detections", "engine disabled, batch ignored")
            return DispatchSummary()
        with self._lock:
            summary = self.dispatcher.on_detections(events)
            if not self.monitor.fired:
                self.monitor.check()
            return summary

    def bind(self, name: str, pose: Pose) -> Optional[AnchorBinding]:
        """
        Direct bind API.

        Returns:
            The new AnchorBinding, or None when the engine is disabled

        Raises:
            KeyError: unknown name
            AlreadyRegisteredError: entry is already bound
        """
        if self._disabled:
            self.reports.emit(ReportKind.DISABLED, name, "engine disabled, bind ignored")
            return None
        with self._lock:
            entry = self.registry.by_name(name)
            if entry is None:
                raise KeyError(name)
            return self.binder.bind(entry, pose)

    # =========================================================================
    # CONTROL PATH
    # =========================================================================

    def set_visible(self, name: str, show: bool) -> HighlightResult:
        if self._disabled:
            self.reports.emit(ReportKind.DISABLED, name, "engine disabled, highlight ignored")
            return HighlightResult.DISABLED
        with self._lock:
            return self.controller.set_visible(name, show)

    def clear_all(self) -> None:
        if self._disabled:
            self.reports.emit(ReportKind.DISABLED, "clear_all", "engine disabled")
            return
        with self._lock:
            self.controller.clear_all()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._subscription is not None

    @property
    def completed(self) -> bool:
        return self.monitor.fired

    @property
    def beam(self) -> Optional[EmphasisBeam]:
        return self.controller.beam
