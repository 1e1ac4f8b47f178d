"""
Anchorlight Completion Monitor

Stops the (expensive) detection subsystem once every catalogued object
is anchored. Fires at most once per engine instance.
"""

import logging
import threading

from .registry import Registry
from .reports import ReportChannel, ReportKind


class CompletionMonitor:
    """Latch that disables tracking when the registry is fully registered."""

    def __init__(self, registry: Registry, tracking, reports: ReportChannel):
        self.registry = registry
        self.tracking = tracking
        self.reports = reports
        self.logger = logging.getLogger("CompletionMonitor")
        self._lock = threading.Lock()
        self._fired = False

    def check(self) -> bool:
        """
        Called after each successful bind, and after each batch until it fires.

        Returns:
            True if this call issued the stop-detection signal
        """
        if not self.registry.all_registered:
            self.logger.debug(
                f"{self.registry.registered_count}/{len(self.registry)} registered"
            )
            return False

        with self._lock:
            if self._fired:
                return False

            # Disabling an already disabled source is harmless
            if self.tracking is not None:
                try:
                    self.tracking.enabled = False
                except Exception:
                    self.logger.exception("Stopping detection failed, retrying on next batch")
                    return False
            self._fired = True

        self.reports.emit(
            ReportKind.COMPLETED,
            "catalogue",
            f"all {len(self.registry)} objects registered, detection stopped"
        )
        return True

    @property
    def fired(self) -> bool:
        with self._lock:
            return self._fired
