"""
Anchorlight Detection Dispatcher

Routes batches of tracker detections to the AnchorBinder.

Per event:
    payload ──decode──→ empty?        ──→ skip (empty)
                     └→ match()       ──→ UNRECOGNIZED ──→ warn, skip
                                       └→ registered?  ──→ skip (duplicate)
                                                        └→ bind()

Redelivery of a code (whether the tracker sends "added" only or
"added + still tracked") is harmless: the entry's `registered` flag is
what prevents double binding. The bound-code set is only a fast path and
only ever holds codes whose bind succeeded.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Union

from .anchors import AnchorBinder
from .geometry import Pose
from .registry import MarkerCode, Registry
from .reports import ReportChannel, ReportKind


@dataclass(frozen=True)
class DetectionEvent:
    """One marker sighting. Transient: not retained after dispatch."""
    payload: Union[str, bytes, None]
    pose: Pose = field(default_factory=Pose.identity)

    @property
    def code(self) -> Optional[MarkerCode]:
        return MarkerCode.parse(self.payload)


@dataclass
class DispatchSummary:
    """Outcome counts for one batch."""
    bound: int = 0
    duplicate: int = 0
    unrecognized: int = 0
    empty: int = 0
    failed: int = 0
    bound_names: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.bound + self.duplicate + self.unrecognized + self.empty + self.failed


class DetectionDispatcher:
    """Filters, dedupes and forwards detection batches."""

    def __init__(self, registry: Registry, binder: AnchorBinder, reports: ReportChannel):
        self.registry = registry
        self.binder = binder
        self.reports = reports
        self.logger = logging.getLogger("DetectionDispatcher")
        self._bound_codes: Set[MarkerCode] = set()
        self._batches = 0

    def on_detections(self, events: Iterable[DetectionEvent]) -> DispatchSummary:
        """
        Process one batch from the tracking subsystem.

        Never raises for per-event problems: each one is counted and
        reported, and the rest of the batch continues.
        """
        summary = DispatchSummary()
        self._batches += 1

        for event in events:
            code = event.code
            if code is None:
                summary.empty += 1
                continue

            if code in self._bound_codes:
                summary.duplicate += 1
                continue

            result = self.registry.match(code)
            if not result.matched:
                summary.unrecognized += 1
                self.reports.emit(ReportKind.UNRECOGNIZED, str(code), "no catalogue entry for this code")
                continue

            entry = result.entry
            if entry.registered:
                summary.duplicate += 1
                self._bound_codes.add(code)
                self.reports.emit(ReportKind.ALREADY_REGISTERED, entry.name, "redelivered, ignored")
                continue

            try:
                self.binder.bind(entry, event.pose)
            except Exception as e:
                summary.failed += 1
                self.logger.exception(f"Binding {entry.name} failed")
                self.reports.emit(ReportKind.BIND_FAILED, entry.name, str(e))
                continue

            self._bound_codes.add(code)
            summary.bound += 1
            summary.bound_names.append(entry.name)

        if summary.bound or summary.unrecognized:
            self.logger.debug(
                f"Batch {self._batches}: bound={summary.bound} dup={summary.duplicate} "
                f"unrecognized={summary.unrecognized} empty={summary.empty}"
            )
        return summary

    @property
    def batch_count(self) -> int:
        return self._batches
