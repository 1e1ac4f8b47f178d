"""
Anchorlight Highlight Controller

Name-keyed show/hide API used by the guided-procedure workflow.

    set_visible("Salt", True)   -> OK | NOT_FOUND | NOT_REGISTERED | NO_VISUAL

Never raises. Misuse and not-yet-detected objects are reported on the
ReportChannel and leave all state untouched.

Emphasis beam:
- At most one instance, created lazily by `beam_factory` on first show
- Retargeted on every successful show (last show wins)
- Hidden by a show=False only when that entry is the current target
"""

import logging
from enum import Enum
from typing import Callable, Optional

from .effects import EffectKind, EffectScheduler
from .registry import ObjectEntry, Registry
from .reports import ReportChannel, ReportKind
from .visuals import EmphasisBeam


class HighlightResult(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    NOT_REGISTERED = "not_registered"
    NO_VISUAL = "no_visual"
    DISABLED = "disabled"


class HighlightController:
    """Public highlight toggle surface."""

    def __init__(
        self,
        registry: Registry,
        reports: ReportChannel,
        scheduler: Optional[EffectScheduler] = None,
        beam_factory: Optional[Callable[[], EmphasisBeam]] = None
    ):
        self.registry = registry
        self.reports = reports
        self.scheduler = scheduler
        self.beam_factory = beam_factory
        self.logger = logging.getLogger("HighlightController")
        self._beam: Optional[EmphasisBeam] = None
        self._beam_entry: Optional[ObjectEntry] = None

    def set_visible(self, name: str, show: bool) -> HighlightResult:
        entry = self.registry.by_name(name)
        if entry is None:
            self.reports.emit(ReportKind.NOT_FOUND, name, "no catalogue entry with this name")
            return HighlightResult.NOT_FOUND

        if not entry.registered:
            self.reports.emit(ReportKind.NOT_REGISTERED, name, "not detected yet, highlight ignored")
            return HighlightResult.NOT_REGISTERED

        visual = entry.highlight_visual
        if visual is None:
            self.reports.emit(ReportKind.NO_VISUAL, name, "no highlight visual configured")
            return HighlightResult.NO_VISUAL

        # A flash in flight would settle the visual after us
        if self.scheduler is not None:
            self.scheduler.cancel(EffectKind.FLASH, visual.name)

        if show:
            entry.visible = True
            visual.set_active(True)
            beam = self._ensure_beam()
            if beam is not None:
                beam.set_target(visual)
                beam.set_active(True)
                self._beam_entry = entry
            self.logger.info(f"Highlight ON: {name}")
        else:
            entry.visible = False
            visual.set_active(False)
            if self._beam is not None and self._beam_entry is entry:
                self._beam.set_active(False)
                self._beam_entry = None
            self.logger.info(f"Highlight OFF: {name}")

        return HighlightResult.OK

    def clear_all(self) -> None:
        """Hide every visual and the beam. Registration is untouched."""
        if self.scheduler is not None:
            self.scheduler.cancel_all(EffectKind.FLASH)

        for entry in self.registry:
            entry.visible = False
            if entry.highlight_visual is not None:
                entry.highlight_visual.set_active(False)

        if self._beam is not None:
            self._beam.set_active(False)
        self._beam_entry = None
        self.logger.info("All highlights cleared")

    def _ensure_beam(self) -> Optional[EmphasisBeam]:
        if self._beam is None and self.beam_factory is not None:
            self._beam = self.beam_factory()
            self.logger.debug("Emphasis beam created")
        return self._beam

    @property
    def beam(self) -> Optional[EmphasisBeam]:
        return self._beam

    @property
    def beam_target_name(self) -> Optional[str]:
        """Name of the entry the beam currently points at, if active."""
        if self._beam is None or not self._beam.active or self._beam_entry is None:
            return None
        return self._beam_entry.name
