"""
Anchorlight Anchors - One-Time Binding of Objects to World Anchors

On first sight of a catalogued object:
1. Create a world-fixed AnchorBinding at the detected pose
2. Reparent the object's highlight visual onto it (local pose = configured offset)
3. Mark the entry registered
4. Kick off the registration flash (fire-and-forget)
5. Ask the CompletionMonitor whether detection can stop

Once created, an anchor holds the visual in place even after the marker
itself is no longer tracked. Anchors persist for the whole session.
"""

import time
import uuid
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import AlreadyRegisteredError
from .effects import EffectScheduler, RegistrationFlash
from .geometry import Pose
from .registry import ObjectEntry
from .reports import ReportChannel, ReportKind


@dataclass(eq=False)
class AnchorBinding:
    """World-fixed reference frame owning one entry's highlight visual."""
    entry: ObjectEntry
    pose: Pose
    anchor_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: float = field(default_factory=time.time)

    @property
    def name(self) -> str:
        return f"Anchor_{self.entry.name}"

    @property
    def visual(self):
        return self.entry.highlight_visual


class AnchorBinder:
    """
    Binds entries to anchors exactly once.

    bind() on an already registered entry raises AlreadyRegisteredError:
    the dispatcher checks the flag first, so reaching that branch means a
    caller skipped the check.
    """

    def __init__(
        self,
        scheduler: EffectScheduler,
        reports: ReportChannel,
        flash_seconds: float = 1.0,
        monitor=None
    ):
        self.scheduler = scheduler
        self.reports = reports
        self.flash_seconds = flash_seconds
        self.monitor = monitor
        self.logger = logging.getLogger("AnchorBinder")
        self._bindings: Dict[str, AnchorBinding] = {}

    def bind(self, entry: ObjectEntry, pose: Pose) -> AnchorBinding:
        """
        Anchor `entry` at `pose`.

        Args:
            entry: Unregistered catalogue entry
            pose: World pose of the detection that triggered registration

        Returns:
            The new AnchorBinding

        Raises:
            AlreadyRegisteredError: entry is already bound
        """
        if entry.registered:
            raise AlreadyRegisteredError(entry.name)

        binding = AnchorBinding(entry=entry, pose=pose)

        visual = entry.highlight_visual
        if visual is not None:
            visual.attach(binding)

        entry.registered = True
        self._bindings[entry.name] = binding

        self.reports.emit(
            ReportKind.REGISTERED,
            entry.name,
            f"anchored as {binding.name} [{binding.anchor_id}] at {pose.position}"
        )

        if visual is not None and self.flash_seconds > 0:
            self.scheduler.start(
                RegistrationFlash(visual, self.flash_seconds, resting=lambda: entry.visible)
            )

        if self.monitor is not None:
            self.monitor.check()

        return binding

    def binding_for(self, name: str) -> Optional[AnchorBinding]:
        return self._bindings.get(name)

    @property
    def bindings(self) -> List[AnchorBinding]:
        return list(self._bindings.values())

    @property
    def binding_count(self) -> int:
        return len(self._bindings)
