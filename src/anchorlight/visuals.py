"""
Anchorlight Visuals - Effect Targets

Scene-side handles the engine drives. Rendering itself belongs to the host
(headset runtime, game engine, overlay window); these objects only hold the
state a renderer reads:
- HighlightVisual: per-object highlight, reparented onto an anchor once bound
- EmphasisBeam: the single shared directional pointer
- TextReadout: textual display (timer panel)
- AudioCue: looping alarm sound

All setters are thread-safe. Effects run on worker threads and write the
same activation flags the controller writes, so each target guards its own
state with a private lock.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .geometry import Pose


@dataclass(frozen=True)
class ColorScheme:
    """BGR colors used by readouts."""
    normal: Tuple[int, int, int] = (255, 255, 255)   # White
    alert: Tuple[int, int, int] = (0, 0, 255)        # Red
    flash: Tuple[int, int, int] = (0, 0, 255)        # Red


class HighlightVisual:
    """
    Virtual highlight attached to one catalogued object.

    Before registration the visual floats at its configured offset with no
    parent. AnchorBinder.bind() reparents it onto the anchor; from then on
    world_pose = anchor.pose ∘ local_pose.
    """

    def __init__(self, name: str, offset: Optional[Pose] = None):
        self.name = name
        self.offset = offset or Pose.identity()
        self.logger = logging.getLogger(f"HighlightVisual-{name}")

        self._lock = threading.Lock()
        self._active = False
        self._toggles = 0
        self._anchor = None
        self._local_pose = self.offset

    # =========================================================================
    # ACTIVATION (Thread-Safe)
    # =========================================================================

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    def set_active(self, value: bool) -> None:
        with self._lock:
            if self._active != value:
                self._active = value
                self._toggles += 1

    @property
    def toggle_count(self) -> int:
        """Number of actual shown/hidden transitions so far."""
        with self._lock:
            return self._toggles

    # =========================================================================
    # PARENTING
    # =========================================================================

    def attach(self, anchor, local_pose: Optional[Pose] = None) -> None:
        """
        Reparent onto an anchor.

        The local pose is reset to the configured offset unless one is given,
        so any standoff from the marker comes from configuration only.
        """
        with self._lock:
            self._anchor = anchor
            self._local_pose = local_pose or self.offset
        self.logger.debug(f"Attached to {getattr(anchor, 'name', anchor)}")

    @property
    def anchor(self):
        with self._lock:
            return self._anchor

    @property
    def local_pose(self) -> Pose:
        with self._lock:
            return self._local_pose

    @property
    def world_pose(self) -> Optional[Pose]:
        """World pose, or None while unanchored."""
        with self._lock:
            anchor = self._anchor
            local = self._local_pose
        if anchor is None:
            return None
        return anchor.pose.compose(local)

    def __repr__(self) -> str:
        return f"HighlightVisual({self.name!r}, active={self.active})"


class EmphasisBeam:
    """
    Directional beam pointing at the currently emphasized visual.

    One instance per controller. Retargeted, never recreated; deactivated,
    never destroyed.
    """

    def __init__(self, name: str = "EmphasisBeam"):
        self.name = name
        self._lock = threading.Lock()
        self._target: Optional[HighlightVisual] = None
        self._active = False
        self._retargets = 0

    @property
    def target(self) -> Optional[HighlightVisual]:
        with self._lock:
            return self._target

    def set_target(self, visual: Optional[HighlightVisual]) -> None:
        with self._lock:
            if visual is not self._target:
                self._target = visual
                self._retargets += 1

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    def set_active(self, value: bool) -> None:
        with self._lock:
            self._active = value

    @property
    def retarget_count(self) -> int:
        with self._lock:
            return self._retargets

    def direction_from(self, origin: Tuple[float, float, float]) -> Optional[np.ndarray]:
        """
        Unit vector from `origin` to the target's world position.

        Returns:
            None when inactive, untargeted, unanchored, or degenerate
        """
        with self._lock:
            target = self._target
            active = self._active
        if not active or target is None:
            return None
        pose = target.world_pose
        if pose is None:
            return None
        delta = np.asarray(pose.position) - np.asarray(origin, dtype=np.float64)
        norm = float(np.linalg.norm(delta))
        if norm < 1e-9:
            return None
        return delta / norm


class TextReadout:
    """Text display with a color and an activation flag."""

    def __init__(self, text: str = "", color: Tuple[int, int, int] = ColorScheme.normal):
        self._lock = threading.Lock()
        self._text = text
        self._color = color
        self._active = True

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    def set_text(self, text: str) -> None:
        with self._lock:
            self._text = text

    @property
    def color(self) -> Tuple[int, int, int]:
        with self._lock:
            return self._color

    def set_color(self, color: Tuple[int, int, int]) -> None:
        with self._lock:
            self._color = color

    @property
    def active(self) -> bool:
        with self._lock:
            return self._active

    def set_active(self, value: bool) -> None:
        with self._lock:
            self._active = value


class AudioCue:
    """Alarm sound handle. `play(loop=True)` keeps sounding until stop()."""

    def __init__(self, clip: str = "alarm"):
        self.clip = clip
        self._lock = threading.Lock()
        self._playing = False
        self._looping = False
        self._plays = 0

    def play(self, loop: bool = True) -> None:
        with self._lock:
            self._playing = True
            self._looping = loop
            self._plays += 1

    def stop(self) -> None:
        with self._lock:
            self._playing = False
            self._looping = False

    @property
    def playing(self) -> bool:
        with self._lock:
            return self._playing

    @property
    def looping(self) -> bool:
        with self._lock:
            return self._looping

    @property
    def play_count(self) -> int:
        with self._lock:
            return self._plays
