"""
Anchorlight Procedure - Guided Step Navigation

Walks a list of steps and keeps the highlight on the object each step
needs. Steps come from a YAML/JSON document:

    steps:
      - instruction: "Crack two eggs into a bowl"
      - instruction: "Add a pinch of salt"
        object: "Salt"
        video: "https://example.com/salt.mp4"
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from .config import read_document
from .errors import CatalogueError
from .highlight import HighlightResult


@dataclass(frozen=True)
class Step:
    instruction: str = ""
    object_name: str = ""
    video_url: str = ""

    @property
    def has_video(self) -> bool:
        return bool(self.video_url)


def load_steps(path: Union[str, Path]) -> List[Step]:
    """Load steps; missing fields default to empty strings."""
    document = read_document(path)
    raw_steps = document.get("steps") if isinstance(document, dict) else document
    if not isinstance(raw_steps, list):
        raise CatalogueError(f"{path}: expected a 'steps' list")

    steps = []
    for record in raw_steps:
        if not isinstance(record, dict):
            continue
        steps.append(Step(
            instruction=str(record.get("instruction") or ""),
            object_name=str(record.get("object") or ""),
            video_url=str(record.get("video") or ""),
        ))
    return steps


class StepNavigator:
    """
    Next/previous navigation that drives set_visible().

    Args:
        steps: Ordered steps
        set_visible: Usually MarkerEngine.set_visible
    """

    def __init__(self, steps: List[Step], set_visible: Callable[[str, bool], HighlightResult]):
        self.steps = list(steps)
        self._set_visible = set_visible
        self._index = 0
        self.last_result: Optional[HighlightResult] = None
        self.logger = logging.getLogger("StepNavigator")

    def begin(self) -> Optional[Step]:
        """Highlight the first step's object."""
        if not self.steps:
            return None
        self._index = 0
        self._apply(None, self.current)
        return self.current

    def next_step(self) -> bool:
        if not self.steps or self._index >= len(self.steps) - 1:
            return False
        previous = self.current
        self._index += 1
        self._apply(previous, self.current)
        return True

    def previous_step(self) -> bool:
        if not self.steps or self._index <= 0:
            return False
        previous = self.current
        self._index -= 1
        self._apply(previous, self.current)
        return True

    def _apply(self, previous: Optional[Step], current: Step) -> None:
        if previous is not None and previous.object_name and previous.object_name != current.object_name:
            self._set_visible(previous.object_name, False)
        if current.object_name:
            self.last_result = self._set_visible(current.object_name, True)
        else:
            self.last_result = None
        self.logger.info(f"Step {self.counter_text}: {current.instruction}")

    @property
    def current(self) -> Optional[Step]:
        if not self.steps:
            return None
        return self.steps[self._index]

    @property
    def index(self) -> int:
        return self._index

    @property
    def counter_text(self) -> str:
        if not self.steps:
            return "-- / --"
        return f"{self._index + 1} / {len(self.steps)}"

    @property
    def has_video(self) -> bool:
        step = self.current
        return step is not None and step.has_video
