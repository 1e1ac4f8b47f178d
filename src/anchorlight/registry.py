"""
Anchorlight Registry - Catalogue of Trackable Objects

Static catalogue built once at startup. Each ObjectEntry maps:

    MarkerCode  ->  name  ->  HighlightVisual  ->  registered / visible

Matching is total: every decoded token yields a MatchResult, either
MATCHED (with the entry) or UNRECOGNIZED. There is no None to forget to
check.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Union

from .errors import CatalogueError
from .geometry import Pose
from .visuals import HighlightVisual


@dataclass(frozen=True)
class MarkerCode:
    """Opaque decoded-marker identifier."""
    value: str

    @classmethod
    def parse(cls, payload: Union[str, bytes, None]) -> Optional["MarkerCode"]:
        """
        Decode a raw tracker payload.

        Returns:
            MarkerCode, or None if the payload is empty after decoding
        """
        if payload is None:
            return None
        if isinstance(payload, (bytes, bytearray)):
            payload = bytes(payload).decode("utf-8", errors="replace")
        text = str(payload).strip()
        if not text:
            return None
        return cls(text)

    def __str__(self) -> str:
        return self.value


@dataclass(eq=False)
class ObjectEntry:
    """
    One catalogued object.

    Attributes:
        code: Marker identifier, unique in the catalogue
        name: Public key used by HighlightController
        highlight_visual: Owned visual (None = misconfigured, see NO_VISUAL)
        registered: Monotonic False -> True once anchored
        visible: Workflow-driven highlight flag (only True while registered)
    """
    code: MarkerCode
    name: str
    highlight_visual: Optional[HighlightVisual] = None
    registered: bool = False
    visible: bool = False

    @property
    def offset(self) -> Pose:
        if self.highlight_visual is None:
            return Pose.identity()
        return self.highlight_visual.offset


class MatchOutcome(Enum):
    MATCHED = "matched"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class MatchResult:
    outcome: MatchOutcome
    code: MarkerCode
    entry: Optional[ObjectEntry] = field(default=None, compare=False)

    @property
    def matched(self) -> bool:
        return self.outcome == MatchOutcome.MATCHED


class Registry:
    """
    Catalogue owned by one engine instance.

    Usage:
        registry = Registry([
            ObjectEntry(MarkerCode("Q1"), "Salt", HighlightVisual("Salt")),
            ObjectEntry(MarkerCode("Q2"), "Sugar", HighlightVisual("Sugar")),
        ])
        result = registry.match(MarkerCode("Q1"))
        if result.matched:
            ...
    """

    def __init__(self, entries: Iterable[ObjectEntry] = ()):
        self.logger = logging.getLogger("Registry")
        self._by_code: Dict[MarkerCode, ObjectEntry] = {}
        self._by_name: Dict[str, ObjectEntry] = {}
        self._order: List[ObjectEntry] = []
        for entry in entries:
            self._add(entry)

    def _add(self, entry: ObjectEntry) -> None:
        if entry.code in self._by_code:
            raise CatalogueError(f"Duplicate marker code: {entry.code}")
        if entry.name in self._by_name:
            raise CatalogueError(f"Duplicate object name: {entry.name}")
        self._by_code[entry.code] = entry
        self._by_name[entry.name] = entry
        self._order.append(entry)

    def match(self, code: MarkerCode) -> MatchResult:
        entry = self._by_code.get(code)
        if entry is None:
            return MatchResult(MatchOutcome.UNRECOGNIZED, code)
        return MatchResult(MatchOutcome.MATCHED, code, entry)

    def by_name(self, name: str) -> Optional[ObjectEntry]:
        return self._by_name.get(name)

    @property
    def entries(self) -> List[ObjectEntry]:
        return list(self._order)

    @property
    def names(self) -> List[str]:
        return [e.name for e in self._order]

    @property
    def registered_count(self) -> int:
        return sum(1 for e in self._order if e.registered)

    @property
    def all_registered(self) -> bool:
        """True once every entry is anchored (False for an empty catalogue)."""
        return bool(self._order) and all(e.registered for e in self._order)

    def pending(self) -> List[ObjectEntry]:
        """Entries still waiting for their first detection."""
        return [e for e in self._order if not e.registered]

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[ObjectEntry]:
        return iter(list(self._order))

    def __contains__(self, name: str) -> bool:
        return name in self._by_name
