"""
Anchorlight Reports - Structured Report Channel

Every local, non-fatal outcome in the engine is surfaced here instead of
being raised:
- Logged at a level chosen by the report kind
- Counted per kind (cheap metric for dashboards and tests)
- Kept in a bounded history for inspection
"""

import time
import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional


class ReportKind(Enum):
    """What happened. The value doubles as the log tag."""
    REGISTERED = "registered"            # Entry bound to an anchor
    COMPLETED = "completed"              # Every entry registered, detection stopped
    UNRECOGNIZED = "unrecognized"        # Detection code not in catalogue
    ALREADY_REGISTERED = "already_registered"
    BIND_FAILED = "bind_failed"
    NOT_FOUND = "not_found"              # Controller: unknown name
    NOT_REGISTERED = "not_registered"    # Controller: not detected yet
    NO_VISUAL = "no_visual"              # Controller: entry has no visual
    CONFIG_MISSING = "config_missing"    # Engine disabled
    DISABLED = "disabled"                # Call made on a disabled engine


_LEVELS = {
    ReportKind.REGISTERED: logging.INFO,
    ReportKind.COMPLETED: logging.INFO,
    ReportKind.UNRECOGNIZED: logging.WARNING,
    ReportKind.ALREADY_REGISTERED: logging.DEBUG,
    ReportKind.BIND_FAILED: logging.ERROR,
    ReportKind.NOT_FOUND: logging.ERROR,
    ReportKind.NOT_REGISTERED: logging.WARNING,
    ReportKind.NO_VISUAL: logging.ERROR,
    ReportKind.CONFIG_MISSING: logging.ERROR,
    ReportKind.DISABLED: logging.WARNING,
}


@dataclass(frozen=True)
class Report:
    """One structured record on the channel."""
    kind: ReportKind
    subject: str
    message: str
    timestamp: float

    @property
    def level(self) -> int:
        return _LEVELS[self.kind]


class ReportChannel:
    """
    Thread-safe sink for engine reports.

    Usage:
        channel = ReportChannel()
        channel.emit(ReportKind.UNRECOGNIZED, "Q9", "no catalogue entry")
        channel.count(ReportKind.UNRECOGNIZED)  # -> 1
    """

    def __init__(self, history_size: int = 256, logger_name: str = "Anchorlight"):
        self.logger = logging.getLogger(logger_name)
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._history: Deque[Report] = deque(maxlen=history_size)
        self._listeners: List[Callable[[Report], None]] = []

    def emit(self, kind: ReportKind, subject: str, message: str) -> Report:
        report = Report(kind=kind, subject=subject, message=message, timestamp=time.time())
        with self._lock:
            self._counts[kind] += 1
            self._history.append(report)
            listeners = list(self._listeners)

        self.logger.log(report.level, f"[{kind.value}] {subject}: {message}")

        for listener in listeners:
            listener(report)
        return report

    def subscribe(self, listener: Callable[[Report], None]) -> None:
        """Receive every subsequent report (called on the emitting thread)."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[Report], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def count(self, kind: ReportKind) -> int:
        with self._lock:
            return self._counts[kind]

    def latest(self, kind: Optional[ReportKind] = None) -> Optional[Report]:
        """Most recent report, optionally filtered by kind."""
        with self._lock:
            for report in reversed(self._history):
                if kind is None or report.kind == kind:
                    return report
        return None

    @property
    def history(self) -> List[Report]:
        with self._lock:
            return list(self._history)

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()
            self._history.clear()
