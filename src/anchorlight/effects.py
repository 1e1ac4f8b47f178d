"""
Anchorlight Effects - Cancellable Timed Effects

Short-lived visual/audio behaviors that must never block detection:
- RegistrationFlash: show, wait, settle back to the resting state
- Countdown: tick once per period, update a readout, fire on zero
- AlarmBlink: toggle shown/hidden until cancelled, with looping audio

Scheduling discipline:
┌──────────────┐  start(effect)   ┌───────────────────────────────┐
│ caller       │ ───────────────→ │ EffectScheduler               │
└──────────────┘                  │  1. pop prior (kind, key)     │
                                  │  2. cancel prior (joins)      │
                                  │  3. spawn daemon worker       │
                                  └───────────────┬───────────────┘
                                                  │
                          run(token) ──→ settle(cancelled) ──→ state

Each effect waits with token.wait(), so cancel() is prompt, and settle()
always runs on the worker thread, so the target's terminal state has a
single writer. cancel() returns after settle() has run (bounded join).
"""

import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .visuals import AudioCue


class EffectKind(Enum):
    FLASH = "flash"
    COUNTDOWN = "countdown"
    ALARM = "alarm"


class EffectState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"    # Ran to its natural end
    CANCELLED = "cancelled"    # Token set before the end
    FAILED = "failed"          # Raised on the worker thread


class Effect(ABC):
    """
    Base class for timed effects.

    Subclasses implement run() (wait ONLY via token.wait) and settle(),
    which must leave the target in a defined terminal state.
    """

    kind: EffectKind = EffectKind.FLASH

    def __init__(self, key: str):
        self.key = key

    @abstractmethod
    def run(self, token: threading.Event) -> None:
        """Drive the target until done or until `token` is set."""
        pass

    def settle(self, cancelled: bool) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r})"


class RegistrationFlash(Effect):
    """
    Cosmetic confirmation after binding.

    Never touches ObjectEntry.visible. When the flash ends (or is cancelled)
    the visual returns to `resting()`, which the binder wires to the entry's
    visible flag so a workflow highlight set mid-flash survives.
    """

    kind = EffectKind.FLASH

    def __init__(self, visual, duration: float, resting: Optional[Callable[[], bool]] = None):
        super().__init__(visual.name)
        self.visual = visual
        self.duration = duration
        self._resting = resting or (lambda: False)

    def run(self, token: threading.Event) -> None:
        self.visual.set_active(True)
        token.wait(self.duration)

    def settle(self, cancelled: bool) -> None:
        self.visual.set_active(bool(self._resting()))


class Countdown(Effect):
    """
    Periodic display refresh.

    Calls on_tick(remaining) at start and after every period, decrementing
    once per period. On reaching zero, calls on_tick(0) then on_finished().
    A cancelled countdown keeps `remaining` so it can be resumed.

    Callbacks run on the worker thread.
    """

    kind = EffectKind.COUNTDOWN

    def __init__(
        self,
        key: str,
        seconds: int,
        tick: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        on_finished: Optional[Callable[[], None]] = None
    ):
        super().__init__(key)
        self.tick = tick
        self._on_tick = on_tick or (lambda remaining: None)
        self._on_finished = on_finished or (lambda: None)
        self._lock = threading.Lock()
        self._remaining = max(0, int(seconds))

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    def run(self, token: threading.Event) -> None:
        while self.remaining > 0:
            self._on_tick(self.remaining)
            if token.wait(self.tick):
                return
            with self._lock:
                self._remaining -= 1
        self._on_tick(0)

    def settle(self, cancelled: bool) -> None:
        if not cancelled and self.remaining == 0:
            self._on_finished()


class AlarmBlink(Effect):
    """
    Unbounded blink loop with a looping audio cue.

    Terminal state on cancel, whatever phase the loop was in:
    target shown, audio stopped.
    """

    kind = EffectKind.ALARM

    def __init__(
        self,
        key: str,
        target,
        interval: float = 0.2,
        audio: Optional[AudioCue] = None,
        flash_color: Optional[Tuple[int, int, int]] = None
    ):
        super().__init__(key)
        self.target = target
        self.interval = interval
        self.audio = audio
        self.flash_color = flash_color
        self._original_color = None
        self._cycles = 0

    @property
    def cycles(self) -> int:
        return self._cycles

    def run(self, token: threading.Event) -> None:
        if self.flash_color is not None and hasattr(self.target, "set_color"):
            self._original_color = self.target.color
            self.target.set_color(self.flash_color)
        if self.audio is not None:
            self.audio.play(loop=True)

        while not token.is_set():
            self.target.set_active(False)
            if token.wait(self.interval):
                break
            self.target.set_active(True)
            self._cycles += 1
            if token.wait(self.interval):
                break

    def settle(self, cancelled: bool) -> None:
        self.target.set_active(True)
        if self._original_color is not None:
            self.target.set_color(self._original_color)
        if self.audio is not None:
            self.audio.stop()


class EffectHandle:
    """Running (or finished) instance of one effect."""

    JOIN_TIMEOUT = 1.0

    def __init__(self, effect: Effect, on_done: Optional[Callable[["EffectHandle"], None]] = None):
        self.effect = effect
        self.logger = logging.getLogger(f"Effect-{effect.kind.value}-{effect.key}")
        self._on_done = on_done
        self._token = threading.Event()
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._state = EffectState.PENDING
        self._thread: Optional[threading.Thread] = None

    @property
    def kind(self) -> EffectKind:
        return self.effect.kind

    @property
    def key(self) -> str:
        return self.effect.key

    @property
    def state(self) -> EffectState:
        with self._lock:
            return self._state

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self.state == EffectState.CANCELLED

    def _start(self) -> None:
        with self._lock:
            if self._state != EffectState.PENDING:
                return
            self._state = EffectState.RUNNING
            self._thread = threading.Thread(
                target=self._worker,
                name=f"{self.kind.value}-{self.key}",
                daemon=True
            )
        self._thread.start()

    def _worker(self) -> None:
        failed = False
        try:
            self.effect.run(self._token)
        except Exception:
            self.logger.exception("Effect raised while running")
            failed = True
        finally:
            cancelled = self._token.is_set()
            try:
                self.effect.settle(cancelled)
            except Exception:
                self.logger.exception("Effect raised while settling")
                failed = True

            with self._lock:
                if failed:
                    self._state = EffectState.FAILED
                elif cancelled:
                    self._state = EffectState.CANCELLED
                else:
                    self._state = EffectState.COMPLETED
            self._done.set()
            if self._on_done is not None:
                self._on_done(self)

    def cancel(self, join: bool = True) -> bool:
        """
        Request cancellation.

        Args:
            join: Block (bounded) until the effect has settled

        Returns:
            True if the effect was pending or running
        """
        with self._lock:
            if self._state == EffectState.PENDING:
                self._state = EffectState.CANCELLED
                self._done.set()
                return True
            if self._state != EffectState.RUNNING:
                return False
            thread = self._thread

        self._token.set()
        if join and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.JOIN_TIMEOUT)
            if thread.is_alive():
                self.logger.warning("Effect did not settle within join timeout")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the effect to finish. Returns False on timeout."""
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        return f"EffectHandle({self.effect!r}, state={self.state.value})"


class EffectScheduler:
    """
    Runs effects on daemon worker threads, one live instance per (kind, key).

    Usage:
        scheduler = EffectScheduler()
        handle = scheduler.start(RegistrationFlash(visual, duration=1.0))
        ...
        scheduler.cancel(EffectKind.FLASH, visual.name)
        scheduler.shutdown()
    """

    def __init__(self):
        self.logger = logging.getLogger("EffectScheduler")
        self._lock = threading.Lock()
        self._handles: Dict[Tuple[EffectKind, str], EffectHandle] = {}
        self._closed = False

    def start(self, effect: Effect) -> EffectHandle:
        """
        Start an effect, cancelling any live instance of the same kind and key first.

        After shutdown() the returned handle is already cancelled.
        """
        slot = (effect.kind, effect.key)
        handle = EffectHandle(effect, on_done=self._forget)

        with self._lock:
            if self._closed:
                handle.cancel()
                return handle
            prior = self._handles.get(slot)
            self._handles[slot] = handle

        if prior is not None:
            self.logger.debug(f"Restarting {effect.kind.value} on {effect.key}: cancelling prior instance")
            prior.cancel()

        handle._start()
        return handle

    def _forget(self, handle: EffectHandle) -> None:
        slot = (handle.kind, handle.key)
        with self._lock:
            if self._handles.get(slot) is handle:
                del self._handles[slot]

    def get(self, kind: EffectKind, key: str) -> Optional[EffectHandle]:
        with self._lock:
            return self._handles.get((kind, key))

    def cancel(self, kind: EffectKind, key: str) -> bool:
        with self._lock:
            handle = self._handles.get((kind, key))
        if handle is None:
            return False
        return handle.cancel()

    def cancel_all(self, kind: Optional[EffectKind] = None) -> int:
        """Cancel every live effect (of one kind, if given). Returns how many."""
        with self._lock:
            handles = [h for (k, _), h in self._handles.items() if kind is None or k == kind]
        return sum(1 for h in handles if h.cancel())

    def active(self, kind: Optional[EffectKind] = None) -> List[EffectHandle]:
        with self._lock:
            return [
                h for (k, _), h in self._handles.items()
                if (kind is None or k == kind) and not h.done
            ]

    def shutdown(self) -> None:
        """Cancel everything and refuse new effects."""
        with self._lock:
            self._closed = True
        cancelled = self.cancel_all()
        if cancelled:
            self.logger.info(f"Shutdown cancelled {cancelled} effect(s)")

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed
