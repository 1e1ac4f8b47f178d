"""
Anchorlight Timer Panel - Countdown + Alarm Driver

A cooking-style kitchen timer built on the EffectScheduler:
- One button (press) cycles start → pause → resume, and silences the alarm
- Countdown refreshes an "MM:SS" readout once per tick
- At zero the readout shows "Done" and the alarm blink loop starts
- reset() always leaves the readout shown, white, at the set time,
  with the audio stopped

State machine:
┌──────┐ press ┌─────────┐ press ┌────────┐
│ IDLE │ ────→ │ RUNNING │ ────→ │ PAUSED │
└──────┘       └────┬────┘ ←──── └────────┘
    ↑               │ zero     press
    │  press/reset  ↓
    └────────── ┌──────────┐
                │ ALARMING │
                └──────────┘
"""

import logging
import threading
from enum import Enum
from typing import Optional

from .effects import AlarmBlink, Countdown, EffectHandle, EffectKind, EffectScheduler
from .visuals import AudioCue, ColorScheme, TextReadout


class TimerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ALARMING = "alarming"


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


class TimerPanel:
    """Countdown timer with a blinking, sounding alarm."""

    DONE_TEXT = "Done"

    def __init__(
        self,
        scheduler: EffectScheduler,
        readout: Optional[TextReadout] = None,
        audio: Optional[AudioCue] = None,
        minutes: int = 1,
        min_minutes: int = 1,
        max_minutes: int = 60,
        tick_seconds: float = 1.0,
        blink_interval: float = 0.2,
        colors: Optional[ColorScheme] = None,
        key: str = "timer"
    ):
        self.scheduler = scheduler
        self.readout = readout or TextReadout()
        self.audio = audio
        self.min_minutes = min_minutes
        self.max_minutes = max_minutes
        self.minutes = min(max(minutes, min_minutes), max_minutes)
        self.tick_seconds = tick_seconds
        self.blink_interval = blink_interval
        self.colors = colors or ColorScheme()
        self.key = key
        self.logger = logging.getLogger("TimerPanel")

        self._lock = threading.Lock()
        self._remaining = 0
        self._alarming = False
        self._countdown: Optional[EffectHandle] = None
        self._panel_visible = True

        self._show_set_time()

    # =========================================================================
    # CONTROLS
    # =========================================================================

    def press(self) -> TimerState:
        """Start / pause / resume, or stop a sounding alarm."""
        if self.alarming:
            self.reset()
            return self.state

        if self.running:
            self._pause()
            return self.state

        with self._lock:
            if self._remaining <= 0:
                self._remaining = self.minutes * 60
                self.logger.info(f"Timer started: {self.minutes} min")
            else:
                self.logger.info(f"Timer resumed: {self._remaining}s left")
            seconds = self._remaining

        self._countdown = self.scheduler.start(Countdown(
            self.key,
            seconds,
            tick=self.tick_seconds,
            on_tick=self._on_tick,
            on_finished=self._on_finished,
        ))
        return self.state

    def _pause(self) -> None:
        handle = self._countdown
        if handle is None:
            return
        handle.cancel()
        with self._lock:
            self._remaining = handle.effect.remaining
        self.logger.info(f"Timer paused: {self._remaining}s left")

    def reset(self) -> None:
        """Stop everything and return to the set time."""
        self.scheduler.cancel(EffectKind.COUNTDOWN, self.key)
        self.scheduler.cancel(EffectKind.ALARM, self.key)
        if self.audio is not None and self.audio.playing:
            self.audio.stop()

        with self._lock:
            self._remaining = 0
            self._alarming = False
        self._countdown = None

        self.readout.set_color(self.colors.normal)
        self.readout.set_active(True)
        self._show_set_time()
        self.logger.info("Timer reset")

    def increase_minutes(self) -> bool:
        if self.minutes >= self.max_minutes:
            return False
        self.minutes += 1
        self._clear_remaining()
        return True

    def decrease_minutes(self) -> bool:
        if self.minutes <= self.min_minutes:
            return False
        self.minutes -= 1
        self._clear_remaining()
        return True

    def toggle_panel(self) -> bool:
        """
        Show/hide the whole panel (voice-command hook).

        Hiding while running or alarming resets the timer.
        Returns the new visibility.
        """
        self._panel_visible = not self._panel_visible
        if self._panel_visible:
            self._show_set_time()
        elif self.running or self.alarming:
            self.reset()
        return self._panel_visible

    # =========================================================================
    # EFFECT CALLBACKS (worker thread)
    # =========================================================================

    def _on_tick(self, remaining: int) -> None:
        with self._lock:
            self._remaining = remaining
        if remaining == 0:
            self.readout.set_color(self.colors.alert)
            self.readout.set_text(self.DONE_TEXT)
        else:
            self.readout.set_color(self.colors.normal)
            self.readout.set_text(format_clock(remaining))

    def _on_finished(self) -> None:
        with self._lock:
            self._alarming = True
        self.logger.info("Timer finished, alarm on")
        self.scheduler.start(AlarmBlink(
            self.key,
            self.readout,
            interval=self.blink_interval,
            audio=self.audio,
        ))

    # =========================================================================
    # STATE
    # =========================================================================

    def _clear_remaining(self) -> None:
        with self._lock:
            self._remaining = 0
        self._show_set_time()

    def _show_set_time(self) -> None:
        self.readout.set_text(f"{self.minutes:02d}:00")
        self.readout.set_active(True)

    @property
    def running(self) -> bool:
        handle = self._countdown
        return handle is not None and not handle.done

    @property
    def alarming(self) -> bool:
        with self._lock:
            return self._alarming

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def panel_visible(self) -> bool:
        return self._panel_visible

    @property
    def state(self) -> TimerState:
        if self.alarming:
            return TimerState.ALARMING
        if self.running:
            return TimerState.RUNNING
        if self.remaining > 0:
            return TimerState.PAUSED
        return TimerState.IDLE
