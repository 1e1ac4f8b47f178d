#!/usr/bin/env python3
"""
Scenario Tests for the Anchorlight Engine

Covers the detection path, the highlight control path, the timed effects
and the collaborators built on them:
A. Registration (flash, idempotence, completion, redelivery)
B. Highlight control (results, beam, clear-all)
C. Effects (restart discipline, countdown, alarm reset)
D. Configuration (catalogue files, environment, disabled engine)
E. Collaborators (timer panel, step navigator, replay source)

Run directly (`python run_tests.py`) or through pytest.
"""

import sys
import os
import json
import time
import tempfile
import threading

import numpy as np

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from anchorlight.config import EngineSettings, load_catalogue, load_scenario
from anchorlight.dispatcher import DetectionEvent
from anchorlight.effects import (
    AlarmBlink, Countdown, Effect, EffectKind, EffectScheduler, EffectState, RegistrationFlash
)
from anchorlight.engine import MarkerEngine
from anchorlight.errors import AlreadyRegisteredError, CatalogueError
from anchorlight.geometry import Pose
from anchorlight.highlight import HighlightResult
from anchorlight.procedure import Step, StepNavigator, load_steps
from anchorlight.registry import MarkerCode, ObjectEntry, Registry
from anchorlight.reports import ReportChannel, ReportKind
from anchorlight.timer import TimerPanel, TimerState, format_clock
from anchorlight.tracking import ReplayTrackingSource, TrackingSubsystem
from anchorlight.visuals import AudioCue, ColorScheme, EmphasisBeam, HighlightVisual, TextReadout

CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'configs')


# =============================================================================
# HELPERS
# =============================================================================

def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def _kitchen_registry(with_bare=False):
    entries = [
        ObjectEntry(MarkerCode("SALT"), "Salt",
                    HighlightVisual("Salt", offset=Pose.from_position(0.0, 0.05, 0.0))),
        ObjectEntry(MarkerCode("SUGAR"), "Sugar", HighlightVisual("Sugar")),
    ]
    if with_bare:
        entries.append(ObjectEntry(MarkerCode("BARE"), "Bare", None))
    return Registry(entries)


def _kitchen_engine(flash_seconds=0.0, registry=None, **kwargs):
    registry = registry or _kitchen_registry()
    source = ReplayTrackingSource()
    engine = MarkerEngine(
        registry,
        tracking=source,
        settings=EngineSettings(flash_seconds=flash_seconds),
        **kwargs
    )
    engine.start()
    return engine, source


def _seen(*codes):
    return [DetectionEvent(code, Pose.from_position(0.4, 0.0, 1.2)) for code in codes]


class BrokenVisual(HighlightVisual):
    """Visual whose reparenting always fails."""

    def attach(self, anchor, local_pose=None):
        raise RuntimeError("scene graph rejected reparent")


class ExplodingEffect(Effect):

    def run(self, token):
        raise RuntimeError("boom")


class SlowHideVisual(HighlightVisual):
    """Anchored visual whose hide takes a while, so a flash can be caught settling."""

    def __init__(self, name, delay=0.2):
        super().__init__(name)
        self.delay = delay
        self.hiding = threading.Event()

    def set_active(self, value):
        if not value and self.anchor is not None:
            self.hiding.set()
            time.sleep(self.delay)
        super().set_active(value)


class FlakyTrackingSource(ReplayTrackingSource):
    """Source that refuses to be disabled the first `failures` times."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    @property
    def enabled(self):
        return ReplayTrackingSource.enabled.fget(self)

    @enabled.setter
    def enabled(self, value):
        if not value and self.failures > 0:
            self.failures -= 1
            raise RuntimeError("tracker busy")
        ReplayTrackingSource.enabled.fset(self, value)


# =============================================================================
# A. REGISTRATION
# =============================================================================

def test_registration_flash_and_completion():
    """
    Scenario: Salt seen, then Salt+Sugar, then more spurious sightings.

    Assertions:
    - Salt registers once and flashes; the flash ends hidden
    - Completion fires exactly once, disabling detection
    - Later batches are ignored
    """
    print("\n" + "="*60)
    print("TEST A1: Registration Flash & Completion")
    print("="*60)

    engine, source = _kitchen_engine(flash_seconds=0.3)
    salt = engine.registry.by_name("Salt")
    sugar = engine.registry.by_name("Sugar")

    assert source.deliver(_seen("SALT"))
    flash = engine.scheduler.get(EffectKind.FLASH, "Salt")
    print(f"  After SALT: registered={salt.registered}, flash={flash}")
    assert salt.registered and not sugar.registered
    assert flash is not None
    assert not engine.completed

    summary = engine.on_detections(_seen("SALT", "SUGAR"))
    print(f"  After SALT+SUGAR: bound={summary.bound}, duplicate={summary.duplicate}")
    assert summary.bound == 1 and summary.duplicate == 1
    assert sugar.registered
    assert engine.completed
    assert source.enabled is False
    assert engine.reports.count(ReportKind.COMPLETED) == 1

    assert flash.wait(2.0)
    print(f"  Salt flash state={flash.state.value}, toggles={salt.highlight_visual.toggle_count}")
    assert flash.state == EffectState.COMPLETED
    assert salt.highlight_visual.active is False
    assert salt.highlight_visual.toggle_count == 2
    assert salt.visible is False

    # Detection is off: the source drops batches
    assert source.deliver(_seen("SALT")) is False
    assert source.suppressed_count == 1

    # Even a stray callback changes nothing
    late = engine.on_detections(_seen("SALT", "SUGAR"))
    assert late.duplicate == 2 and late.bound == 0
    assert engine.binder.binding_count == 2
    assert engine.reports.count(ReportKind.COMPLETED) == 1
    assert engine.reports.count(ReportKind.REGISTERED) == 2

    engine.close()

    print("\nASSERTIONS:")
    print("  ✓ Flash started on bind and settled hidden")
    print("  ✓ Completion fired once and stopped detection")
    print("\n✓ TEST A1 PASSED")


def test_redelivery_is_idempotent():
    print("\n" + "="*60)
    print("TEST A2: Redelivery Idempotence")
    print("="*60)

    engine, source = _kitchen_engine()
    salt = engine.registry.by_name("Salt")

    summary = engine.on_detections(_seen("SALT", "SALT", "SALT"))
    print(f"  One batch, three sightings: bound={summary.bound} duplicate={summary.duplicate}")
    assert summary.bound == 1
    assert summary.duplicate == 2
    first = engine.binder.binding_for("Salt")

    for _ in range(5):
        engine.on_detections(_seen("SALT"))

    assert engine.binder.binding_count == 1
    assert engine.binder.binding_for("Salt") is first
    assert salt.highlight_visual.anchor is first
    assert engine.reports.count(ReportKind.REGISTERED) == 1
    assert not engine.completed

    engine.close()
    print("\n✓ TEST A2 PASSED")


def test_payload_filtering():
    print("\n" + "="*60)
    print("TEST A3: Empty / Unrecognized / Byte Payloads")
    print("="*60)

    engine, source = _kitchen_engine()

    summary = engine.on_detections([
        DetectionEvent(b" SALT\n"),
        DetectionEvent("   "),
        DetectionEvent(None),
        DetectionEvent(b""),
        DetectionEvent("PEPPER"),
    ])
    print(f"  bound={summary.bound} empty={summary.empty} unrecognized={summary.unrecognized}")
    assert summary.bound == 1 and summary.bound_names == ["Salt"]
    assert summary.empty == 3
    assert summary.unrecognized == 1
    assert summary.total == 5

    latest = engine.reports.latest(ReportKind.UNRECOGNIZED)
    assert latest is not None and latest.subject == "PEPPER"
    assert engine.registry.by_name("Sugar").registered is False

    assert MarkerCode.parse(b"\xffQ1") is not None
    assert MarkerCode.parse("  Q1 ") == MarkerCode("Q1")

    engine.close()
    print("\n✓ TEST A3 PASSED")


def test_failed_bind_is_retried():
    print("\n" + "="*60)
    print("TEST A4: Failed Bind Is Reported And Retried")
    print("="*60)

    registry = Registry([
        ObjectEntry(MarkerCode("JAR"), "Jar", BrokenVisual("Jar")),
        ObjectEntry(MarkerCode("SALT"), "Salt", HighlightVisual("Salt")),
    ])
    engine, source = _kitchen_engine(registry=registry)

    summary = engine.on_detections(_seen("JAR", "SALT"))
    print(f"  failed={summary.failed} bound={summary.bound}")
    assert summary.failed == 1 and summary.bound == 1
    assert registry.by_name("Jar").registered is False
    assert engine.reports.count(ReportKind.BIND_FAILED) == 1

    # Not cached as bound, so the next sighting tries again
    again = engine.on_detections(_seen("JAR"))
    assert again.failed == 1 and again.duplicate == 0
    assert engine.reports.count(ReportKind.BIND_FAILED) == 2
    assert not engine.completed

    engine.close()
    print("\n✓ TEST A4 PASSED")


def test_direct_bind_errors():
    print("\n" + "="*60)
    print("TEST A5: Direct Bind API")
    print("="*60)

    engine, source = _kitchen_engine()
    binding = engine.bind("Salt", Pose.from_position(1.0, 0.0, 0.0))
    assert binding.name == "Anchor_Salt"
    assert engine.registry.by_name("Salt").registered

    try:
        engine.bind("Salt", Pose.identity())
    except AlreadyRegisteredError as e:
        print(f"  Rebind rejected: {e}")
        assert e.name == "Salt"
    else:
        raise AssertionError("rebinding a registered entry must raise")

    try:
        engine.bind("Pepper", Pose.identity())
    except KeyError:
        print("  Unknown name rejected")
    else:
        raise AssertionError("binding an unknown name must raise KeyError")

    assert engine.binder.binding_count == 1
    engine.close()
    print("\n✓ TEST A5 PASSED")


def test_world_pose_follows_anchor():
    print("\n" + "="*60)
    print("TEST A6: Visual World Pose = Anchor ∘ Offset")
    print("="*60)

    engine, source = _kitchen_engine()
    salt = engine.registry.by_name("Salt")
    assert salt.highlight_visual.world_pose is None

    anchor_pose = Pose.from_rvec_tvec((0.0, 0.0, np.pi / 2), (1.0, 2.0, 3.0))
    engine.on_detections([DetectionEvent("SALT", anchor_pose)])

    world = salt.highlight_visual.world_pose
    print(f"  World pose: {world}")
    assert world.is_close(anchor_pose.compose(salt.offset))
    # Offset (0, 0.05, 0) rotated 90° about z
    assert np.allclose(world.position, (0.95, 2.0, 3.0), atol=1e-6)
    assert anchor_pose.compose(anchor_pose.inverse()).is_close(Pose.identity())

    engine.close()
    print("\n✓ TEST A6 PASSED")


def test_bundled_scenario_replay():
    print("\n" + "="*60)
    print("TEST A7: Bundled Kitchen Scenario")
    print("="*60)

    registry = load_catalogue(os.path.join(CONFIG_DIR, 'kitchen.yaml'))
    batches = load_scenario(os.path.join(CONFIG_DIR, 'scenario.yaml'))
    source = ReplayTrackingSource(batches, interval=0.01)
    engine = MarkerEngine(registry, tracking=source, settings=EngineSettings(flash_seconds=0.02))

    with engine:
        with source:
            assert source.wait_until_done(timeout=5.0)

    print(f"  delivered={source.delivered_count} suppressed={source.suppressed_count}")
    assert engine.completed
    assert registry.registered_count == 3
    assert source.delivered_count == 5
    assert source.suppressed_count == 1
    assert engine.reports.count(ReportKind.UNRECOGNIZED) == 1
    assert engine.reports.count(ReportKind.COMPLETED) == 1
    assert engine.dispatcher.batch_count == 5
    assert not engine.is_running

    engine.close()
    print("\n✓ TEST A7 PASSED")


# =============================================================================
# B. HIGHLIGHT CONTROL
# =============================================================================

def test_highlight_requires_registration():
    print("\n" + "="*60)
    print("TEST B1: Visible Implies Registered")
    print("="*60)

    engine, source = _kitchen_engine(registry=_kitchen_registry(with_bare=True))
    sugar = engine.registry.by_name("Sugar")

    assert engine.set_visible("Sugar", True) == HighlightResult.NOT_REGISTERED
    assert sugar.visible is False and sugar.highlight_visual.active is False

    assert engine.set_visible("Pepper", True) == HighlightResult.NOT_FOUND
    assert engine.reports.latest(ReportKind.NOT_FOUND).subject == "Pepper"
    assert all(not e.visible for e in engine.registry)

    engine.on_detections(_seen("BARE"))
    assert engine.set_visible("Bare", True) == HighlightResult.NO_VISUAL
    assert engine.registry.by_name("Bare").visible is False
    assert engine.beam is None

    for entry in engine.registry:
        assert not entry.visible or entry.registered

    engine.close()
    print("\n✓ TEST B1 PASSED")


def test_show_then_hide():
    print("\n" + "="*60)
    print("TEST B2: Show Then Hide")
    print("="*60)

    engine, source = _kitchen_engine()
    engine.on_detections(_seen("SALT"))
    salt = engine.registry.by_name("Salt")

    assert engine.set_visible("Salt", True) == HighlightResult.OK
    assert salt.visible and salt.highlight_visual.active
    assert engine.beam.active and engine.beam.target is salt.highlight_visual
    direction = engine.beam.direction_from((0.4, 0.05, 0.0))
    assert direction is not None and np.isclose(np.linalg.norm(direction), 1.0)

    assert engine.set_visible("Salt", False) == HighlightResult.OK
    assert not salt.visible and not salt.highlight_visual.active
    assert not engine.beam.active
    assert engine.controller.beam_target_name is None

    engine.close()
    print("\n✓ TEST B2 PASSED")


def test_highlight_survives_flash():
    print("\n" + "="*60)
    print("TEST B3: Highlight Set Mid-Flash Survives")
    print("="*60)

    engine, source = _kitchen_engine(flash_seconds=0.2)
    engine.on_detections(_seen("SALT"))
    flash = engine.scheduler.get(EffectKind.FLASH, "Salt")

    assert engine.set_visible("Salt", True) == HighlightResult.OK
    assert flash.wait(2.0)
    assert engine.registry.by_name("Salt").highlight_visual.active is True

    engine.close()
    print("\n✓ TEST B3 PASSED")


def test_single_beam_retargets():
    print("\n" + "="*60)
    print("TEST B4: One Beam, Last Show Wins")
    print("="*60)

    created = []

    def beam_factory():
        beam = EmphasisBeam()
        created.append(beam)
        return beam

    engine, source = _kitchen_engine(beam_factory=beam_factory)
    engine.on_detections(_seen("SALT", "SUGAR"))
    salt = engine.registry.by_name("Salt")
    sugar = engine.registry.by_name("Sugar")

    engine.set_visible("Salt", True)
    engine.set_visible("Sugar", True)
    print(f"  Beams created: {len(created)}, target={engine.controller.beam_target_name}")
    assert len(created) == 1
    assert engine.beam.target is sugar.highlight_visual
    assert salt.highlight_visual.active and sugar.highlight_visual.active

    # Hiding a non-target leaves the beam alone
    engine.set_visible("Salt", False)
    assert engine.beam.active and engine.controller.beam_target_name == "Sugar"

    engine.set_visible("Sugar", False)
    assert not engine.beam.active

    engine.set_visible("Salt", True)
    assert len(created) == 1
    assert engine.beam.target is salt.highlight_visual and engine.beam.active
    assert engine.beam.retarget_count == 3

    engine.close()
    print("\n✓ TEST B4 PASSED")


def test_clear_all_keeps_registration():
    print("\n" + "="*60)
    print("TEST B5: Clear All")
    print("="*60)

    engine, source = _kitchen_engine(flash_seconds=5.0)
    engine.on_detections(_seen("SALT", "SUGAR"))
    engine.set_visible("Salt", True)
    assert [h.key for h in engine.scheduler.active(EffectKind.FLASH)] == ["Sugar"]

    start = time.monotonic()
    engine.clear_all()
    print(f"  clear_all returned in {time.monotonic() - start:.3f}s")

    salt = engine.registry.by_name("Salt")
    assert engine.scheduler.active(EffectKind.FLASH) == []
    assert salt.registered
    assert not salt.visible
    assert not salt.highlight_visual.active
    assert not engine.beam.active

    # Still controllable afterwards
    assert engine.set_visible("Salt", True) == HighlightResult.OK

    engine.close()
    print("\n✓ TEST B5 PASSED")


# =============================================================================
# C. EFFECTS
# =============================================================================

def test_scheduler_cancels_before_restart():
    print("\n" + "="*60)
    print("TEST C1: Cancel Before Restart")
    print("="*60)

    scheduler = EffectScheduler()
    visual = HighlightVisual("Jar")

    first = scheduler.start(RegistrationFlash(visual, 5.0))
    second = scheduler.start(RegistrationFlash(visual, 5.0))
    print(f"  first={first.state.value} second={second.state.value}")
    assert first.done and first.cancelled
    assert scheduler.get(EffectKind.FLASH, "Jar") is second
    assert len(scheduler.active(EffectKind.FLASH)) == 1
    assert _wait_for(lambda: visual.active)

    assert scheduler.cancel(EffectKind.FLASH, "Jar")
    assert second.cancelled and not visual.active

    scheduler.shutdown()
    late = scheduler.start(RegistrationFlash(visual, 5.0))
    assert scheduler.closed and late.cancelled
    assert not visual.active

    failing = EffectScheduler().start(ExplodingEffect("bad"))
    assert failing.wait(2.0)
    assert failing.state == EffectState.FAILED

    # Interfaces cannot be instantiated without their hooks
    for interface in (lambda: Effect("bare"), TrackingSubsystem):
        try:
            interface()
        except TypeError:
            pass
        else:
            raise AssertionError("abstract interface was instantiated")

    print("\n✓ TEST C1 PASSED")


def test_countdown_ticks_and_finishes():
    print("\n" + "="*60)
    print("TEST C2: Countdown")
    print("="*60)

    scheduler = EffectScheduler()
    ticks = []
    finished = []

    handle = scheduler.start(Countdown("c", 3, tick=0.01, on_tick=ticks.append,
                                       on_finished=lambda: finished.append(True)))
    assert handle.wait(2.0)
    print(f"  ticks={ticks}")
    assert ticks == [3, 2, 1, 0]
    assert finished == [True]
    assert handle.state == EffectState.COMPLETED

    long_run = Countdown("c", 100, tick=0.02, on_finished=lambda: finished.append(True))
    handle = scheduler.start(long_run)
    time.sleep(0.05)
    assert handle.cancel()
    assert handle.cancelled
    assert 0 < long_run.remaining <= 100
    assert finished == [True]

    scheduler.shutdown()
    print("\n✓ TEST C2 PASSED")


def test_alarm_reset_from_any_phase():
    """
    Cancel the blink loop at several points in its cycle.

    Assertions:
    - Readout always ends shown, in its original color
    - Audio always ends stopped
    """
    print("\n" + "="*60)
    print("TEST C3: Alarm Reset From Any Phase")
    print("="*60)

    scheduler = EffectScheduler()
    readout = TextReadout("Done", color=ColorScheme.normal)
    audio = AudioCue()

    for delay in (0.0, 0.01, 0.025, 0.04, 0.055):
        handle = scheduler.start(AlarmBlink(
            "timer", readout, interval=0.02, audio=audio, flash_color=ColorScheme.alert
        ))
        time.sleep(delay)
        handle.cancel()
        print(f"  cancel after {delay:.3f}s: shown={readout.active} audio={audio.playing}")
        assert handle.done
        assert readout.active is True
        assert readout.color == ColorScheme.normal
        assert audio.playing is False

    scheduler.shutdown()
    print("\n✓ TEST C3 PASSED")


# =============================================================================
# D. CONFIGURATION
# =============================================================================

def test_catalogue_loading():
    print("\n" + "="*60)
    print("TEST D1: Catalogue Files")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        good = os.path.join(tmp, 'rack.yaml')
        with open(good, 'w') as f:
            f.write(
                "objects:\n"
                "  - code: Q1\n"
                "    name: Salt\n"
                "    offset:\n"
                "      position: [0.0, 0.1, 0.0]\n"
                "  - code: Q2\n"
                "    name: Tray\n"
                "    visual: false\n"
            )
        registry = load_catalogue(good)
        assert registry.names == ["Salt", "Tray"]
        assert registry.by_name("Tray").highlight_visual is None
        assert np.allclose(registry.by_name("Salt").offset.position, (0.0, 0.1, 0.0))

        as_json = os.path.join(tmp, 'rack.json')
        with open(as_json, 'w') as f:
            json.dump({"objects": [{"code": "Q1", "name": "Salt"}]}, f)
        assert len(load_catalogue(as_json)) == 1

        duplicate = os.path.join(tmp, 'dup.yaml')
        with open(duplicate, 'w') as f:
            f.write("objects:\n  - {code: Q1, name: Salt}\n  - {code: Q1, name: Sugar}\n")

        for path in (duplicate, os.path.join(tmp, 'missing.yaml')):
            try:
                load_catalogue(path)
            except CatalogueError as e:
                print(f"  Rejected: {e}")
            else:
                raise AssertionError(f"{path} should be rejected")

    try:
        Registry([
            ObjectEntry(MarkerCode("Q1"), "Salt"),
            ObjectEntry(MarkerCode("Q2"), "Salt"),
        ])
    except CatalogueError:
        pass
    else:
        raise AssertionError("duplicate names should be rejected")

    assert Registry().all_registered is False
    print("\n✓ TEST D1 PASSED")


def test_settings_from_env():
    print("\n" + "="*60)
    print("TEST D2: Settings From Environment")
    print("="*60)

    keys = {
        "ANCHORLIGHT_FLASH_SECONDS": "0.5",
        "ANCHORLIGHT_BEAM_ENABLED": "false",
        "ANCHORLIGHT_MAX_MINUTES": "lots",
    }
    saved = {k: os.environ.get(k) for k in keys}
    os.environ.update(keys)
    try:
        settings = EngineSettings.from_env(load_dotenv_file=False, tick_seconds=0.1)
    finally:
        for k, v in saved.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v

    print(f"  {settings}")
    assert settings.flash_seconds == 0.5
    assert settings.beam_enabled is False
    assert settings.max_minutes == 60
    assert settings.tick_seconds == 0.1

    registry = _kitchen_registry()
    engine = MarkerEngine(registry, tracking=ReplayTrackingSource(),
                          settings=EngineSettings(flash_seconds=0.0, beam_enabled=False))
    engine.start()
    engine.on_detections(_seen("SALT"))
    assert engine.set_visible("Salt", True) == HighlightResult.OK
    assert engine.beam is None

    engine.close()
    print("\n✓ TEST D2 PASSED")


def test_missing_tracking_disables_engine():
    print("\n" + "="*60)
    print("TEST D3: Missing Tracking Subsystem")
    print("="*60)

    registry = _kitchen_registry()
    engine = MarkerEngine(registry, tracking=None)
    print(f"  disabled={engine.disabled}")

    assert engine.disabled
    assert engine.reports.count(ReportKind.CONFIG_MISSING) == 1
    assert engine.start() is False
    assert engine.reports.count(ReportKind.CONFIG_MISSING) == 2
    assert engine.set_visible("Salt", True) == HighlightResult.DISABLED
    assert engine.on_detections(_seen("SALT")).total == 0
    engine.clear_all()

    disabled_before = engine.reports.count(ReportKind.DISABLED)
    assert engine.bind("Salt", Pose.identity()) is None
    assert engine.reports.count(ReportKind.DISABLED) == disabled_before + 1
    assert engine.reports.latest(ReportKind.DISABLED).subject == "Salt"

    assert registry.registered_count == 0
    assert registry.by_name("Salt").highlight_visual.anchor is None
    assert MarkerEngine(None, tracking=ReplayTrackingSource()).disabled

    engine.close()
    print("\n✓ TEST D3 PASSED")


# =============================================================================
# E. COLLABORATORS
# =============================================================================

def test_timer_panel_cycle():
    print("\n" + "="*60)
    print("TEST E1: Timer Panel")
    print("="*60)

    scheduler = EffectScheduler()
    readout = TextReadout()
    audio = AudioCue()
    timer = TimerPanel(scheduler, readout=readout, audio=audio, minutes=1,
                       tick_seconds=0.005, blink_interval=0.02)
    assert readout.text == "01:00" and timer.state == TimerState.IDLE

    assert timer.press() == TimerState.RUNNING
    assert _wait_for(lambda: timer.alarming, timeout=5.0)
    assert _wait_for(lambda: audio.playing)
    print(f"  Alarm: text={readout.text!r} color={readout.color}")
    assert readout.text == TimerPanel.DONE_TEXT
    assert readout.color == ColorScheme.alert

    assert timer.press() == TimerState.IDLE
    assert readout.active is True
    assert readout.text == "01:00"
    assert readout.color == ColorScheme.normal
    assert audio.playing is False
    assert scheduler.active() == []

    scheduler.shutdown()
    print("\n✓ TEST E1 PASSED")


def test_timer_pause_resume_and_bounds():
    print("\n" + "="*60)
    print("TEST E2: Timer Pause / Resume / Bounds")
    print("="*60)

    scheduler = EffectScheduler()
    readout = TextReadout()
    timer = TimerPanel(scheduler, readout=readout, minutes=1, max_minutes=2, tick_seconds=0.05)

    timer.press()
    time.sleep(0.2)
    assert timer.press() == TimerState.PAUSED
    paused_at = timer.remaining
    frozen = readout.text
    print(f"  Paused at {paused_at}s ({frozen})")
    assert 0 < paused_at < 60
    time.sleep(0.15)
    assert readout.text == frozen

    assert timer.press() == TimerState.RUNNING
    timer.reset()
    assert timer.state == TimerState.IDLE

    assert timer.decrease_minutes() is False
    assert timer.increase_minutes() is True
    assert readout.text == "02:00"
    assert timer.increase_minutes() is False

    assert timer.toggle_panel() is False
    assert timer.toggle_panel() is True
    assert format_clock(125) == "02:05"

    scheduler.shutdown()
    print("\n✓ TEST E2 PASSED")


def test_step_navigation_moves_highlight():
    print("\n" + "="*60)
    print("TEST E3: Step Navigator")
    print("="*60)

    engine, source = _kitchen_engine()
    engine.on_detections(_seen("SALT", "SUGAR"))
    salt = engine.registry.by_name("Salt")
    sugar = engine.registry.by_name("Sugar")

    navigator = StepNavigator([
        Step("Crack eggs"),
        Step("Add salt", "Salt"),
        Step("Add sugar", "Sugar", "https://example.com/sugar.mp4"),
        Step("More salt", "Salt"),
    ], engine.set_visible)

    navigator.begin()
    assert navigator.counter_text == "1 / 4"
    assert navigator.last_result is None
    assert navigator.previous_step() is False

    navigator.next_step()
    assert salt.visible and not sugar.visible
    assert navigator.last_result == HighlightResult.OK

    navigator.next_step()
    assert sugar.visible and not salt.visible
    assert navigator.has_video
    assert engine.controller.beam_target_name == "Sugar"

    navigator.previous_step()
    assert salt.visible and not sugar.visible
    assert navigator.counter_text == "2 / 4"

    navigator.next_step()
    navigator.next_step()
    assert salt.visible
    assert navigator.next_step() is False

    assert StepNavigator([], engine.set_visible).counter_text == "-- / --"

    steps = load_steps(os.path.join(CONFIG_DIR, 'steps.yaml'))
    assert [s.object_name for s in steps if s.object_name] == ["Salt", "Sugar", "Soy Sauce"]

    engine.close()
    print("\n✓ TEST E3 PASSED")


def test_replay_source_suppression():
    print("\n" + "="*60)
    print("TEST E4: Replay Source")
    print("="*60)

    received = []
    source = ReplayTrackingSource()
    handle = source.subscribe(received.append)
    assert source.subscriber_count == 1

    assert source.deliver(_seen("A"))
    source.enabled = False
    assert source.deliver(_seen("B")) is False
    source.enabled = True
    source.unsubscribe(handle)
    assert source.deliver(_seen("C"))

    assert len(received) == 1
    assert source.delivered_count == 2 and source.suppressed_count == 1

    reports = ReportChannel(history_size=2)
    heard = []
    reports.subscribe(heard.append)
    for kind in (ReportKind.REGISTERED, ReportKind.UNRECOGNIZED, ReportKind.COMPLETED):
        reports.emit(kind, "x", "y")
    assert len(reports.history) == 2 and len(heard) == 3
    assert reports.count(ReportKind.REGISTERED) == 1

    print("\n✓ TEST E4 PASSED")


def test_completion_signal_retried():
    """
    Scenario: the tracker refuses the first stop-detection requests.

    Assertions:
    - The binds still count as bound, not failed
    - Completion is not latched until the stop succeeds
    - The next batch retries and completes exactly once
    """
    print("\n" + "="*60)
    print("TEST A8: Stop-Detection Retried")
    print("="*60)

    source = FlakyTrackingSource(failures=2)
    engine = MarkerEngine(_kitchen_registry(), tracking=source,
                          settings=EngineSettings(flash_seconds=0.0))
    engine.start()

    summary = engine.on_detections(_seen("SALT", "SUGAR"))
    print(f"  bound={summary.bound} failed={summary.failed} completed={engine.completed}")
    assert summary.bound == 2 and summary.failed == 0
    assert engine.registry.all_registered
    assert not engine.completed
    assert source.enabled is True
    assert engine.reports.count(ReportKind.COMPLETED) == 0

    again = engine.on_detections(_seen("SALT"))
    assert again.duplicate == 1
    assert engine.completed
    assert source.enabled is False
    assert engine.reports.count(ReportKind.COMPLETED) == 1

    engine.on_detections(_seen("SUGAR"))
    assert engine.reports.count(ReportKind.COMPLETED) == 1

    engine.close()
    print("\n✓ TEST A8 PASSED")


def test_highlight_wins_over_settling_flash():
    """
    Scenario: show arrives while the registration flash is mid-settle.

    Assertions:
    - The flash finishes settling before the show is applied
    - The visual ends shown, matching the visible flag
    - A hide during a long flash ends it at once
    """
    print("\n" + "="*60)
    print("TEST B6: Show During Flash Settle")
    print("="*60)

    registry = Registry([
        ObjectEntry(MarkerCode("SALT"), "Salt", SlowHideVisual("Salt")),
        ObjectEntry(MarkerCode("SUGAR"), "Sugar", HighlightVisual("Sugar")),
    ])
    engine, source = _kitchen_engine(flash_seconds=0.05, registry=registry)
    salt = registry.by_name("Salt")

    engine.on_detections(_seen("SALT"))
    assert salt.highlight_visual.hiding.wait(2.0)

    assert engine.set_visible("Salt", True) == HighlightResult.OK
    time.sleep(salt.highlight_visual.delay + 0.05)
    print(f"  visible={salt.visible} active={salt.highlight_visual.active}")
    assert salt.visible is True
    assert salt.highlight_visual.active is True
    engine.close()

    engine, source = _kitchen_engine(flash_seconds=5.0)
    sugar = engine.registry.by_name("Sugar")
    engine.on_detections(_seen("SUGAR"))
    assert _wait_for(lambda: sugar.highlight_visual.active)

    start = time.monotonic()
    assert engine.set_visible("Sugar", False) == HighlightResult.OK
    assert time.monotonic() - start < 1.0
    assert engine.scheduler.active(EffectKind.FLASH) == []
    assert not sugar.highlight_visual.active

    engine.close()
    print("\n✓ TEST B6 PASSED")


TESTS = [
    ("A1: Registration Flash & Completion", test_registration_flash_and_completion),
    ("A2: Redelivery Idempotence", test_redelivery_is_idempotent),
    ("A3: Payload Filtering", test_payload_filtering),
    ("A4: Failed Bind Retried", test_failed_bind_is_retried),
    ("A5: Direct Bind API", test_direct_bind_errors),
    ("A6: World Pose", test_world_pose_follows_anchor),
    ("A7: Bundled Scenario", test_bundled_scenario_replay),
    ("A8: Stop-Detection Retried", test_completion_signal_retried),
    ("B1: Visible Implies Registered", test_highlight_requires_registration),
    ("B2: Show Then Hide", test_show_then_hide),
    ("B3: Highlight Survives Flash", test_highlight_survives_flash),
    ("B4: Single Beam", test_single_beam_retargets),
    ("B5: Clear All", test_clear_all_keeps_registration),
    ("B6: Show During Flash Settle", test_highlight_wins_over_settling_flash),
    ("C1: Cancel Before Restart", test_scheduler_cancels_before_restart),
    ("C2: Countdown", test_countdown_ticks_and_finishes),
    ("C3: Alarm Reset", test_alarm_reset_from_any_phase),
    ("D1: Catalogue Files", test_catalogue_loading),
    ("D2: Settings From Env", test_settings_from_env),
    ("D3: Missing Tracking", test_missing_tracking_disables_engine),
    ("E1: Timer Panel", test_timer_panel_cycle),
    ("E2: Timer Pause/Bounds", test_timer_pause_resume_and_bounds),
    ("E3: Step Navigator", test_step_navigation_moves_highlight),
    ("E4: Replay Source", test_replay_source_suppression),
]


def main():
    """Run all tests."""
    print("\n" + "="*60)
    print("Anchorlight Engine - Scenario Tests")
    print("="*60)

    results = []
    for name, test in TESTS:
        try:
            test()
            results.append((name, True))
        except AssertionError as e:
            print(f"\n✗ TEST {name} FAILED: {e}")
            results.append((name, False))
        except Exception as e:
            print(f"\n✗ TEST {name} ERROR: {e}")
            import traceback
            traceback.print_exc()
            results.append((name, False))

    # Summary
    print("\n" + "="*60)
    print("TEST SUMMARY")
    print("="*60)
    for name, passed in results:
        status = "✓ PASSED" if passed else "✗ FAILED"
        print(f"  {name}: {status}")

    all_passed = all(result for _, result in results)
    print("\n" + ("="*60))
    if all_passed:
        print("✓ ALL TESTS PASSED")
    else:
        print("✗ SOME TESTS FAILED")
    print("="*60 + "\n")

    return 0 if all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
