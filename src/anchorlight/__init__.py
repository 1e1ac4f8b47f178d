"""
Anchorlight - Marker Registration & Highlight Engine for AR Applications

Binds virtual highlights to real objects identified by printed markers,
and lets a guided procedure switch those highlights on and off by name.

Features:
- Idempotent one-time anchoring of each catalogued object
- Name-keyed highlight toggles with a single shared emphasis beam
- Cancellable timed effects (registration flash, countdown, alarm blink)
- Automatic stop of the detection subsystem once everything is anchored
- Structured report channel instead of exceptions for local failures

Quick Start:
    from anchorlight import DetectionEvent, MarkerEngine, Pose, ReplayTrackingSource, load_catalogue

    registry = load_catalogue("configs/kitchen.yaml")
    source = ReplayTrackingSource()
    engine = MarkerEngine(registry, tracking=source)

    with engine:
        source.deliver([DetectionEvent("SALT", Pose.from_position(0.4, 0.0, 1.2))])
        engine.set_visible("Salt", True)
"""

__version__ = "1.0.0"
__author__ = "Anchorlight Team"

# Core engine
from .engine import MarkerEngine

# Catalogue
from .registry import (
    MarkerCode,
    ObjectEntry,
    Registry,
    MatchOutcome,
    MatchResult,
)

# Detection path
from .dispatcher import (
    DetectionEvent,
    DetectionDispatcher,
    DispatchSummary,
)
from .anchors import AnchorBinding, AnchorBinder
from .completion import CompletionMonitor
from .tracking import TrackingSubsystem, ReplayTrackingSource

# Control path
from .highlight import HighlightController, HighlightResult

# Effects
from .effects import (
    EffectScheduler,
    EffectHandle,
    EffectKind,
    EffectState,
    RegistrationFlash,
    Countdown,
    AlarmBlink,
)

# Scene handles
from .geometry import Pose
from .visuals import (
    HighlightVisual,
    EmphasisBeam,
    TextReadout,
    AudioCue,
    ColorScheme,
)

# Ambient
from .config import EngineSettings, load_catalogue, load_scenario, build_registry
from .reports import Report, ReportChannel, ReportKind
from .errors import (
    AnchorlightError,
    AlreadyRegisteredError,
    ConfigMissingError,
    CatalogueError,
)

# Collaborators
from .timer import TimerPanel, TimerState
from .procedure import Step, StepNavigator, load_steps

__all__ = [
    # Version
    "__version__",

    # Engine
    "MarkerEngine",

    # Catalogue
    "MarkerCode",
    "ObjectEntry",
    "Registry",
    "MatchOutcome",
    "MatchResult",

    # Detection
    "DetectionEvent",
    "DetectionDispatcher",
    "DispatchSummary",
    "AnchorBinding",
    "AnchorBinder",
    "CompletionMonitor",
    "TrackingSubsystem",
    "ReplayTrackingSource",

    # Control
    "HighlightController",
    "HighlightResult",

    # Effects
    "EffectScheduler",
    "EffectHandle",
    "EffectKind",
    "EffectState",
    "RegistrationFlash",
    "Countdown",
    "AlarmBlink",

    # Scene
    "Pose",
    "HighlightVisual",
    "EmphasisBeam",
    "TextReadout",
    "AudioCue",
    "ColorScheme",

    # Configuration & reports
    "EngineSettings",
    "load_catalogue",
    "load_scenario",
    "build_registry",
    "Report",
    "ReportChannel",
    "ReportKind",
    "AnchorlightError",
    "AlreadyRegisteredError",
    "ConfigMissingError",
    "CatalogueError",

    # Collaborators
    "TimerPanel",
    "TimerState",
    "Step",
    "StepNavigator",
    "load_steps",
]
