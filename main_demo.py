#!/usr/bin/env python3
"""
Anchorlight Engine - Kitchen Demo

Walks through a full session without a headset:
1. Loads the spice catalogue (one QR marker per jar)
2. Replays scripted marker detections on a background tracking thread
3. Anchors each jar's highlight the first time its marker is seen
4. Stops detection once every jar is anchored
5. Steps through a recipe, moving the highlight (and beam) jar to jar
6. Runs a short kitchen timer through its alarm and resets it

Usage:
    python main_demo.py
    python main_demo.py --catalogue configs/kitchen.yaml --scenario configs/scenario.yaml
    python main_demo.py --steps configs/steps.yaml --interval 0.2 --log-level DEBUG
"""

import sys
import time
import logging
import argparse
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from anchorlight.config import EngineSettings, load_catalogue, load_scenario
from anchorlight.engine import MarkerEngine
from anchorlight.errors import CatalogueError
from anchorlight.procedure import StepNavigator, load_steps
from anchorlight.reports import ReportKind
from anchorlight.timer import TimerPanel
from anchorlight.tracking import ReplayTrackingSource
from anchorlight.visuals import AudioCue, TextReadout

CONFIG_DIR = Path(__file__).resolve().parent / "configs"


class AnchorlightDemo:
    """
    Scripted end-to-end session of the Anchorlight engine.
    """

    def __init__(
            self,
            catalogue: Path,
            scenario: Path,
            steps: Path,
            interval: float = 0.25,
            settings: EngineSettings = None
    ):
        """
        Initialize demo.

        Args:
            catalogue: Object catalogue (YAML/JSON)
            scenario: Scripted detection batches
            steps: Recipe steps
            interval: Seconds between replayed detection batches
            settings: Engine timing; defaults to ANCHORLIGHT_* environment
        """
        self.settings = settings or EngineSettings.from_env()

        self.registry = load_catalogue(catalogue)
        self.source = ReplayTrackingSource(load_scenario(scenario), interval=interval)
        self.engine = MarkerEngine(self.registry, tracking=self.source, settings=self.settings)
        self.navigator = StepNavigator(load_steps(steps), self.engine.set_visible)

        self.logger = logging.getLogger("AnchorlightDemo")

    def _print_registry(self):
        for entry in self.registry:
            visual = entry.highlight_visual
            pose = visual.world_pose if visual is not None else None
            where = f"@ {pose.position}" if pose is not None else "(not anchored)"
            print(
                f"  {entry.name:<12} code={entry.code}  registered={entry.registered!s:<5} "
                f"visible={entry.visible!s:<5} {where}"
            )

    def run_detection(self):
        print("\n[1] Detection")
        with self.engine:
            with self.source:
                self.source.wait_until_done(timeout=30.0)

            # Let the last registration flash settle
            time.sleep(self.settings.flash_seconds + 0.1)
            self._print_registry()
            print(f"  Completed: {self.engine.completed}")
            print(f"  Batches delivered: {self.source.delivered_count}, "
                  f"dropped after completion: {self.source.suppressed_count}")

    def run_procedure(self):
        print("\n[2] Recipe")
        step = self.navigator.begin()
        while step is not None:
            target = self.engine.controller.beam_target_name or "-"
            print(f"  {self.navigator.counter_text}  {step.instruction:<48} beam -> {target}"
                  f"{'  [video]' if step.has_video else ''}")
            if not self.navigator.next_step():
                break
            step = self.navigator.current

        self.engine.clear_all()
        print("  Highlights cleared")

    def run_timer(self):
        print("\n[3] Timer")
        readout = TextReadout()
        audio = AudioCue("kitchen-bell")
        # Fast-forward: one displayed second per 10ms
        timer = TimerPanel(
            self.engine.scheduler,
            readout=readout,
            audio=audio,
            minutes=self.settings.timer_minutes,
            min_minutes=self.settings.min_minutes,
            max_minutes=self.settings.max_minutes,
            tick_seconds=0.01,
            blink_interval=self.settings.blink_interval,
        )
        timer.press()
        deadline = time.monotonic() + timer.minutes * 60 * 0.05 + 5.0
        while not timer.alarming and time.monotonic() < deadline:
            time.sleep(0.05)
        print(f"  Alarm: readout={readout.text!r} audio_playing={audio.playing}")
        time.sleep(0.2)
        timer.press()
        print(f"  After reset: readout={readout.text!r} shown={readout.active} audio_playing={audio.playing}")

    def run(self) -> int:
        self.run_detection()
        self.run_procedure()
        self.run_timer()
        self.engine.close()
        self.logger.info("Demo finished")

        reports = self.engine.reports
        print("\n[Reports]")
        for kind in ReportKind:
            count = reports.count(kind)
            if count:
                print(f"  {kind.value:<20} {count}")
        return 0


def main():
    """Parse arguments and run the demo."""
    parser = argparse.ArgumentParser(
        description="Anchorlight marker registration & highlight engine demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  ANCHORLIGHT_FLASH_SECONDS   Registration flash length (default 1.0)
  ANCHORLIGHT_BEAM_ENABLED    Point the emphasis beam at highlighted objects (default true)
  A .env file in the working directory is loaded first.

Examples:
  python main_demo.py
  python main_demo.py --interval 0.1
  python main_demo.py --catalogue my_rack.yaml --scenario my_scan.yaml
        """
    )

    parser.add_argument(
        "--catalogue", "-c",
        type=Path,
        default=CONFIG_DIR / "kitchen.yaml",
        help="Object catalogue (YAML or JSON)"
    )
    parser.add_argument(
        "--scenario", "-s",
        type=Path,
        default=CONFIG_DIR / "scenario.yaml",
        help="Scripted detection batches"
    )
    parser.add_argument(
        "--steps",
        type=Path,
        default=CONFIG_DIR / "steps.yaml",
        help="Recipe steps"
    )
    parser.add_argument(
        "--interval", "-i",
        type=float,
        default=0.25,
        help="Seconds between detection batches"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print("\n" + "=" * 60)
    print("  Anchorlight Marker Registration & Highlight Engine")
    print("  Kitchen Demo")
    print("=" * 60)
    print(f"  Catalogue: {args.catalogue}")
    print(f"  Scenario:  {args.scenario}")
    print(f"  Steps:     {args.steps}")
    print("=" * 60)

    try:
        demo = AnchorlightDemo(
            catalogue=args.catalogue,
            scenario=args.scenario,
            steps=args.steps,
            interval=args.interval,
        )
    except CatalogueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    sys.exit(demo.run())


if __name__ == "__main__":
    main()
