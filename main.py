"""Headless entry point: generate a scene, track it for a while, print the checklist."""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict

from pygame.math import Vector3

from crimescene.assets.content import SceneConfig, load_default_config
from crimescene.engine.context import EngineContext, StaticDetector
from crimescene.engine.logger import init_logger
from crimescene.engine.loop import FixedTimestepLoop
from crimescene.evidence.checklist import EvidenceChecklist
from crimescene.evidence.scanner import SyncScanner
from crimescene.world.entities import InMemoryScene
from crimescene.world.orchestrator import GenerationOrchestrator


SETTINGS_PATH = Path("settings.json")


def load_settings() -> Dict[str, Any]:
    if not SETTINGS_PATH.exists():
        return {"simHz": 60, "runSeconds": 3.0}
    try:
        return json.loads(SETTINGS_PATH.read_text())
    except json.JSONDecodeError:
        return {"simHz": 60, "runSeconds": 3.0}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, default=None, help="scene config JSON")
    parser.add_argument("--seed", type=int, default=None, help="override the configured seed")
    parser.add_argument("--preset", default=None, help="enable a category preset before generating")
    parser.add_argument("--seconds", type=float, default=None, help="simulated seconds to run")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = load_settings()
    logger = init_logger(SETTINGS_PATH)
    config_log = logger.channel("config")
    if args.config is not None:
        config = SceneConfig.load(args.config, config_log)
    else:
        config = load_default_config(config_log)
    if args.seed is not None:
        config.settings.seed = args.seed

    scene = InMemoryScene()
    # Hand-placed set dressing that follows the category toggles.
    scene.instantiate("Counter", Vector3(0.0, 0.5, -8.0), name="Bar Counter", tag="BarObject")
    scene.instantiate("Chair", Vector3(6.0, 0.5, 6.0), name="Wooden Chair", tag="Chair")
    detector = StaticDetector()
    context = EngineContext.create(logger=logger, seed=config.settings.seed, scene=scene, detector=detector)
    orchestrator = GenerationOrchestrator(context, config)
    checklist = EvidenceChecklist.from_settings(context, config.settings)
    context.add_observer(checklist)
    scanner = SyncScanner.from_settings(context, config.settings)

    if args.preset:
        ok, message = orchestrator.enable_preset(args.preset)
        print(message)
        if not ok:
            return
    report = orchestrator.generate()
    print(report.message)
    print(orchestrator.register_existing_objects()[1])
    orchestrator.log_hierarchy_statistics()
    orchestrator.start()
    scanner.start()
    checklist.start(orchestrator.spawned_count)

    # Stand-in for the camera: photograph the first tracked fingerprint after a second.
    def photograph_first() -> None:
        handles = scanner.tracked_handles
        if handles:
            detector.photograph(handles[0])

    context.scheduler.call_later(1.0, photograph_first)

    def update(dt: float) -> None:
        context.scheduler.tick(dt)
        context.telemetry.advance_time(dt, logger.channel("generation"))

    loop = FixedTimestepLoop(update, fixed_hz=float(settings.get("simHz", 60)))
    loop.run(args.seconds if args.seconds is not None else float(settings.get("runSeconds", 3.0)))

    orchestrator.stop()
    scanner.stop()
    checklist.stop()
    print(checklist.render())
    snapshot = context.telemetry.snapshot()
    print(
        f"placed={snapshot.placed} failed={snapshot.failed} skipped={snapshot.skipped} "
        f"attempts={snapshot.attempts} ({snapshot.duration_ms:.1f}ms)"
    )


if __name__ == "__main__":
    main()
