"""Generate a scene for a seed and write its layout manifest as JSON."""
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from crimescene.assets.content import SceneConfig, load_default_config  # noqa: E402
from crimescene.engine.context import EngineContext  # noqa: E402
from crimescene.engine.logger import DEFAULT_CHANNELS, GameLogger, LoggerConfig  # noqa: E402
from crimescene.world.entities import InMemoryScene  # noqa: E402
from crimescene.world.orchestrator import GenerationOrchestrator  # noqa: E402

OUTPUT = ROOT / "build" / "scene_layout.json"


def build_manifest(config: SceneConfig) -> dict:
    logger = GameLogger(LoggerConfig(level=logging.WARNING, channels=DEFAULT_CHANNELS.copy()))
    context = EngineContext.create(logger=logger, seed=config.settings.seed, scene=InMemoryScene())
    orchestrator = GenerationOrchestrator(context, config)
    report = orchestrator.generate()
    hierarchy = orchestrator.hierarchy_stats()
    return {
        "metadata": {
            "seed": report.seed,
            "location": report.location,
            "units": "m",
            "bounds": config.settings.bounds.to_dict(),
        },
        "items": [item.to_dict() for item in orchestrator.placed_items()],
        "evidence": [
            {"id": entry.unique_id, "name": entry.display_name}
            for entry in context.ledger.entries()
        ],
        "relationships": orchestrator.relationships(),
        "hierarchy": {"parents": hierarchy.parents, "children": hierarchy.children},
        "skipped": [str(issue) for issue in report.issues],
    }


def main() -> None:
    args = sys.argv[1:]
    config = SceneConfig.load(Path(args[1])) if len(args) > 1 else load_default_config()
    if args:
        config.settings.seed = int(args[0])
    manifest = build_manifest(config)
    OUTPUT.parent.mkdir(parents=True, exist_ok=True)
    OUTPUT.write_text(json.dumps(manifest, indent=2))
    print(f"Wrote {OUTPUT} ({len(manifest['items'])} items)")


if __name__ == "__main__":
    main()
