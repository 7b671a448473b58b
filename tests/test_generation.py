import logging
import math
from typing import List, Optional, Sequence

from pygame.math import Vector3

from crimescene.assets.content import SceneConfig, SceneSettings
from crimescene.engine.context import EngineContext
from crimescene.engine.logger import DEFAULT_CHANNELS, GameLogger, LoggerConfig
from crimescene.world.collision import WorldBounds
from crimescene.world.entities import InMemoryScene
from crimescene.world.orchestrator import GenerationOrchestrator, GenerationState
from crimescene.world.rules import (
    CategoryRule,
    EvidenceTemplate,
    OrbitConfig,
    OrbitPlacement,
    SpawnCategory,
    TargetMode,
    TargetSelector,
)


def _quiet_logger() -> GameLogger:
    channels = {name: False for name in DEFAULT_CHANNELS}
    return GameLogger(LoggerConfig(level=logging.CRITICAL, channels=channels))


class RecordingObserver:
    def __init__(self) -> None:
        self.lists: List[List[str]] = []
        self.handles: List[List[object]] = []
        self.generated = 0

    def on_evidence_list(self, names: Sequence[str], handles: Sequence[object]) -> None:
        self.lists.append(list(names))
        self.handles.append(list(handles))

    def on_scene_generated(self) -> None:
        self.generated += 1


def _orchestrator(config: SceneConfig, scene: Optional[InMemoryScene] = None) -> GenerationOrchestrator:
    context = EngineContext.create(logger=_quiet_logger(), seed=config.settings.seed, scene=scene)
    return GenerationOrchestrator(context, config)


def _knife_only(seed: int = 3) -> SceneConfig:
    return SceneConfig(
        settings=SceneSettings(seed=seed),
        rules=[],
        evidence=[EvidenceTemplate("Knife", max_quantity=1, essential=True, fingerprints=2)],
    )


def _layout(orchestrator: GenerationOrchestrator) -> list:
    return [
        (item.name, round(item.position.x, 6), round(item.position.y, 6), round(item.position.z, 6))
        for item in orchestrator.placed_items()
    ]


def test_seed_42_places_two_knives_on_unit_ring() -> None:
    config = SceneConfig(
        settings=SceneSettings(seed=42),
        rules=[
            CategoryRule(
                SpawnCategory.EVIDENCE,
                templates=("Knife",),
                count_min=2,
                count_max=2,
                radius_min=1.0,
                radius_max=1.0,
                height_offset=0.0,
                max_attempts=10,
                footprint=Vector3(0.3, 0.5, 0.3),
            )
        ],
        evidence=[],
    )
    orchestrator = _orchestrator(config, InMemoryScene())
    report = orchestrator.generate()
    assert report.success
    assert report.placed == 2
    assert report.failed == 0
    assert report.seed == 42
    assert report.evidence_ids == ["Evidence_Knife_1", "Evidence_Knife_2"]
    assert orchestrator.context.ledger.ids() == ["Evidence_Knife_1", "Evidence_Knife_2"]
    assert orchestrator.evidence_names() == ["Knife 1", "Knife 2"]
    first, second = orchestrator.placed_items()
    assert first.name == "Knife (1)"
    for item in (first, second):
        assert abs(math.hypot(item.position.x, item.position.z) - 1.0) < 1e-6
        # The footprint is lifted onto the floor of the default bounds.
        assert item.position.y == 0.25
        assert WorldBounds.default().contains_box(item.bounding_volume)
    assert not first.bounding_volume.intersects(second.bounding_volume)


def test_same_seed_reproduces_layout() -> None:
    first = _orchestrator(SceneConfig(settings=SceneSettings(seed=7)), InMemoryScene())
    second = _orchestrator(SceneConfig(settings=SceneSettings(seed=7)), InMemoryScene())
    report_a = first.generate()
    report_b = second.generate()
    assert _layout(first) == _layout(second)
    assert report_a.evidence_ids == report_b.evidence_ids
    layout = _layout(first)
    first.generate()
    assert _layout(first) == layout


def test_placed_items_never_overlap_and_stay_in_bounds() -> None:
    config = SceneConfig(settings=SceneSettings(seed=21))
    config.rules = [
        rule
        for rule in config.rules
        if rule.category in (SpawnCategory.TABLES, SpawnCategory.BAR_OBJECTS, SpawnCategory.CHAIRS, SpawnCategory.FURNITURE)
    ]
    orchestrator = _orchestrator(config, InMemoryScene())
    report = orchestrator.generate()
    items = orchestrator.placed_items()
    assert len(items) == report.placed
    assert items
    for i, first in enumerate(items):
        assert config.settings.bounds.contains_box(first.bounding_volume)
        for second in items[i + 1:]:
            assert not first.bounding_volume.intersects(second.bounding_volume), (first.name, second.name)


def test_default_scene_respects_bounds_for_every_item() -> None:
    orchestrator = _orchestrator(SceneConfig(settings=SceneSettings(seed=99)), InMemoryScene())
    orchestrator.generate()
    bounds = orchestrator.config.settings.bounds
    for item in orchestrator.placed_items():
        assert bounds.contains_box(item.bounding_volume)


def test_orbiting_glasses_surround_their_table() -> None:
    config = SceneConfig(
        settings=SceneSettings(seed=5),
        rules=[
            CategoryRule(
                SpawnCategory.TABLES,
                templates=("Table",),
                radius_min=0.0,
                radius_max=0.0,
                height_offset=0.5,
                footprint=Vector3(2.0, 1.0, 2.0),
            ),
            CategoryRule(
                SpawnCategory.GLASSES,
                templates=("Glass",),
                count_min=3,
                count_max=3,
                height_offset=1.25,
                footprint=Vector3(0.2, 0.5, 0.2),
                orbit=OrbitConfig(
                    target=TargetSelector(TargetMode.CATEGORY, SpawnCategory.TABLES),
                    min_dist=0.8,
                    max_dist=0.8,
                    count_min=3,
                    count_max=3,
                    angle_jitter=0.0,
                    placement_mode=OrbitPlacement.EVEN,
                ),
            ),
        ],
        evidence=[],
    )
    orchestrator = _orchestrator(config, InMemoryScene())
    orchestrator.generate()
    table, *glasses = orchestrator.placed_items()
    assert table.name == "Table"
    assert [glass.name for glass in glasses] == ["Glass (1)", "Glass (2)", "Glass (3)"]
    assert orchestrator.relationships() == {"Table": ["Glass (1)", "Glass (2)", "Glass (3)"]}
    stats = orchestrator.log_hierarchy_statistics()
    assert (stats.parents, stats.children) == (1, 3)
    assert stats.relations == {"Table": 3}
    for glass in glasses:
        assert glass.orbit_target is table
        assert abs(math.hypot(glass.position.x - table.position.x, glass.position.z - table.position.z) - 0.8) < 1e-6
    assert abs(glasses[0].position.x - 0.8) < 1e-6
    assert abs(glasses[0].position.z) < 1e-6


def test_orbit_without_targets_circles_the_anchor() -> None:
    config = SceneConfig(
        settings=SceneSettings(seed=5, anchor=Vector3(2.0, 0.0, 1.0)),
        rules=[
            CategoryRule(
                SpawnCategory.BOTTLES,
                templates=("Bottle",),
                count_min=2,
                count_max=2,
                height_offset=0.5,
                footprint=Vector3(0.3, 1.0, 0.3),
                orbit=OrbitConfig(
                    target=TargetSelector(TargetMode.CATEGORY, SpawnCategory.TABLES),
                    min_dist=1.0,
                    max_dist=1.0,
                    count_min=2,
                    count_max=2,
                    angle_jitter=0.0,
                    placement_mode=OrbitPlacement.EVEN,
                ),
            )
        ],
        evidence=[],
    )
    orchestrator = _orchestrator(config, InMemoryScene())
    orchestrator.generate()
    bottles = orchestrator.placed_items()
    assert len(bottles) == 2
    for bottle in bottles:
        assert abs(math.hypot(bottle.position.x - 2.0, bottle.position.z - 1.0) - 1.0) < 1e-6
        assert bottle.orbit_target is None
    assert orchestrator.relationships() == {}
    assert orchestrator.hierarchy_stats().parents == 0


def test_evidence_catalogue_spawns_fingerprinted_knife() -> None:
    config = _knife_only()
    config.evidence.append(EvidenceTemplate("Phone", spawn_probability=0.0))
    scene = InMemoryScene()
    orchestrator = _orchestrator(config, scene)
    report = orchestrator.generate()
    assert report.evidence_ids == ["Knife"]
    assert report.skipped == 1
    assert orchestrator.evidence_names() == ["Knife"]
    knife_handle = orchestrator.evidence_handles()[0]
    children = [entity for entity in scene.entities() if entity.parent == knife_handle]
    assert sorted(child.name for child in children) == ["Fingerprint", "Fingerprint (1)"]
    assert all(child.has_marker and child.layer == "UV" for child in children)
    assert scene.get(knife_handle).tag == "Evidence"


def test_duplicate_evidence_names_get_unique_ids() -> None:
    config = SceneConfig(
        settings=SceneSettings(seed=12),
        rules=[],
        evidence=[
            EvidenceTemplate("Bottle", max_quantity=1, essential=True),
            EvidenceTemplate("Bottle", max_quantity=1, essential=True),
        ],
    )
    orchestrator = _orchestrator(config, InMemoryScene())
    report = orchestrator.generate()
    assert sorted(report.evidence_ids) == ["Bottle", "Evidence_Bottle_1"]
    assert len(set(orchestrator.context.ledger.ids())) == 2


def test_notification_waits_for_delay() -> None:
    orchestrator = _orchestrator(_knife_only(), InMemoryScene())
    observer = RecordingObserver()
    orchestrator.context.add_observer(observer)
    orchestrator.generate()
    scheduler = orchestrator.context.scheduler
    assert orchestrator.notification_pending
    scheduler.tick(0.1)
    assert observer.generated == 0
    scheduler.tick(0.15)
    assert observer.generated == 1
    assert observer.lists == [["Knife"]]
    assert observer.handles == [orchestrator.evidence_handles()]
    assert not orchestrator.notification_pending


def test_newer_generation_supersedes_pending_notification() -> None:
    orchestrator = _orchestrator(_knife_only(), InMemoryScene())
    observer = RecordingObserver()
    orchestrator.context.add_observer(observer)
    scheduler = orchestrator.context.scheduler
    orchestrator.generate()
    scheduler.tick(0.1)
    orchestrator.generate()
    scheduler.tick(0.15)
    assert observer.generated == 0
    scheduler.tick(0.1)
    assert observer.generated == 1
    assert orchestrator.notifications == 1


def test_regeneration_rebuilds_evidence_state() -> None:
    orchestrator = _orchestrator(_knife_only(), InMemoryScene())
    orchestrator.generate()
    ledger = orchestrator.context.ledger
    ok, _ = ledger.mark_found("Knife")
    assert ok
    assert ledger.get("Knife").found
    orchestrator.generate()
    assert ledger.ids() == ["Knife"]
    assert not ledger.get("Knife").found


def test_clearing_removes_everything() -> None:
    scene = InMemoryScene()
    orchestrator = _orchestrator(_knife_only(), scene)
    orchestrator.generate()
    assert len(scene) == 3
    ok, message = orchestrator.clear()
    assert ok
    assert message == "Cleared 1 objects"
    assert len(scene) == 0
    assert len(orchestrator.context.ledger) == 0
    assert orchestrator.placed_items() == []


def test_manual_triggers() -> None:
    orchestrator = _orchestrator(SceneConfig(settings=SceneSettings(seed=1)), InMemoryScene())
    ok, _ = orchestrator.toggle_category(SpawnCategory.EVIDENCE)
    assert not ok
    ok, message = orchestrator.toggle_category(SpawnCategory.CHAIRS)
    assert ok
    assert message == "Chairs disabled"
    report = orchestrator.generate()
    assert report.success
    assert all(item.category is not SpawnCategory.CHAIRS for item in orchestrator.placed_items())

    ok, message = orchestrator.set_seed(-4)
    assert not ok
    ok, _ = orchestrator.set_seed(77)
    assert ok
    assert orchestrator.last_report.seed == 77
    assert orchestrator.config.settings.seed == 77

    report = orchestrator.regenerate_with_new_seed()
    assert report.seed == orchestrator.config.settings.seed
    assert report.seed is not None

    ok, _ = orchestrator.enable_preset("minimal")
    assert ok
    orchestrator.generate()
    categories = {item.category for item in orchestrator.placed_items()}
    assert categories <= {SpawnCategory.TABLES, SpawnCategory.EVIDENCE}
    ok, _ = orchestrator.enable_preset("spaceport")
    assert not ok


def test_random_location_does_not_touch_configured_toggles() -> None:
    config = SceneConfig(settings=SceneSettings(seed=31, random_location=True))
    orchestrator = _orchestrator(config, InMemoryScene())
    before = config.toggles.copy()
    report = orchestrator.generate()
    assert report.location in ("Bar", "Office", "Home")
    assert config.toggles == before
    assert not orchestrator.monitor.poll()


def test_generation_without_scene_still_places() -> None:
    orchestrator = _orchestrator(SceneConfig(settings=SceneSettings(seed=4)))
    report = orchestrator.generate()
    assert report.success
    assert report.placed > 0
    assert all(item.identity is None for item in orchestrator.placed_items())
    assert orchestrator.prune_stale() == []
    assert report.evidence_ids == orchestrator.context.ledger.ids()


def test_externally_destroyed_evidence_is_pruned() -> None:
    scene = InMemoryScene()
    orchestrator = _orchestrator(_knife_only(), scene)
    orchestrator.generate()
    handle = orchestrator.evidence_handles()[0]
    scene.destroy(handle)
    assert orchestrator.evidence_names() == []
    assert "Knife" not in orchestrator.context.ledger
    assert len(scene) == 0
    assert orchestrator.spawned_count() == 0


def test_generation_telemetry_counts_cycle() -> None:
    orchestrator = _orchestrator(SceneConfig(settings=SceneSettings(seed=8)), InMemoryScene())
    report = orchestrator.generate()
    snapshot = orchestrator.context.telemetry.snapshot()
    assert snapshot.cycles == 1
    assert snapshot.placed == report.placed
    assert snapshot.failed == report.failed
    assert snapshot.skipped == report.skipped
    assert snapshot.attempts >= snapshot.placed


def test_generation_returns_to_idle_and_indexes_every_item() -> None:
    orchestrator = _orchestrator(SceneConfig(settings=SceneSettings(seed=14)), InMemoryScene())
    assert orchestrator.state is GenerationState.IDLE
    report = orchestrator.generate()
    assert orchestrator.state is GenerationState.IDLE
    assert len(orchestrator.collision_index) == report.placed


def test_removed_observer_is_not_notified() -> None:
    orchestrator = _orchestrator(_knife_only(), InMemoryScene())
    kept = RecordingObserver()
    dropped = RecordingObserver()
    orchestrator.context.add_observer(kept)
    orchestrator.context.add_observer(dropped)
    orchestrator.context.add_observer(kept)
    orchestrator.context.remove_observer(dropped)
    orchestrator.generate()
    orchestrator.context.scheduler.tick(0.5)
    assert kept.generated == 1
    assert dropped.generated == 0
