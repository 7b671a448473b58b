import logging
import math

from pygame.math import Vector3

from crimescene.engine.logger import DEFAULT_CHANNELS, GameLogger, LoggerConfig
from crimescene.engine.random_source import RandomSource
from crimescene.engine.telemetry import GenerationTelemetry
from crimescene.world.collision import Aabb, CollisionIndex, WorldBounds
from crimescene.world.errors import PlacementExhausted
from crimescene.world.placement import OrbitRequest, PlacementEngine
from crimescene.world.rules import (
    CategoryRule,
    OrbitConfig,
    OrbitPlacement,
    RingLayout,
    RotationMode,
    SpawnCategory,
    TargetSelector,
)


def _quiet_logger() -> GameLogger:
    channels = {name: False for name in DEFAULT_CHANNELS}
    return GameLogger(LoggerConfig(level=logging.CRITICAL, channels=channels))


def _engine(seed: int = 1) -> PlacementEngine:
    return PlacementEngine(RandomSource(seed), _quiet_logger().channel("placement"), GenerationTelemetry())


def _horizontal(a: Vector3, b: Vector3) -> float:
    return math.hypot(a.x - b.x, a.z - b.z)


def test_polar_samples_stay_in_radius_band_and_bounds() -> None:
    engine = _engine(5)
    index = CollisionIndex()
    bounds = WorldBounds.default()
    rule = CategoryRule(
        SpawnCategory.DECORATIONS,
        radius_min=2.0,
        radius_max=4.0,
        height_offset=0.25,
        footprint=Vector3(0.5, 0.5, 0.5),
    )
    for _ in range(8):
        outcome = engine.place(rule, Vector3(), bounds, index)
        assert outcome.placed
        item = outcome.item
        assert 2.0 - 1e-6 <= _horizontal(item.position, Vector3()) <= 4.0 + 1e-6
        assert item.position.y == 0.25
        assert bounds.contains_box(item.bounding_volume)
    volumes = [volume.box for volume in index.volumes()]
    for i, first in enumerate(volumes):
        for second in volumes[i + 1:]:
            assert not first.intersects(second)


def test_out_of_range_candidates_are_clamped_into_bounds() -> None:
    engine = _engine(2)
    rule = CategoryRule(
        SpawnCategory.CUSTOM,
        radius_min=50.0,
        radius_max=50.0,
        footprint=Vector3(0.0, 0.0, 0.0),
        padding=0.0,
    )
    outcome = engine.place(rule, Vector3(), WorldBounds.default(), CollisionIndex())
    assert outcome.placed
    position = outcome.item.position
    assert max(abs(position.x), abs(position.z)) == 10.0


def test_floor_level_footprint_is_lifted_inside_bounds() -> None:
    engine = _engine(42)
    bounds = WorldBounds.default()
    rule = CategoryRule(
        SpawnCategory.EVIDENCE,
        radius_min=1.0,
        radius_max=1.0,
        height_offset=0.0,
        max_attempts=1,
        footprint=Vector3(0.3, 0.5, 0.3),
    )
    outcome = engine.place(rule, Vector3(), bounds, CollisionIndex())
    assert outcome.placed
    assert outcome.attempts == 1
    assert outcome.item.position.y == 0.25
    assert outcome.item.bounding_volume.minimum.y == 0.0
    assert abs(_horizontal(outcome.item.position, Vector3()) - 1.0) < 1e-6


def test_exhausted_attempts_report_issue_and_telemetry() -> None:
    telemetry = GenerationTelemetry()
    engine = PlacementEngine(RandomSource(3), None, telemetry)
    index = CollisionIndex()
    index.insert(object(), SpawnCategory.FURNITURE, Aabb(Vector3(-20.0, -1.0, -20.0), Vector3(20.0, 6.0, 20.0)))
    rule = CategoryRule(SpawnCategory.CHAIRS, max_attempts=5, height_offset=0.5)
    outcome = engine.place(rule, Vector3(), WorldBounds.default(), index)
    assert not outcome.placed
    assert outcome.attempts == 5
    assert isinstance(outcome.issue, PlacementExhausted)
    assert outcome.issue.category == "Chairs"
    assert telemetry.failed == 1
    assert telemetry.attempts == 5
    assert len(index) == 1


def test_ring_positions_are_used_before_polar_fallback() -> None:
    engine = _engine(11)
    index = CollisionIndex()
    # The ring slot at angle zero sits outside these bounds.
    bounds = WorldBounds(Vector3(-10.0, 0.0, -10.0), Vector3(3.0, 5.0, 10.0))
    rule = CategoryRule(
        SpawnCategory.TABLES,
        radius_min=1.0,
        radius_max=2.0,
        height_offset=0.5,
        footprint=Vector3(1.0, 1.0, 1.0),
        ring_layout=RingLayout(ring_radius=4.0, positions_on_ring=6),
    )
    used = []
    for _ in range(5):
        outcome = engine.place(rule, Vector3(), bounds, index)
        assert outcome.placed
        used.append(outcome.item.ring_index)
        assert abs(_horizontal(outcome.item.position, Vector3()) - 4.0) < 1e-6
    assert sorted(used) == [1, 2, 3, 4, 5]
    assert engine.remaining_ring_positions(rule) == 0
    fallback = engine.place(rule, Vector3(), bounds, index)
    assert fallback.placed
    assert fallback.item.ring_index is None
    assert _horizontal(fallback.item.position, Vector3()) <= 2.0 + 1e-6


def test_ring_pool_resets_each_cycle() -> None:
    engine = _engine(4)
    rule = CategoryRule(
        SpawnCategory.TABLES,
        height_offset=0.5,
        ring_layout=RingLayout(ring_radius=4.0, positions_on_ring=3),
    )
    engine.place(rule, Vector3(), WorldBounds.default(), CollisionIndex())
    assert engine.remaining_ring_positions(rule) == 2
    engine.begin_cycle()
    assert engine.remaining_ring_positions(rule) == 0
    engine.place(rule, Vector3(), WorldBounds.default(), CollisionIndex())
    assert engine.remaining_ring_positions(rule) == 2


def test_corrected_rule_copies_get_their_own_ring_pool() -> None:
    engine = _engine(12)
    ring = RingLayout(ring_radius=4.0, positions_on_ring=4)
    for _ in range(3):
        rule, issues = CategoryRule(
            SpawnCategory.TABLES,
            count_min=-1,
            height_offset=0.5,
            ring_layout=ring,
        ).validated()
        assert issues
        engine.place(rule, Vector3(), WorldBounds.default(), CollisionIndex())
        assert engine.remaining_ring_positions(rule) == 3


def test_secondary_ring_seats_chairs_around_table() -> None:
    engine = _engine(8)
    index = CollisionIndex()
    bounds = WorldBounds.default()
    tables = CategoryRule(
        SpawnCategory.TABLES,
        height_offset=0.5,
        footprint=Vector3(2.0, 1.0, 2.0),
        ring_layout=RingLayout(
            ring_radius=4.0,
            positions_on_ring=6,
            secondary_ring_radius=1.75,
            secondary_count_per_primary=4,
            secondary_category=SpawnCategory.CHAIRS,
        ),
    )
    chairs = CategoryRule(
        SpawnCategory.CHAIRS,
        radius_min=8.0,
        radius_max=9.0,
        height_offset=0.5,
        footprint=Vector3(1.0, 1.0, 1.0),
        rotation_mode=RotationMode.FACE_CENTER,
    )
    table = engine.place(tables, Vector3(), bounds, index).item
    assert table is not None
    assert engine.remaining_secondary_positions(SpawnCategory.CHAIRS) == 4
    for _ in range(4):
        chair = engine.place(chairs, Vector3(), bounds, index).item
        assert chair is not None
        assert abs(_horizontal(chair.position, table.position) - 1.75) < 1e-6
        assert not chair.bounding_volume.intersects(table.bounding_volume)
    assert engine.remaining_secondary_positions(SpawnCategory.CHAIRS) == 0


def test_even_orbit_spacing_and_target_overlap() -> None:
    engine = _engine(6)
    index = CollisionIndex()
    bounds = WorldBounds.default()
    table = object()
    index.insert(table, SpawnCategory.CUSTOM, Aabb.from_center(Vector3(0.0, 0.5, 0.0), Vector3(2.0, 1.0, 2.0)))
    rule = CategoryRule(
        SpawnCategory.CUSTOM,
        height_offset=0.75,
        footprint=Vector3(0.2, 0.5, 0.2),
        orbit=OrbitConfig(
            target=TargetSelector(),
            min_dist=0.6,
            max_dist=0.6,
            angle_jitter=0.0,
            placement_mode=OrbitPlacement.EVEN,
        ),
    )
    positions = []
    for slot in range(4):
        request = OrbitRequest(center=Vector3(), index=slot, count=4, target=table)
        outcome = engine.place(rule, Vector3(), bounds, index, request)
        assert outcome.placed
        positions.append(outcome.item.position)
    assert positions[0].x == 0.6
    assert abs(positions[1].z - 0.6) < 1e-6
    assert abs(positions[2].x + 0.6) < 1e-6
    assert all(abs(_horizontal(position, Vector3()) - 0.6) < 1e-6 for position in positions)


def test_rotation_modes() -> None:
    engine = _engine(9)
    bounds = WorldBounds.default()
    rule = CategoryRule(
        SpawnCategory.CUSTOM,
        radius_min=3.0,
        radius_max=3.0,
        height_offset=0.5,
        rotation_mode=RotationMode.FACE_CENTER,
    )
    item = engine.place(rule, Vector3(), bounds, CollisionIndex()).item
    toward = math.degrees(math.atan2(-item.position.x, -item.position.z)) % 360.0
    assert abs(item.rotation - toward) < 1e-6
    away = engine.place(
        CategoryRule(
            SpawnCategory.CUSTOM,
            radius_min=3.0,
            radius_max=3.0,
            height_offset=0.5,
            rotation_mode=RotationMode.FACE_AWAY,
        ),
        Vector3(),
        bounds,
        CollisionIndex(),
    ).item
    expected = (math.degrees(math.atan2(-away.position.x, -away.position.z)) + 180.0) % 360.0
    assert abs(away.rotation - expected) < 1e-6
    assert 0.0 <= item.rotation < 360.0
