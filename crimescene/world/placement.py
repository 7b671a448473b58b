"""Candidate sampling and validation for individual spawns."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pygame.math import Vector3

from crimescene.engine.logger import ChannelLogger
from crimescene.engine.random_source import RandomSource
from crimescene.engine.telemetry import GenerationTelemetry
from crimescene.world.collision import Aabb, CollisionIndex, WorldBounds
from crimescene.world.errors import PlacementExhausted
from crimescene.world.rules import CategoryRule, OrbitPlacement, RotationMode, SpawnCategory


@dataclass(eq=False)
class PlacedItem:
    """A committed spawn. ``identity`` is the scene handle once instantiated."""

    name: str
    template: str
    position: Vector3
    rotation: float
    bounding_volume: Aabb
    source_rule: CategoryRule
    ring_index: Optional[int] = None
    orbit_target: Optional["PlacedItem"] = None
    identity: object = None

    @property
    def category(self) -> SpawnCategory:
        return self.source_rule.category

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "template": self.template,
            "category": self.category.value,
            "position": [round(self.position.x, 4), round(self.position.y, 4), round(self.position.z, 4)],
            "rotation": round(self.rotation, 2),
            "bounds": self.bounding_volume.to_dict(),
            "ringIndex": self.ring_index,
            "orbitTarget": self.orbit_target.name if self.orbit_target else None,
        }


@dataclass
class OrbitRequest:
    """Where an orbiting item should go relative to its target."""

    center: Vector3
    index: int = 0
    count: int = 1
    target: Optional[PlacedItem] = None


@dataclass
class PlacementOutcome:
    item: Optional[PlacedItem]
    attempts: int
    issue: Optional[PlacementExhausted] = None

    @property
    def placed(self) -> bool:
        return self.item is not None


class PlacementEngine:
    """Samples candidate positions for a rule and commits the first valid one."""

    def __init__(
        self,
        random: RandomSource,
        logger: Optional[ChannelLogger] = None,
        telemetry: Optional[GenerationTelemetry] = None,
    ) -> None:
        self._random = random
        self._logger = logger
        self._telemetry = telemetry
        # Each pool keeps its rule alive so the id key stays unique for the cycle.
        self._ring_pools: Dict[int, Tuple[CategoryRule, List[Tuple[int, Vector3]]]] = {}
        self._secondary_pools: Dict[SpawnCategory, List[Tuple[float, float]]] = {}

    def begin_cycle(self) -> None:
        self._ring_pools = {}
        self._secondary_pools = {}

    def remaining_ring_positions(self, rule: CategoryRule) -> int:
        entry = self._ring_pools.get(id(rule))
        return len(entry[1]) if entry and entry[0] is rule else 0

    def remaining_secondary_positions(self, category: SpawnCategory) -> int:
        return len(self._secondary_pools.get(category, []))

    def place(
        self,
        rule: CategoryRule,
        anchor: Vector3,
        bounds: WorldBounds,
        index: CollisionIndex,
        orbit: Optional[OrbitRequest] = None,
        name: str = "",
        template: str = "",
    ) -> PlacementOutcome:
        label = name or rule.label
        ignore = ()
        if orbit and orbit.target is not None and rule.orbit and rule.orbit.can_overlap_with_target:
            ignore = (orbit.target,)
        attempts = 0
        for _ in range(max(1, rule.max_attempts)):
            attempts += 1
            candidate, ring_index = self._sample(rule, anchor, bounds, orbit)
            candidate = bounds.clamp_center(candidate, rule.footprint)
            box = Aabb.from_center(candidate, rule.footprint)
            if not bounds.contains_box(box):
                continue
            if index.intersects(box.inflated(rule.padding), rule.category, ignore):
                continue
            center = orbit.center if orbit else anchor
            item = PlacedItem(
                name=label,
                template=template or rule.base_names()[0],
                position=candidate,
                rotation=self._rotation(rule, candidate, center),
                bounding_volume=box,
                source_rule=rule,
                ring_index=ring_index,
                orbit_target=orbit.target if orbit else None,
            )
            index.insert(item, rule.category, box)
            self._offer_secondary_ring(rule, item, bounds)
            if self._telemetry:
                self._telemetry.record_attempts(attempts)
                self._telemetry.record_placed()
            if self._logger and self._logger.enabled:
                self._logger.debug(
                    "Placed %s at (%.2f, %.2f, %.2f) after %d attempt(s)",
                    label,
                    candidate.x,
                    candidate.y,
                    candidate.z,
                    attempts,
                )
            return PlacementOutcome(item, attempts)
        if self._telemetry:
            self._telemetry.record_attempts(attempts)
            self._telemetry.record_failed()
        issue = PlacementExhausted(
            f"no valid position for {label} after {attempts} attempts",
            category=rule.category.value,
            attempts=attempts,
        )
        if self._logger and self._logger.enabled:
            self._logger.warning("Skipping %s", issue.message)
        return PlacementOutcome(None, attempts, issue)

    def _sample(
        self,
        rule: CategoryRule,
        anchor: Vector3,
        bounds: WorldBounds,
        orbit: Optional[OrbitRequest],
    ) -> Tuple[Vector3, Optional[int]]:
        height = anchor.y + rule.height_offset
        if orbit is not None and rule.orbit is not None:
            return self._sample_orbit(rule, orbit, height), None
        if rule.ring_layout is not None:
            pool = self._ring_pool(rule, anchor, bounds)
            if pool:
                pick = self._random.next_int(0, len(pool))
                ring_index, position = pool.pop(pick)
                return Vector3(position), ring_index
        secondary = self._secondary_pools.get(rule.category)
        if secondary:
            pick = self._random.next_int(0, len(secondary))
            x, z = secondary.pop(pick)
            return Vector3(x, height, z), None
        angle = self._random.angle()
        distance = self._random.uniform(rule.radius_min, rule.radius_max)
        candidate = Vector3(
            anchor.x + math.cos(angle) * distance,
            height,
            anchor.z + math.sin(angle) * distance,
        )
        return candidate, None

    def _sample_orbit(self, rule: CategoryRule, orbit: OrbitRequest, height: float) -> Vector3:
        config = rule.orbit
        distance = self._random.uniform(config.min_dist, config.max_dist)
        if config.placement_mode is OrbitPlacement.EVEN:
            count = max(1, orbit.count)
            degrees = 360.0 / count * orbit.index
            if config.angle_jitter > 0.0:
                degrees += self._random.uniform(-config.angle_jitter, config.angle_jitter)
        else:
            degrees = self._random.uniform(0.0, 360.0)
        radians = math.radians(degrees)
        return Vector3(
            orbit.center.x + math.cos(radians) * distance,
            height,
            orbit.center.z + math.sin(radians) * distance,
        )

    def _ring_pool(self, rule: CategoryRule, anchor: Vector3, bounds: WorldBounds) -> List[Tuple[int, Vector3]]:
        entry = self._ring_pools.get(id(rule))
        if entry is not None and entry[0] is rule:
            return entry[1]
        ring = rule.ring_layout
        pool: List[Tuple[int, Vector3]] = []
        count = ring.positions_on_ring
        for ring_index in range(count):
            angle = 2.0 * math.pi * ring_index / count
            position = Vector3(
                anchor.x + math.cos(angle) * ring.ring_radius,
                anchor.y + rule.height_offset,
                anchor.z + math.sin(angle) * ring.ring_radius,
            )
            if bounds.contains_point(position):
                pool.append((ring_index, position))
        self._ring_pools[id(rule)] = (rule, pool)
        return pool

    def _offer_secondary_ring(self, rule: CategoryRule, item: PlacedItem, bounds: WorldBounds) -> None:
        ring = rule.ring_layout
        if ring is None or ring.secondary_category is None or ring.secondary_count_per_primary <= 0:
            return
        pool = self._secondary_pools.setdefault(ring.secondary_category, [])
        count = ring.secondary_count_per_primary
        for slot in range(count):
            angle = 2.0 * math.pi * slot / count
            x = item.position.x + math.cos(angle) * ring.secondary_ring_radius
            z = item.position.z + math.sin(angle) * ring.secondary_ring_radius
            if bounds.minimum.x <= x <= bounds.maximum.x and bounds.minimum.z <= z <= bounds.maximum.z:
                pool.append((x, z))

    def _rotation(self, rule: CategoryRule, position: Vector3, center: Vector3) -> float:
        mode = rule.rotation_mode
        if mode is RotationMode.FACE_RANDOM:
            return self._random.uniform(0.0, 360.0)
        dx = center.x - position.x
        dz = center.z - position.z
        facing = math.degrees(math.atan2(dx, dz)) if abs(dx) + abs(dz) > 1e-6 else 0.0
        if mode is RotationMode.FACE_AWAY:
            facing += 180.0
        elif mode is RotationMode.ALIGN_WITH_RADIUS:
            facing += 90.0
        elif mode is RotationMode.USE_VARIATION:
            facing += self._random.uniform(-rule.rotation_variation, rule.rotation_variation)
        return facing % 360.0


__all__ = ["OrbitRequest", "PlacedItem", "PlacementEngine", "PlacementOutcome"]
