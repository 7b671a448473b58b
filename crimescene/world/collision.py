"""Axis-aligned volumes and the running index of placed footprints."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Dict, Iterable, List, Optional, Sequence

from pygame.math import Vector3

from crimescene.world.rules import SpawnCategory

# Categories allowed to overlap volumes of the listed categories (items on tables and shelves).
OVERLAP_EXEMPTIONS: Dict[SpawnCategory, frozenset] = {
    SpawnCategory.GLASSES: frozenset({SpawnCategory.TABLES, SpawnCategory.BAR_OBJECTS}),
    SpawnCategory.BOTTLES: frozenset({SpawnCategory.TABLES, SpawnCategory.BAR_OBJECTS}),
    SpawnCategory.DECORATIONS: frozenset({SpawnCategory.FURNITURE}),
}


def _vec(values: Sequence[float]) -> Vector3:
    return Vector3(float(values[0]), float(values[1]), float(values[2]))


@dataclass(frozen=True)
class Aabb:
    minimum: Vector3
    maximum: Vector3

    @classmethod
    def from_center(cls, center: Vector3, size: Vector3) -> "Aabb":
        half = Vector3(abs(size.x), abs(size.y), abs(size.z)) * 0.5
        return cls(Vector3(center) - half, Vector3(center) + half)

    def inflated(self, padding: float) -> "Aabb":
        if padding <= 0.0:
            return self
        pad = Vector3(padding, padding, padding)
        return Aabb(self.minimum - pad, self.maximum + pad)

    def intersects(self, other: "Aabb") -> bool:
        # Touching faces do not count as an intersection.
        return (
            self.minimum.x < other.maximum.x
            and self.maximum.x > other.minimum.x
            and self.minimum.y < other.maximum.y
            and self.maximum.y > other.minimum.y
            and self.minimum.z < other.maximum.z
            and self.maximum.z > other.minimum.z
        )

    def contains(self, other: "Aabb", epsilon: float = 1e-6) -> bool:
        return (
            other.minimum.x >= self.minimum.x - epsilon
            and other.minimum.y >= self.minimum.y - epsilon
            and other.minimum.z >= self.minimum.z - epsilon
            and other.maximum.x <= self.maximum.x + epsilon
            and other.maximum.y <= self.maximum.y + epsilon
            and other.maximum.z <= self.maximum.z + epsilon
        )

    def to_dict(self) -> Dict[str, List[float]]:
        return {
            "min": [round(self.minimum.x, 4), round(self.minimum.y, 4), round(self.minimum.z, 4)],
            "max": [round(self.maximum.x, 4), round(self.maximum.y, 4), round(self.maximum.z, 4)],
        }


@dataclass
class WorldBounds:
    """Inclusive box every placed item must stay inside."""

    minimum: Vector3
    maximum: Vector3

    def __post_init__(self) -> None:
        low = Vector3(
            min(self.minimum.x, self.maximum.x),
            min(self.minimum.y, self.maximum.y),
            min(self.minimum.z, self.maximum.z),
        )
        high = Vector3(
            max(self.minimum.x, self.maximum.x),
            max(self.minimum.y, self.maximum.y),
            max(self.minimum.z, self.maximum.z),
        )
        self.minimum = low
        self.maximum = high

    @classmethod
    def default(cls) -> "WorldBounds":
        return cls(Vector3(-10.0, 0.0, -10.0), Vector3(10.0, 5.0, 10.0))

    @classmethod
    def from_dict(cls, data: Dict) -> "WorldBounds":
        return cls(
            _vec(data.get("min", (-10.0, 0.0, -10.0))),
            _vec(data.get("max", (10.0, 5.0, 10.0))),
        )

    def to_dict(self) -> Dict[str, List[float]]:
        return {
            "min": [self.minimum.x, self.minimum.y, self.minimum.z],
            "max": [self.maximum.x, self.maximum.y, self.maximum.z],
        }

    def copy(self) -> "WorldBounds":
        return WorldBounds(Vector3(self.minimum), Vector3(self.maximum))

    def as_box(self) -> Aabb:
        return Aabb(Vector3(self.minimum), Vector3(self.maximum))

    def clamp_center(self, point: Vector3, size: Vector3) -> Vector3:
        """Clamp ``point`` so a box of ``size`` centred on it stays inside the bounds.

        An axis narrower than the box collapses to the bounds midpoint.
        """

        coords = []
        for axis in range(3):
            half = abs(size[axis]) * 0.5
            low = self.minimum[axis] + half
            high = self.maximum[axis] - half
            if low > high:
                coords.append((self.minimum[axis] + self.maximum[axis]) * 0.5)
            else:
                coords.append(min(max(point[axis], low), high))
        return Vector3(*coords)

    def contains_point(self, point: Vector3, epsilon: float = 1e-6) -> bool:
        return (
            self.minimum.x - epsilon <= point.x <= self.maximum.x + epsilon
            and self.minimum.y - epsilon <= point.y <= self.maximum.y + epsilon
            and self.minimum.z - epsilon <= point.z <= self.maximum.z + epsilon
        )

    def contains_box(self, box: Aabb) -> bool:
        return self.as_box().contains(box)


@dataclass(frozen=True)
class IndexedVolume:
    owner: object
    category: SpawnCategory
    box: Aabb


class CollisionIndex:
    """Ordered list of committed footprints for one generation cycle."""

    def __init__(self) -> None:
        self._volumes: List[IndexedVolume] = []

    def __len__(self) -> int:
        return len(self._volumes)

    def insert(self, owner: object, category: SpawnCategory, box: Aabb) -> None:
        self._volumes.append(IndexedVolume(owner, category, box))

    def remove_owner(self, owner: object) -> int:
        before = len(self._volumes)
        self._volumes = [volume for volume in self._volumes if volume.owner is not owner]
        return before - len(self._volumes)

    def clear(self) -> None:
        self._volumes = []

    def volumes(self) -> Iterable[IndexedVolume]:
        return list(self._volumes)

    def intersects(
        self,
        box: Aabb,
        category: Optional[SpawnCategory] = None,
        ignore: Collection[object] = (),
    ) -> bool:
        exempt = OVERLAP_EXEMPTIONS.get(category, frozenset()) if category is not None else frozenset()
        for volume in self._volumes:
            if any(volume.owner is owner for owner in ignore):
                continue
            if volume.category in exempt:
                continue
            if volume.box.intersects(box):
                return True
        return False


__all__ = ["Aabb", "CollisionIndex", "IndexedVolume", "OVERLAP_EXEMPTIONS", "WorldBounds"]
