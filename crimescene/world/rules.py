"""Per-category spawn rules and their validation."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pygame.math import Vector3

from crimescene.engine.logger import ChannelLogger
from crimescene.world.errors import InvalidRuleConfiguration

MAX_EVIDENCE_QUANTITY = 30
DEFAULT_MAX_ATTEMPTS = 100
DEFAULT_PADDING = 0.1


class SpawnCategory(Enum):
    TABLES = "Tables"
    BAR_OBJECTS = "BarObjects"
    CHAIRS = "Chairs"
    BOTTLES = "Bottles"
    GLASSES = "Glasses"
    FURNITURE = "Furniture"
    DECORATIONS = "Decorations"
    CUSTOM = "Custom"
    EVIDENCE = "Evidence"

    @classmethod
    def parse(cls, value: object) -> "SpawnCategory":
        if isinstance(value, SpawnCategory):
            return value
        text = str(value).strip()
        for category in cls:
            if text.lower() in (category.value.lower(), category.name.lower()):
                return category
        raise ValueError(f"Unknown spawn category {value!r}")


class RotationMode(Enum):
    FACE_CENTER = "faceCenter"
    FACE_AWAY = "faceAway"
    FACE_RANDOM = "faceRandom"
    ALIGN_WITH_RADIUS = "alignWithRadius"
    USE_VARIATION = "useVariation"


class OrbitPlacement(Enum):
    RANDOM = "random"
    EVEN = "even"


class TargetMode(Enum):
    CATEGORY = "category"
    INSTANCE = "instance"
    NEAREST = "nearest"


def _vec(values: Sequence[float]) -> Vector3:
    return Vector3(float(values[0]), float(values[1]), float(values[2]))


def _vec_list(vector: Vector3) -> List[float]:
    return [vector.x, vector.y, vector.z]


@dataclass(frozen=True)
class TargetSelector:
    mode: TargetMode = TargetMode.CATEGORY
    category: Optional[SpawnCategory] = None
    instance_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "TargetSelector":
        category = data.get("category")
        return cls(
            mode=TargetMode(data.get("mode", "category")),
            category=SpawnCategory.parse(category) if category else None,
            instance_name=str(data.get("instance", "")),
        )

    def to_dict(self) -> Dict:
        return {
            "mode": self.mode.value,
            "category": self.category.value if self.category else None,
            "instance": self.instance_name,
        }


@dataclass(frozen=True)
class RingLayout:
    ring_radius: float
    positions_on_ring: int
    secondary_ring_radius: float = 0.0
    secondary_count_per_primary: int = 0
    secondary_category: Optional[SpawnCategory] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "RingLayout":
        secondary = data.get("secondaryCategory")
        return cls(
            ring_radius=float(data.get("ringRadius", 4.0)),
            positions_on_ring=int(data.get("positionsOnRing", 6)),
            secondary_ring_radius=float(data.get("secondaryRingRadius", 0.0)),
            secondary_count_per_primary=int(data.get("secondaryCountPerPrimary", 0)),
            secondary_category=SpawnCategory.parse(secondary) if secondary else None,
        )

    def to_dict(self) -> Dict:
        return {
            "ringRadius": self.ring_radius,
            "positionsOnRing": self.positions_on_ring,
            "secondaryRingRadius": self.secondary_ring_radius,
            "secondaryCountPerPrimary": self.secondary_count_per_primary,
            "secondaryCategory": self.secondary_category.value if self.secondary_category else None,
        }


@dataclass(frozen=True)
class OrbitConfig:
    target: TargetSelector
    min_dist: float = 0.5
    max_dist: float = 1.5
    count_min: int = 1
    count_max: int = 3
    angle_jitter: float = 15.0
    placement_mode: OrbitPlacement = OrbitPlacement.RANDOM
    can_overlap_with_target: bool = True

    @classmethod
    def from_dict(cls, data: Dict) -> "OrbitConfig":
        return cls(
            target=TargetSelector.from_dict(data.get("target", {})),
            min_dist=float(data.get("minDist", 0.5)),
            max_dist=float(data.get("maxDist", 1.5)),
            count_min=int(data.get("countMin", 1)),
            count_max=int(data.get("countMax", 3)),
            angle_jitter=float(data.get("angleJitter", 15.0)),
            placement_mode=OrbitPlacement(data.get("placementMode", "random")),
            can_overlap_with_target=bool(data.get("canOverlapWithTarget", True)),
        )

    def to_dict(self) -> Dict:
        return {
            "target": self.target.to_dict(),
            "minDist": self.min_dist,
            "maxDist": self.max_dist,
            "countMin": self.count_min,
            "countMax": self.count_max,
            "angleJitter": self.angle_jitter,
            "placementMode": self.placement_mode.value,
            "canOverlapWithTarget": self.can_overlap_with_target,
        }


@dataclass(frozen=True)
class CategoryRule:
    category: SpawnCategory
    name: str = ""
    enabled: bool = True
    count_min: int = 1
    count_max: int = 1
    spawn_probability: float = 1.0
    radius_min: float = 1.0
    radius_max: float = 3.0
    height_offset: float = 0.0
    footprint: Vector3 = field(default_factory=lambda: Vector3(1.0, 1.0, 1.0))
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    padding: float = DEFAULT_PADDING
    essential: bool = False
    templates: Tuple[str, ...] = ()
    ring_layout: Optional[RingLayout] = None
    orbit: Optional[OrbitConfig] = None
    rotation_mode: RotationMode = RotationMode.FACE_RANDOM
    rotation_variation: float = 15.0

    @property
    def label(self) -> str:
        return self.name or self.category.value

    @property
    def evidence_bearing(self) -> bool:
        return self.category is SpawnCategory.EVIDENCE

    def base_names(self) -> Tuple[str, ...]:
        if self.templates:
            return self.templates
        return (self.name or self.category.value,)

    @classmethod
    def from_dict(cls, data: Dict) -> "CategoryRule":
        ring = data.get("ringLayout")
        orbit = data.get("orbit")
        templates = data.get("templates", [])
        if isinstance(templates, str):
            templates = [templates]
        return cls(
            category=SpawnCategory.parse(data["category"]),
            name=str(data.get("name", "")),
            enabled=bool(data.get("enabled", True)),
            count_min=int(data.get("countMin", 1)),
            count_max=int(data.get("countMax", data.get("countMin", 1))),
            spawn_probability=float(data.get("spawnProbability", 1.0)),
            radius_min=float(data.get("radiusMin", 1.0)),
            radius_max=float(data.get("radiusMax", data.get("radiusMin", 3.0))),
            height_offset=float(data.get("heightOffset", 0.0)),
            footprint=_vec(data.get("footprint", (1.0, 1.0, 1.0))),
            max_attempts=int(data.get("maxAttempts", DEFAULT_MAX_ATTEMPTS)),
            padding=float(data.get("padding", DEFAULT_PADDING)),
            essential=bool(data.get("essential", False)),
            templates=tuple(str(name) for name in templates),
            ring_layout=RingLayout.from_dict(ring) if ring else None,
            orbit=OrbitConfig.from_dict(orbit) if orbit else None,
            rotation_mode=RotationMode(data.get("rotationMode", RotationMode.FACE_RANDOM.value)),
            rotation_variation=float(data.get("rotationVariation", 15.0)),
        )

    def to_dict(self) -> Dict:
        return {
            "category": self.category.value,
            "name": self.name,
            "enabled": self.enabled,
            "countMin": self.count_min,
            "countMax": self.count_max,
            "spawnProbability": self.spawn_probability,
            "radiusMin": self.radius_min,
            "radiusMax": self.radius_max,
            "heightOffset": self.height_offset,
            "footprint": _vec_list(self.footprint),
            "maxAttempts": self.max_attempts,
            "padding": self.padding,
            "essential": self.essential,
            "templates": list(self.templates),
            "ringLayout": self.ring_layout.to_dict() if self.ring_layout else None,
            "orbit": self.orbit.to_dict() if self.orbit else None,
            "rotationMode": self.rotation_mode.value,
            "rotationVariation": self.rotation_variation,
        }

    def validated(
        self, logger: Optional[ChannelLogger] = None
    ) -> Tuple["CategoryRule", List[InvalidRuleConfiguration]]:
        """Return a copy with out-of-range values corrected, plus what was corrected."""

        issues: List[InvalidRuleConfiguration] = []
        changes: Dict[str, object] = {}

        def note(field_name: str, message: str) -> None:
            issue = InvalidRuleConfiguration(message, category=self.category.value, field=field_name)
            issues.append(issue)
            if logger and logger.enabled:
                logger.warning("Rule %s: %s", self.label, message)

        count_min = self.count_min
        count_max = self.count_max
        if count_min < 0:
            note("countMin", f"countMin {count_min} clamped to 0")
            count_min = 0
        if count_max < count_min:
            note("countMax", f"countMax {count_max} raised to countMin {count_min}")
            count_max = count_min
        if (count_min, count_max) != (self.count_min, self.count_max):
            changes["count_min"] = count_min
            changes["count_max"] = count_max

        radius_min = self.radius_min
        radius_max = self.radius_max
        if radius_min < 0.0:
            note("radiusMin", f"radiusMin {radius_min:.2f} clamped to 0")
            radius_min = 0.0
        if radius_max < 0.0:
            note("radiusMax", f"radiusMax {radius_max:.2f} clamped to 0")
            radius_max = 0.0
        if radius_max < radius_min:
            note("radiusMax", f"radiusMax {radius_max:.2f} raised to radiusMin {radius_min:.2f}")
            radius_max = radius_min
        if (radius_min, radius_max) != (self.radius_min, self.radius_max):
            changes["radius_min"] = radius_min
            changes["radius_max"] = radius_max

        if not 0.0 <= self.spawn_probability <= 1.0:
            probability = min(1.0, max(0.0, self.spawn_probability))
            note("spawnProbability", f"spawnProbability {self.spawn_probability:.2f} clamped to {probability:.2f}")
            changes["spawn_probability"] = probability
        if self.max_attempts < 1:
            note("maxAttempts", f"maxAttempts {self.max_attempts} raised to 1")
            changes["max_attempts"] = 1
        if self.padding < 0.0:
            note("padding", f"padding {self.padding:.2f} clamped to 0")
            changes["padding"] = 0.0
        if min(self.footprint.x, self.footprint.y, self.footprint.z) < 0.0:
            note("footprint", "negative footprint components made positive")
            changes["footprint"] = Vector3(abs(self.footprint.x), abs(self.footprint.y), abs(self.footprint.z))

        if self.ring_layout is not None:
            ring = self.ring_layout
            fixed_ring = replace(
                ring,
                ring_radius=max(0.0, ring.ring_radius),
                positions_on_ring=max(0, ring.positions_on_ring),
                secondary_ring_radius=max(0.0, ring.secondary_ring_radius),
                secondary_count_per_primary=max(0, ring.secondary_count_per_primary),
            )
            if fixed_ring != ring:
                note("ringLayout", "negative ring layout values clamped to 0")
                changes["ring_layout"] = fixed_ring

        if self.orbit is not None:
            orbit = self.orbit
            min_dist = max(0.0, orbit.min_dist)
            max_dist = max(min_dist, orbit.max_dist)
            orbit_min = max(0, orbit.count_min)
            orbit_max = max(orbit_min, orbit.count_max)
            fixed_orbit = replace(
                orbit,
                min_dist=min_dist,
                max_dist=max_dist,
                count_min=orbit_min,
                count_max=orbit_max,
                angle_jitter=abs(orbit.angle_jitter),
            )
            if fixed_orbit != orbit:
                note("orbit", "orbit distances/counts corrected")
                changes["orbit"] = fixed_orbit

        if not changes:
            return self, issues
        return replace(self, **changes), issues


@dataclass(frozen=True)
class EvidenceTemplate:
    """Catalogue entry for one kind of evidence and how many may spawn."""

    name: str
    max_quantity: int = 1
    spawn_probability: float = 1.0
    essential: bool = False
    fingerprints: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_quantity", min(MAX_EVIDENCE_QUANTITY, max(0, int(self.max_quantity))))
        object.__setattr__(self, "spawn_probability", min(1.0, max(0.0, float(self.spawn_probability))))
        object.__setattr__(self, "fingerprints", max(0, int(self.fingerprints)))

    @classmethod
    def from_dict(cls, data: Dict) -> "EvidenceTemplate":
        return cls(
            name=str(data["name"]),
            max_quantity=int(data.get("maxQuantity", 1)),
            spawn_probability=float(data.get("spawnProbability", 1.0)),
            essential=bool(data.get("essential", False)),
            fingerprints=int(data.get("fingerprints", 0)),
        )

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "maxQuantity": self.max_quantity,
            "spawnProbability": self.spawn_probability,
            "essential": self.essential,
            "fingerprints": self.fingerprints,
        }


def _furniture(
    category: SpawnCategory,
    radius: Tuple[float, float],
    footprint: Tuple[float, float, float],
    count: Tuple[int, int],
    level: float = 0.0,
    template: str = "",
    **extra,
) -> CategoryRule:
    size = Vector3(*footprint)
    return CategoryRule(
        category=category,
        count_min=count[0],
        count_max=count[1],
        radius_min=radius[0],
        radius_max=radius[1],
        # Footprints are centred on the spawn point, so rest them on their level.
        height_offset=level + size.y * 0.5,
        footprint=size,
        templates=(template,) if template else (),
        **extra,
    )


def default_rules() -> List[CategoryRule]:
    """Built-in furniture catalogue in declared spawn order."""

    return [
        _furniture(
            SpawnCategory.TABLES,
            (2.0, 4.0),
            (2.0, 1.0, 2.0),
            (1, 3),
            template="Table",
            ring_layout=RingLayout(
                ring_radius=4.0,
                positions_on_ring=6,
                secondary_ring_radius=1.75,
                secondary_count_per_primary=4,
                secondary_category=SpawnCategory.CHAIRS,
            ),
            rotation_mode=RotationMode.FACE_CENTER,
        ),
        _furniture(SpawnCategory.BAR_OBJECTS, (1.0, 3.0), (3.0, 1.0, 1.0), (0, 2), template="BarCounter", rotation_mode=RotationMode.ALIGN_WITH_RADIUS),
        _furniture(SpawnCategory.CHAIRS, (3.0, 7.0), (1.0, 1.0, 1.0), (1, 4), template="Chair", rotation_mode=RotationMode.FACE_CENTER),
        _furniture(
            SpawnCategory.BOTTLES,
            (1.0, 6.0),
            (0.3, 1.0, 0.3),
            (2, 5),
            level=1.0,
            template="Bottle",
            spawn_probability=0.8,
            orbit=OrbitConfig(
                target=TargetSelector(TargetMode.CATEGORY, SpawnCategory.TABLES),
                min_dist=0.3,
                max_dist=0.8,
                count_min=1,
                count_max=2,
            ),
        ),
        _furniture(
            SpawnCategory.GLASSES,
            (1.0, 5.0),
            (0.2, 0.5, 0.2),
            (1, 4),
            level=1.0,
            template="Glass",
            orbit=OrbitConfig(
                target=TargetSelector(TargetMode.CATEGORY, SpawnCategory.TABLES),
                min_dist=0.8,
                max_dist=0.8,
                count_min=1,
                count_max=3,
                placement_mode=OrbitPlacement.EVEN,
            ),
        ),
        _furniture(SpawnCategory.FURNITURE, (4.0, 8.0), (1.5, 2.0, 1.5), (0, 2), template="Cabinet", rotation_mode=RotationMode.FACE_AWAY),
        _furniture(
            SpawnCategory.DECORATIONS,
            (2.0, 7.0),
            (0.5, 0.5, 0.5),
            (0, 3),
            template="Plant",
            spawn_probability=0.6,
            rotation_mode=RotationMode.USE_VARIATION,
        ),
    ]


def default_evidence_rule() -> CategoryRule:
    """Spatial rule used for the evidence catalogue; quantities come from the templates."""

    return CategoryRule(
        category=SpawnCategory.EVIDENCE,
        count_min=1,
        count_max=1,
        radius_min=0.5,
        radius_max=8.0,
        height_offset=0.25,
        footprint=Vector3(0.3, 0.5, 0.3),
        rotation_mode=RotationMode.FACE_RANDOM,
    )


def default_evidence() -> List[EvidenceTemplate]:
    return [
        EvidenceTemplate("Knife", max_quantity=1, essential=True, fingerprints=2),
        EvidenceTemplate("Bottle", max_quantity=3, spawn_probability=0.8),
        EvidenceTemplate("Glass", max_quantity=2, spawn_probability=0.7, fingerprints=1),
        EvidenceTemplate("Phone", max_quantity=1, spawn_probability=0.5),
    ]


__all__ = [
    "CategoryRule",
    "EvidenceTemplate",
    "MAX_EVIDENCE_QUANTITY",
    "OrbitConfig",
    "OrbitPlacement",
    "RingLayout",
    "RotationMode",
    "SpawnCategory",
    "TargetMode",
    "TargetSelector",
    "default_evidence",
    "default_evidence_rule",
    "default_rules",
]
