"""Category enable flags, named presets and location selection."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from crimescene.engine.logger import ChannelLogger
from crimescene.engine.random_source import RandomSource
from crimescene.world.rules import SpawnCategory

PRESETS: Dict[str, Tuple[SpawnCategory, ...]] = {
    "bar": (
        SpawnCategory.TABLES,
        SpawnCategory.BAR_OBJECTS,
        SpawnCategory.CHAIRS,
        SpawnCategory.BOTTLES,
        SpawnCategory.GLASSES,
    ),
    "office": (SpawnCategory.TABLES, SpawnCategory.CHAIRS, SpawnCategory.FURNITURE),
    "home": (SpawnCategory.FURNITURE, SpawnCategory.DECORATIONS, SpawnCategory.TABLES),
    "minimal": (SpawnCategory.TABLES,),
    "restaurant": (
        SpawnCategory.TABLES,
        SpawnCategory.CHAIRS,
        SpawnCategory.GLASSES,
        SpawnCategory.BOTTLES,
        SpawnCategory.DECORATIONS,
    ),
}
PRESET_ALIASES = {"living_room": "home", "livingroom": "home", "living room": "home"}


def _preset_key(name: str) -> str:
    key = name.strip().lower()
    return PRESET_ALIASES.get(key, key)


class CategoryToggleSet:
    """Per-category enable flags. Evidence can never be switched off."""

    ALWAYS_ENABLED = frozenset({SpawnCategory.EVIDENCE})

    def __init__(self, enabled: Optional[Iterable[SpawnCategory]] = None, logger: Optional[ChannelLogger] = None) -> None:
        self._logger = logger
        if enabled is None:
            self._flags = {category: True for category in SpawnCategory}
        else:
            chosen = set(enabled)
            self._flags = {category: category in chosen for category in SpawnCategory}
        for category in self.ALWAYS_ENABLED:
            self._flags[category] = True

    @classmethod
    def from_dict(cls, data: Dict[str, bool], logger: Optional[ChannelLogger] = None) -> "CategoryToggleSet":
        toggles = cls(logger=logger)
        for key, value in data.items():
            try:
                category = SpawnCategory.parse(key)
            except ValueError:
                continue
            toggles.set_enabled(category, bool(value))
        return toggles

    def to_dict(self) -> Dict[str, bool]:
        return {category.value: enabled for category, enabled in self._flags.items()}

    def copy(self) -> "CategoryToggleSet":
        return CategoryToggleSet(self.enabled_categories(), logger=self._logger)

    def is_enabled(self, category: SpawnCategory) -> bool:
        return self._flags.get(category, False)

    def set_enabled(self, category: SpawnCategory, enabled: bool) -> bool:
        if category in self.ALWAYS_ENABLED:
            return True
        self._flags[category] = enabled
        return enabled

    def toggle(self, category: SpawnCategory) -> bool:
        enabled = self.set_enabled(category, not self.is_enabled(category))
        if self._logger and self._logger.enabled:
            self._logger.info("%s %s", category.value, "enabled" if enabled else "disabled")
        return enabled

    def enable_all(self) -> None:
        for category in self._flags:
            self._flags[category] = True

    def disable_all(self) -> None:
        for category in self._flags:
            self._flags[category] = category in self.ALWAYS_ENABLED

    def enable_only(self, categories: Iterable[SpawnCategory]) -> None:
        chosen = set(categories)
        for category in self._flags:
            self._flags[category] = category in chosen or category in self.ALWAYS_ENABLED

    def enable_preset(self, name: str) -> tuple[bool, str]:
        key = _preset_key(name)
        categories = PRESETS.get(key)
        if categories is None:
            return False, f"Unknown preset '{name}'"
        self.enable_only(categories)
        message = f"Preset '{key}' enabled: {', '.join(category.value for category in categories)}"
        if self._logger and self._logger.enabled:
            self._logger.info(message)
        return True, message

    def enabled_categories(self) -> List[SpawnCategory]:
        return [category for category in SpawnCategory if self._flags.get(category, False)]

    def status_summary(self) -> str:
        enabled = [category.value for category in SpawnCategory if self._flags.get(category)]
        disabled = [category.value for category in SpawnCategory if not self._flags.get(category)]
        lines = [f"Enabled ({len(enabled)}): {', '.join(enabled) or 'none'}"]
        lines.append(f"Disabled ({len(disabled)}): {', '.join(disabled) or 'none'}")
        return "\n".join(lines)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategoryToggleSet):
            return NotImplemented
        return self._flags == other._flags


@dataclass(frozen=True)
class LocationPreset:
    name: str
    preset: str
    probability: float


class LocationTable:
    """Weighted scene locations; probabilities are normalised on construction."""

    def __init__(self, locations: Sequence[LocationPreset]) -> None:
        total = sum(max(0.0, location.probability) for location in locations)
        if total <= 0.0:
            share = 1.0 / len(locations) if locations else 0.0
            self._locations = [LocationPreset(loc.name, loc.preset, share) for loc in locations]
        else:
            self._locations = [
                LocationPreset(loc.name, loc.preset, max(0.0, loc.probability) / total) for loc in locations
            ]

    @classmethod
    def default(cls) -> "LocationTable":
        return cls(
            [
                LocationPreset("Bar", "bar", 0.33),
                LocationPreset("Office", "office", 0.33),
                LocationPreset("Home", "home", 0.34),
            ]
        )

    @classmethod
    def from_list(cls, data: Sequence[Dict]) -> "LocationTable":
        locations: List[LocationPreset] = []
        for entry in data:
            try:
                locations.append(
                    LocationPreset(
                        name=str(entry["name"]),
                        preset=str(entry.get("preset", entry["name"])).lower(),
                        probability=float(entry.get("probability", 1.0)),
                    )
                )
            except (KeyError, TypeError, ValueError):
                continue
        if not locations:
            return cls.default()
        return cls(locations)

    def to_list(self) -> List[Dict]:
        return [
            {"name": loc.name, "preset": loc.preset, "probability": round(loc.probability, 6)}
            for loc in self._locations
        ]

    @property
    def locations(self) -> List[LocationPreset]:
        return list(self._locations)

    def choose(self, random: RandomSource) -> Optional[LocationPreset]:
        if not self._locations:
            return None
        index = random.pick_weighted([loc.probability for loc in self._locations])
        return self._locations[index]


__all__ = ["CategoryToggleSet", "LocationPreset", "LocationTable", "PRESETS"]
