"""Scene configuration loading and saving."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pygame.math import Vector3

from crimescene.engine.logger import ChannelLogger
from crimescene.world.collision import WorldBounds
from crimescene.world.existing import DEFAULT_MANAGED_NAMES, DEFAULT_MANAGED_TAGS
from crimescene.world.rules import (
    CategoryRule,
    EvidenceTemplate,
    default_evidence,
    default_evidence_rule,
    default_rules,
)
from crimescene.world.toggles import CategoryToggleSet, LocationTable

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_FALLBACK_EVIDENCE = ("Bottle 1", "Bottle 2", "Bottle 3", "Glass", "Knife")


def _vec(values: Sequence[float]) -> Vector3:
    return Vector3(float(values[0]), float(values[1]), float(values[2]))


@dataclass
class SceneSettings:
    """Timing, seeding and tracking options for one scene."""

    seed: Optional[int] = None
    anchor: Vector3 = field(default_factory=Vector3)
    bounds: WorldBounds = field(default_factory=WorldBounds.default)
    update_check_interval: float = 0.2
    debounce_delay: float = 0.1
    notification_delay: float = 0.2
    auto_regenerate_on_change: bool = True
    auto_generate: bool = False
    auto_generate_interval: float = 30.0
    random_location: bool = False
    detection_radius: float = 100.0
    scan_interval: float = 0.2
    full_rescan_every: int = 10
    track_fingerprints: bool = True
    use_marker_identification: bool = True
    fingerprint_tag: str = "Fingerprint"
    fingerprint_layer: str = "UV"
    mystery_mode: bool = True
    exclude_fingerprints_from_list: bool = False
    fallback_evidence: List[str] = field(default_factory=lambda: list(DEFAULT_FALLBACK_EVIDENCE))
    despawn_unselected_objects: bool = True
    hide_instead_of_destroy: bool = True
    managed_tags: List[str] = field(default_factory=lambda: list(DEFAULT_MANAGED_TAGS))
    managed_names: List[str] = field(default_factory=lambda: list(DEFAULT_MANAGED_NAMES))

    @classmethod
    def from_dict(cls, data: Dict) -> "SceneSettings":
        seed = data.get("seed")
        return cls(
            seed=int(seed) if seed is not None and seed != "randomize" else None,
            anchor=_vec(data.get("anchor", (0.0, 0.0, 0.0))),
            bounds=WorldBounds.from_dict(data.get("bounds", {})),
            update_check_interval=float(data.get("updateCheckInterval", 0.2)),
            debounce_delay=float(data.get("debounceDelay", 0.1)),
            notification_delay=float(data.get("notificationDelay", 0.2)),
            auto_regenerate_on_change=bool(data.get("autoRegenerateOnChange", True)),
            auto_generate=bool(data.get("autoGenerate", False)),
            auto_generate_interval=float(data.get("autoGenerateInterval", 30.0)),
            random_location=bool(data.get("randomLocation", False)),
            detection_radius=float(data.get("detectionRadius", 100.0)),
            scan_interval=float(data.get("scanInterval", 0.2)),
            full_rescan_every=int(data.get("fullRescanEvery", 10)),
            track_fingerprints=bool(data.get("trackFingerprints", True)),
            use_marker_identification=bool(data.get("useMarkerIdentification", True)),
            fingerprint_tag=str(data.get("fingerprintTag", "Fingerprint")),
            fingerprint_layer=str(data.get("fingerprintLayer", "UV")),
            mystery_mode=bool(data.get("mysteryMode", True)),
            exclude_fingerprints_from_list=bool(data.get("excludeFingerprintsFromList", False)),
            fallback_evidence=[str(name) for name in data.get("fallbackEvidence", DEFAULT_FALLBACK_EVIDENCE)],
            despawn_unselected_objects=bool(data.get("despawnUnselectedObjects", True)),
            hide_instead_of_destroy=bool(data.get("hideInsteadOfDestroy", True)),
            managed_tags=[str(tag) for tag in data.get("managedTags", DEFAULT_MANAGED_TAGS)],
            managed_names=[str(name) for name in data.get("managedNames", DEFAULT_MANAGED_NAMES)],
        )

    def to_dict(self) -> Dict:
        return {
            "seed": self.seed if self.seed is not None else "randomize",
            "anchor": [self.anchor.x, self.anchor.y, self.anchor.z],
            "bounds": self.bounds.to_dict(),
            "updateCheckInterval": self.update_check_interval,
            "debounceDelay": self.debounce_delay,
            "notificationDelay": self.notification_delay,
            "autoRegenerateOnChange": self.auto_regenerate_on_change,
            "autoGenerate": self.auto_generate,
            "autoGenerateInterval": self.auto_generate_interval,
            "randomLocation": self.random_location,
            "detectionRadius": self.detection_radius,
            "scanInterval": self.scan_interval,
            "fullRescanEvery": self.full_rescan_every,
            "trackFingerprints": self.track_fingerprints,
            "useMarkerIdentification": self.use_marker_identification,
            "fingerprintTag": self.fingerprint_tag,
            "fingerprintLayer": self.fingerprint_layer,
            "mysteryMode": self.mystery_mode,
            "excludeFingerprintsFromList": self.exclude_fingerprints_from_list,
            "fallbackEvidence": list(self.fallback_evidence),
            "despawnUnselectedObjects": self.despawn_unselected_objects,
            "hideInsteadOfDestroy": self.hide_instead_of_destroy,
            "managedTags": list(self.managed_tags),
            "managedNames": list(self.managed_names),
        }

    def copy(self) -> "SceneSettings":
        return replace(
            self,
            anchor=Vector3(self.anchor),
            bounds=self.bounds.copy(),
            fallback_evidence=list(self.fallback_evidence),
            managed_tags=list(self.managed_tags),
            managed_names=list(self.managed_names),
        )


@dataclass
class SceneConfig:
    """Editable configuration surface consumed by the generator and monitor."""

    settings: SceneSettings = field(default_factory=SceneSettings)
    rules: List[CategoryRule] = field(default_factory=default_rules)
    evidence_rule: CategoryRule = field(default_factory=default_evidence_rule)
    evidence: List[EvidenceTemplate] = field(default_factory=default_evidence)
    toggles: CategoryToggleSet = field(default_factory=CategoryToggleSet)
    locations: LocationTable = field(default_factory=LocationTable.default)

    @classmethod
    def from_dict(cls, data: Dict, logger: Optional[ChannelLogger] = None) -> "SceneConfig":
        config = cls(settings=SceneSettings.from_dict(data.get("settings", {})))
        if "rules" in data:
            config.rules = []
            for entry in data.get("rules", []):
                try:
                    rule = CategoryRule.from_dict(entry)
                except (KeyError, TypeError, ValueError, IndexError):
                    if logger and logger.enabled:
                        logger.warning("Skipping malformed rule entry: %s", entry)
                    continue
                rule, _ = rule.validated(logger)
                config.rules.append(rule)
        if "evidenceRule" in data:
            try:
                rule = CategoryRule.from_dict({"category": "Evidence", **data["evidenceRule"]})
            except (KeyError, TypeError, ValueError, IndexError):
                rule = default_evidence_rule()
            config.evidence_rule, _ = rule.validated(logger)
        if "evidence" in data:
            config.evidence = []
            for entry in data.get("evidence", []):
                try:
                    config.evidence.append(EvidenceTemplate.from_dict(entry))
                except (KeyError, TypeError, ValueError):
                    continue
        if "categories" in data:
            config.toggles = CategoryToggleSet.from_dict(data.get("categories", {}))
        if "locations" in data:
            config.locations = LocationTable.from_list(data.get("locations", []))
        return config

    def to_dict(self) -> Dict:
        return {
            "settings": self.settings.to_dict(),
            "rules": [rule.to_dict() for rule in self.rules],
            "evidenceRule": self.evidence_rule.to_dict(),
            "evidence": [template.to_dict() for template in self.evidence],
            "categories": self.toggles.to_dict(),
            "locations": self.locations.to_list(),
        }

    @classmethod
    def load(cls, path: Path, logger: Optional[ChannelLogger] = None) -> "SceneConfig":
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError:
            if logger and logger.enabled:
                logger.warning("Could not parse %s, using default scene config", path)
            return cls()
        if not isinstance(data, dict):
            return cls()
        return cls.from_dict(data, logger)

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2))

    def copy(self) -> "SceneConfig":
        return SceneConfig(
            settings=self.settings.copy(),
            rules=list(self.rules),
            evidence_rule=self.evidence_rule,
            evidence=list(self.evidence),
            toggles=self.toggles.copy(),
            locations=LocationTable(self.locations.locations),
        )


def load_default_config(logger: Optional[ChannelLogger] = None) -> SceneConfig:
    return SceneConfig.load(DATA_DIR / "bar_scene.json", logger)


__all__ = ["DATA_DIR", "SceneConfig", "SceneSettings", "load_default_config"]
