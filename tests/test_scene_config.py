import json
import logging

import pytest
from pygame.math import Vector3

from crimescene.assets.content import SceneConfig, load_default_config
from crimescene.engine.logger import DEFAULT_CHANNELS, GameLogger, LoggerConfig
from crimescene.world.collision import Aabb, CollisionIndex, WorldBounds
from crimescene.world.rules import (
    CategoryRule,
    EvidenceTemplate,
    RingLayout,
    SpawnCategory,
    default_rules,
)
from crimescene.world.toggles import CategoryToggleSet, LocationPreset, LocationTable


def _quiet_logger() -> GameLogger:
    channels = {name: False for name in DEFAULT_CHANNELS}
    return GameLogger(LoggerConfig(level=logging.CRITICAL, channels=channels))


def test_rule_validation_corrects_out_of_range_values() -> None:
    rule = CategoryRule(
        SpawnCategory.CHAIRS,
        count_min=-2,
        count_max=-5,
        radius_min=3.0,
        radius_max=1.0,
        spawn_probability=1.5,
        max_attempts=0,
        padding=-1.0,
        ring_layout=RingLayout(ring_radius=-1.0, positions_on_ring=4),
    )
    fixed, issues = rule.validated(_quiet_logger().channel("config"))
    assert (fixed.count_min, fixed.count_max) == (0, 0)
    assert (fixed.radius_min, fixed.radius_max) == (3.0, 3.0)
    assert fixed.spawn_probability == 1.0
    assert fixed.max_attempts == 1
    assert fixed.padding == 0.0
    assert fixed.ring_layout.ring_radius == 0.0
    fields = {issue.field for issue in issues}
    assert {"countMin", "countMax", "radiusMax", "spawnProbability", "maxAttempts", "padding", "ringLayout"} <= fields
    assert all(issue.category == "Chairs" for issue in issues)


def test_valid_rule_is_returned_unchanged() -> None:
    rule = default_rules()[0]
    fixed, issues = rule.validated()
    assert fixed is rule
    assert issues == []


def test_rule_from_dict_defaults_and_category_parsing() -> None:
    rule = CategoryRule.from_dict({"category": "chairs", "countMin": 2, "templates": "Stool"})
    assert rule.category is SpawnCategory.CHAIRS
    assert rule.count_max == 2
    assert rule.base_names() == ("Stool",)
    assert SpawnCategory.parse("bar_objects") is SpawnCategory.BAR_OBJECTS
    with pytest.raises(ValueError):
        SpawnCategory.parse("Spaceships")


def test_evidence_template_quantity_is_clamped() -> None:
    assert EvidenceTemplate("Rope", max_quantity=50).max_quantity == 30
    assert EvidenceTemplate("Rope", max_quantity=-3).max_quantity == 0
    assert EvidenceTemplate("Rope", spawn_probability=2.0).spawn_probability == 1.0


def test_collision_boxes_touching_faces_do_not_intersect() -> None:
    left = Aabb.from_center(Vector3(0.0, 0.5, 0.0), Vector3(1.0, 1.0, 1.0))
    right = Aabb.from_center(Vector3(1.0, 0.5, 0.0), Vector3(1.0, 1.0, 1.0))
    assert not left.intersects(right)
    assert left.inflated(0.1).intersects(right)
    index = CollisionIndex()
    table = object()
    index.insert(table, SpawnCategory.TABLES, left)
    glass = Aabb.from_center(Vector3(0.0, 0.9, 0.0), Vector3(0.2, 0.5, 0.2))
    assert not index.intersects(glass, SpawnCategory.GLASSES)
    assert index.intersects(glass, SpawnCategory.CHAIRS)
    assert not index.intersects(glass, SpawnCategory.CHAIRS, ignore=(table,))


def test_world_bounds_normalise_and_clamp() -> None:
    bounds = WorldBounds(Vector3(5.0, 2.0, 5.0), Vector3(-5.0, 0.0, -5.0))
    assert bounds.minimum == Vector3(-5.0, 0.0, -5.0)
    assert bounds.clamp_center(Vector3(9.0, 1.0, -9.0), Vector3()) == Vector3(5.0, 1.0, -5.0)
    assert bounds.clamp_center(Vector3(9.0, 0.0, 0.0), Vector3(1.0, 0.5, 1.0)) == Vector3(4.5, 0.25, 0.0)
    # Wider than the bounds on y: centred on that axis.
    assert bounds.clamp_center(Vector3(0.0, 0.0, 0.0), Vector3(1.0, 4.0, 1.0)).y == 1.0
    assert bounds.contains_box(Aabb.from_center(Vector3(0.0, 1.0, 0.0), Vector3(1.0, 1.0, 1.0)))
    assert not bounds.contains_box(Aabb.from_center(Vector3(4.8, 1.0, 0.0), Vector3(1.0, 1.0, 1.0)))


def test_evidence_category_cannot_be_disabled() -> None:
    toggles = CategoryToggleSet()
    assert toggles.set_enabled(SpawnCategory.EVIDENCE, False)
    toggles.disable_all()
    assert toggles.enabled_categories() == [SpawnCategory.EVIDENCE]
    assert toggles.toggle(SpawnCategory.TABLES)
    assert toggles.is_enabled(SpawnCategory.TABLES)


def test_presets_and_aliases() -> None:
    toggles = CategoryToggleSet()
    ok, message = toggles.enable_preset("Living_Room")
    assert ok
    assert "home" in message
    assert set(toggles.enabled_categories()) == {
        SpawnCategory.FURNITURE,
        SpawnCategory.DECORATIONS,
        SpawnCategory.TABLES,
        SpawnCategory.EVIDENCE,
    }
    ok, message = toggles.enable_preset("castle")
    assert not ok
    assert message == "Unknown preset 'castle'"
    assert SpawnCategory.FURNITURE in toggles.enabled_categories()


def test_location_probabilities_are_normalised() -> None:
    table = LocationTable([LocationPreset("Bar", "bar", 2.0), LocationPreset("Office", "office", 6.0)])
    assert [loc.probability for loc in table.locations] == pytest.approx([0.25, 0.75])
    flat = LocationTable([LocationPreset("Bar", "bar", 0.0), LocationPreset("Home", "home", 0.0)])
    assert [loc.probability for loc in flat.locations] == pytest.approx([0.5, 0.5])
    assert len(LocationTable.from_list([{"probability": 1.0}]).locations) == 3


def test_config_load_falls_back_to_defaults(tmp_path) -> None:
    missing = SceneConfig.load(tmp_path / "missing.json")
    assert len(missing.rules) == len(default_rules())
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    config = SceneConfig.load(broken, _quiet_logger().channel("config"))
    assert config.settings.seed is None
    assert len(config.rules) == len(default_rules())


def test_config_skips_malformed_rules(tmp_path) -> None:
    path = tmp_path / "scene.json"
    path.write_text(
        json.dumps(
            {
                "settings": {"seed": 9, "detectionRadius": 4.0},
                "rules": [
                    {"category": "Tables", "countMin": 2, "countMax": 1},
                    {"name": "no category"},
                    {"category": "Spaceships"},
                ],
                "categories": {"Chairs": False, "Evidence": False},
            }
        )
    )
    config = SceneConfig.load(path)
    assert config.settings.seed == 9
    assert config.settings.detection_radius == 4.0
    assert len(config.rules) == 1
    assert config.rules[0].count_max == 2
    assert not config.toggles.is_enabled(SpawnCategory.CHAIRS)
    assert config.toggles.is_enabled(SpawnCategory.EVIDENCE)


def test_config_save_and_reload(tmp_path) -> None:
    config = SceneConfig()
    config.settings.seed = 5
    config.settings.anchor = Vector3(1.0, 0.0, -2.0)
    config.toggles.set_enabled(SpawnCategory.DECORATIONS, False)
    path = tmp_path / "saved.json"
    config.save(path)
    loaded = SceneConfig.load(path)
    assert loaded.settings.seed == 5
    assert loaded.settings.anchor == Vector3(1.0, 0.0, -2.0)
    assert [rule.to_dict() for rule in loaded.rules] == [rule.to_dict() for rule in config.rules]
    assert loaded.toggles == config.toggles
    assert [t.name for t in loaded.evidence] == [t.name for t in config.evidence]


def test_randomize_seed_round_trips() -> None:
    config = SceneConfig()
    data = config.to_dict()
    assert data["settings"]["seed"] == "randomize"
    assert SceneConfig.from_dict(data).settings.seed is None


def test_bundled_scene_config_loads() -> None:
    config = load_default_config()
    assert config.settings.seed == 1234
    assert config.settings.detection_radius == 12.0
    assert config.rules
    assert config.rules[0].ring_layout is not None
    assert any(rule.orbit is not None for rule in config.rules)
    assert not config.toggles.is_enabled(SpawnCategory.FURNITURE)


def test_logger_channels_from_settings(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"logLevel": "debug", "logChannels": {"placement": True, "monitor": False}}))
    config = LoggerConfig.from_settings(path)
    assert config.level == logging.DEBUG
    assert config.channels["placement"]
    assert not config.channels["monitor"]
    assert config.channels["generation"] == DEFAULT_CHANNELS["generation"]
    assert config.channels["existing"]
    logger = GameLogger(config)
    assert not logger.channel("unknown").enabled
    assert logger.channel("existing").enabled
    defaults = LoggerConfig()
    defaults.channels["scanner"] = True
    assert not DEFAULT_CHANNELS["scanner"]
    assert not LoggerConfig().channels["scanner"]


def test_toggle_status_summary() -> None:
    toggles = CategoryToggleSet()
    toggles.enable_only([SpawnCategory.TABLES])
    summary = toggles.status_summary()
    assert summary.splitlines()[0] == "Enabled (2): Tables, Evidence"
    assert "Chairs" in summary.splitlines()[1]
    toggles.enable_all()
    assert toggles.status_summary().splitlines()[1] == "Disabled (0): none"
