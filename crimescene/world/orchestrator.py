"""Sequencing of scene generation: clear, spawn, notify."""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Set, Tuple

from pygame.math import Vector3

from crimescene.assets.content import SceneConfig
from crimescene.engine.context import EngineContext
from crimescene.engine.scheduler import TimerHandle
from crimescene.evidence.ledger import EvidenceEntry
from crimescene.world.collision import CollisionIndex
from crimescene.world.existing import ExistingObjectManager, ManagedCounts
from crimescene.world.errors import MissingCollaborator, SceneIssue, StaleReference
from crimescene.world.monitor import ConfigChangeMonitor
from crimescene.world.placement import OrbitRequest, PlacedItem, PlacementEngine
from crimescene.world.rules import CategoryRule, EvidenceTemplate, SpawnCategory, TargetMode, TargetSelector
from crimescene.world.toggles import CategoryToggleSet, LocationPreset

FINGERPRINT_OFFSET = 0.12


class GenerationState(Enum):
    IDLE = auto()
    CLEARING = auto()
    SPAWNING = auto()
    NOTIFYING = auto()


@dataclass
class GenerationReport:
    success: bool
    message: str
    seed: int = 0
    placed: int = 0
    failed: int = 0
    skipped: int = 0
    evidence_ids: List[str] = field(default_factory=list)
    location: Optional[str] = None
    issues: List[SceneIssue] = field(default_factory=list)


@dataclass
class HierarchyStats:
    """Orbit parents and their children for the current layout."""

    parents: int
    children: int
    relations: Dict[str, int] = field(default_factory=dict)


@dataclass
class _CycleState:
    toggles: CategoryToggleSet
    report: GenerationReport
    entries: List[EvidenceEntry] = field(default_factory=list)
    counters: Dict[Tuple[SpawnCategory, str], int] = field(default_factory=dict)
    used_ids: Set[str] = field(default_factory=set)


class GenerationOrchestrator:
    """Owns placed items for one cycle and drives the generation state machine."""

    def __init__(self, context: EngineContext, config: Optional[SceneConfig] = None) -> None:
        self.context = context
        self.config = config or SceneConfig()
        self._logger = context.channel("generation")
        self._config_logger = context.channel("config")
        self._engine = PlacementEngine(context.random, context.channel("placement"), context.telemetry)
        self._index = CollisionIndex()
        self._placed: List[PlacedItem] = []
        self._evidence: List[Tuple[EvidenceEntry, PlacedItem]] = []
        self._relationships: Dict[str, List[str]] = {}
        self._state = GenerationState.IDLE
        self._notification: Optional[TimerHandle] = None
        self._auto_timer: Optional[TimerHandle] = None
        self._reported_missing: Set[str] = set()
        settings = self.config.settings
        self.existing = ExistingObjectManager(context, settings.managed_tags, settings.managed_names)
        self.monitor = ConfigChangeMonitor(
            lambda: self.config,
            self.generate,
            context.scheduler,
            context.channel("monitor"),
            poll_interval=settings.update_check_interval,
            debounce_delay=settings.debounce_delay,
        )
        self.location: Optional[LocationPreset] = None
        self.last_report: Optional[GenerationReport] = None
        self.generation_count = 0
        self.notifications = 0

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def collision_index(self) -> CollisionIndex:
        return self._index

    @property
    def notification_pending(self) -> bool:
        return self._notification is not None and self._notification.pending

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Begin live monitoring and optional auto-generation."""

        settings = self.config.settings
        if settings.auto_regenerate_on_change:
            self.monitor.start()
        if settings.auto_generate and self._auto_timer is None:
            self._auto_timer = self.context.scheduler.call_every(
                max(1.0, settings.auto_generate_interval), self.regenerate_with_new_seed
            )

    def stop(self) -> None:
        self.monitor.stop()
        if self._auto_timer is not None:
            self._auto_timer.cancel()
            self._auto_timer = None
        self._cancel_notification()

    # -- manual triggers -----------------------------------------------------

    def generate(self) -> GenerationReport:
        if self._state is not GenerationState.IDLE:
            return GenerationReport(False, f"Generation already {self._state.name.lower()}")
        started = time.perf_counter()
        self.context.telemetry.begin_cycle()

        self._state = GenerationState.CLEARING
        self._clear_scene()

        self._state = GenerationState.SPAWNING
        random = self.context.random
        random.set_seed(self.config.settings.seed)
        self._engine.begin_cycle()
        toggles = self.config.toggles.copy()
        self.location = None
        if self.config.settings.random_location:
            self.location = self.config.locations.choose(random)
            if self.location is not None:
                toggles.enable_preset(self.location.preset)
        cycle = _CycleState(
            toggles=toggles,
            report=GenerationReport(
                True,
                "",
                seed=random.current_seed,
                location=self.location.name if self.location else None,
            ),
        )
        for rule in self.config.rules:
            rule, issues = rule.validated(self._config_logger)
            cycle.report.issues.extend(issues)
            if not rule.enabled or not toggles.is_enabled(rule.category):
                continue
            if rule.orbit is not None:
                self._spawn_orbit_rule(rule, cycle)
            else:
                self._spawn_rule(rule, cycle)
        self._spawn_evidence_catalogue(cycle)
        self.context.ledger.rebuild(cycle.entries)
        self.manage_existing_objects(toggles)

        self._state = GenerationState.NOTIFYING
        self._schedule_notification()
        self._state = GenerationState.IDLE

        self.generation_count += 1
        self.context.telemetry.add_duration((time.perf_counter() - started) * 1000.0)
        report = cycle.report
        report.placed = len(self._placed)
        report.evidence_ids = [entry.unique_id for entry, _ in self._evidence]
        report.message = (
            f"Generated {report.placed} objects ({len(report.evidence_ids)} evidence) with seed {report.seed}"
        )
        if report.location:
            report.message += f" at {report.location}"
        if self._logger.enabled:
            self._logger.info(report.message)
            if report.failed:
                self._logger.warning("%d placement(s) skipped after exhausting attempts", report.failed)
        self.last_report = report
        self.monitor.take_snapshot()
        return report

    def regenerate_with_new_seed(self) -> GenerationReport:
        seed = self.context.random.randomize_seed()
        self.config.settings.seed = seed
        return self.generate()

    def set_seed(self, seed: Optional[int]) -> tuple[bool, str]:
        if seed is not None and seed < 0:
            return False, f"Seed must be non-negative, got {seed}"
        self.config.settings.seed = seed
        self.context.random.set_seed(seed)
        report = self.generate()
        if not report.success:
            return False, report.message
        return True, f"Seed set to {seed if seed is not None else 'randomize'}"

    def clear(self) -> tuple[bool, str]:
        if self._state is not GenerationState.IDLE:
            return False, f"Generation already {self._state.name.lower()}"
        removed = len(self._placed)
        self._state = GenerationState.CLEARING
        self._clear_scene()
        self.context.ledger.rebuild()
        self._state = GenerationState.NOTIFYING
        self._schedule_notification()
        self._state = GenerationState.IDLE
        return True, f"Cleared {removed} objects"

    def toggle_category(self, category: SpawnCategory) -> tuple[bool, str]:
        if category in CategoryToggleSet.ALWAYS_ENABLED:
            return False, f"{category.value} cannot be disabled"
        enabled = self.config.toggles.toggle(category)
        self.manage_existing_objects()
        return True, f"{category.value} {'enabled' if enabled else 'disabled'}"

    def enable_preset(self, name: str) -> tuple[bool, str]:
        ok, message = self.config.toggles.enable_preset(name)
        if ok:
            self.manage_existing_objects()
        return ok, message

    # -- existing scene objects ----------------------------------------------

    def register_existing_objects(self) -> tuple[bool, str]:
        """Take hand-placed objects under toggle control.

        Objects this orchestrator spawned, and their children, are never
        registered. The current toggles are applied straight away.
        """

        if self.context.scene is None:
            self._report_missing("scene", "no scene collaborator; existing objects are not managed")
            return False, "No scene to scan for existing objects"
        settings = self.config.settings
        self.existing.managed_tags = tuple(settings.managed_tags)
        self.existing.managed_names = tuple(settings.managed_names)
        owned = [item.identity for item in self._placed if item.identity is not None]
        count = self.existing.register(owned)
        self.manage_existing_objects()
        return True, f"Registered {count} existing objects"

    def manage_existing_objects(self, toggles: Optional[CategoryToggleSet] = None) -> ManagedCounts:
        settings = self.config.settings
        if not settings.despawn_unselected_objects:
            return ManagedCounts(0, 0, 0)
        if toggles is None:
            toggles = self.config.toggles
        return self.existing.apply(toggles, settings.hide_instead_of_destroy)

    # -- queries -------------------------------------------------------------

    def placed_items(self) -> List[PlacedItem]:
        self.prune_stale()
        return list(self._placed)

    def spawned_count(self) -> int:
        return len(self.placed_items())

    def evidence_names(self) -> List[str]:
        self.prune_stale()
        return [entry.display_name for entry, _ in self._evidence]

    def evidence_handles(self) -> List[object]:
        self.prune_stale()
        return [item.identity for _, item in self._evidence]

    def relationships(self) -> Dict[str, List[str]]:
        return {target: list(children) for target, children in self._relationships.items()}

    def hierarchy_stats(self) -> HierarchyStats:
        relations = {target: len(children) for target, children in self._relationships.items()}
        return HierarchyStats(len(relations), sum(relations.values()), relations)

    def log_hierarchy_statistics(self) -> HierarchyStats:
        stats = self.hierarchy_stats()
        if self._logger.enabled:
            self._logger.info("Hierarchy: %d parents, %d children", stats.parents, stats.children)
            for target, count in stats.relations.items():
                self._logger.info("  %s has %d children", target, count)
        return stats

    def prune_stale(self) -> List[StaleReference]:
        scene = self.context.scene
        if scene is None:
            return []
        stale: List[StaleReference] = []
        kept: List[PlacedItem] = []
        for item in self._placed:
            if item.identity is not None and not scene.exists(item.identity):
                stale.append(StaleReference(f"{item.name} was destroyed externally", handle=item.identity))
                self._index.remove_owner(item)
                continue
            kept.append(item)
        if not stale:
            return stale
        self._placed = kept
        live = {id(item) for item in kept}
        dropped = [entry for entry, item in self._evidence if id(item) not in live]
        self._evidence = [(entry, item) for entry, item in self._evidence if id(item) in live]
        for entry in dropped:
            self.context.ledger.remove(entry.unique_id)
        if self._logger.enabled:
            for issue in stale:
                self._logger.info("Pruned %s", issue)
        return stale

    # -- internals -----------------------------------------------------------

    def _clear_scene(self) -> None:
        self._cancel_notification()
        scene = self.context.scene
        if scene is not None:
            for item in self._placed:
                if item.identity is not None and not scene.destroy(item.identity):
                    if self._logger.enabled:
                        self._logger.debug("%s was already gone while clearing", item.name)
        self._placed = []
        self._evidence = []
        self._relationships = {}
        self._index.clear()
        self.context.ledger.rebuild()

    def _spawn_rule(self, rule: CategoryRule, cycle: _CycleState) -> None:
        random = self.context.random
        count = random.next_int(rule.count_min, rule.count_max + 1)
        for _ in range(count):
            if not rule.essential and not random.chance(rule.spawn_probability):
                cycle.report.skipped += 1
                self.context.telemetry.record_skipped()
                continue
            self._place_one(rule, count, cycle)

    def _spawn_orbit_rule(self, rule: CategoryRule, cycle: _CycleState) -> None:
        random = self.context.random
        orbit = rule.orbit
        budget = random.next_int(rule.count_min, rule.count_max + 1)
        targets = self._resolve_targets(orbit.target)
        for target in targets:
            if budget <= 0:
                break
            per_target = min(budget, random.next_int(orbit.count_min, orbit.count_max + 1))
            center = target.position if target is not None else self.config.settings.anchor
            for index in range(per_target):
                budget -= 1
                if not rule.essential and not random.chance(rule.spawn_probability):
                    cycle.report.skipped += 1
                    self.context.telemetry.record_skipped()
                    continue
                request = OrbitRequest(center=Vector3(center), index=index, count=per_target, target=target)
                item = self._place_one(rule, per_target, cycle, request)
                if item is not None and target is not None:
                    self._relationships.setdefault(target.name, []).append(item.name)

    def _resolve_targets(self, selector: TargetSelector) -> List[Optional[PlacedItem]]:
        candidates = [
            item for item in self._placed if selector.category is None or item.category is selector.category
        ]
        if selector.mode is TargetMode.INSTANCE:
            candidates = [
                item
                for item in self._placed
                if selector.instance_name in (item.name, item.template)
            ][:1]
        elif selector.mode is TargetMode.NEAREST and candidates:
            anchor = self.config.settings.anchor
            candidates = [min(candidates, key=lambda item: item.position.distance_to(anchor))]
        if not candidates:
            # No target placed this cycle: orbit the anchor instead.
            return [None]
        return candidates

    def _place_one(
        self,
        rule: CategoryRule,
        count: int,
        cycle: _CycleState,
        orbit: Optional[OrbitRequest] = None,
        template: Optional[EvidenceTemplate] = None,
    ) -> Optional[PlacedItem]:
        random = self.context.random
        names = rule.base_names()
        if template is not None:
            base = template.name
        else:
            base = names[0] if len(names) == 1 else random.choice(names)
        settings = self.config.settings
        outcome = self._engine.place(rule, settings.anchor, settings.bounds, self._index, orbit, template=base)
        if outcome.item is None:
            cycle.report.failed += 1
            if outcome.issue is not None:
                cycle.report.issues.append(outcome.issue)
            return None
        item = outcome.item
        key = (rule.category, base)
        index = cycle.counters.get(key, 0) + 1
        if count > 1 or (rule.evidence_bearing and base in cycle.used_ids):
            cycle.counters[key] = index
            item.name = f"{base} ({index})"
            unique_id = f"{rule.category.value}_{base}_{index}"
            display = f"{base} {index}"
        else:
            item.name = base
            unique_id = base
            display = base
        item.identity = self._instantiate(item)
        self._placed.append(item)
        if rule.evidence_bearing:
            cycle.used_ids.add(unique_id)
            entry = EvidenceEntry(unique_id=unique_id, display_name=display, handle=item.identity)
            cycle.entries.append(entry)
            self._evidence.append((entry, item))
            if template is not None and template.fingerprints:
                self._attach_fingerprints(item, template.fingerprints)
        return item

    def _spawn_evidence_catalogue(self, cycle: _CycleState) -> None:
        if not self.config.evidence:
            return
        rule, issues = self.config.evidence_rule.validated(self._config_logger)
        cycle.report.issues.extend(issues)
        random = self.context.random
        templates = list(self.config.evidence)
        random.shuffle(templates)
        for template in templates:
            if not template.essential and not random.chance(template.spawn_probability):
                cycle.report.skipped += 1
                self.context.telemetry.record_skipped()
                continue
            quantity = random.next_int(0, template.max_quantity + 1)
            if template.essential:
                quantity = max(1, quantity)
            for _ in range(quantity):
                self._place_one(rule, quantity, cycle, template=template)

    def _instantiate(self, item: PlacedItem) -> object:
        scene = self.context.scene
        if scene is None:
            self._report_missing("scene", "no scene collaborator; placements are not instantiated")
            return None
        return scene.instantiate(
            item.template,
            item.position,
            rotation=item.rotation,
            name=item.name,
            tag=item.category.value,
        )

    def _attach_fingerprints(self, item: PlacedItem, count: int) -> None:
        scene = self.context.scene
        if scene is None or item.identity is None:
            return
        for index in range(count):
            angle = 2.0 * math.pi * index / count
            offset = Vector3(math.cos(angle) * FINGERPRINT_OFFSET, 0.0, math.sin(angle) * FINGERPRINT_OFFSET)
            name = "Fingerprint" if index == 0 else f"Fingerprint ({index})"
            scene.instantiate(
                "Fingerprint",
                item.position + offset,
                name=name,
                parent=item.identity,
                tag="Fingerprint",
                layer="UV",
                marker=True,
            )

    def _report_missing(self, collaborator: str, message: str) -> None:
        if collaborator in self._reported_missing:
            return
        self._reported_missing.add(collaborator)
        issue = MissingCollaborator(message, collaborator=collaborator)
        if self._logger.enabled:
            self._logger.warning(str(issue))

    def _schedule_notification(self) -> None:
        self._cancel_notification()
        self._notification = self.context.scheduler.call_later(
            self.config.settings.notification_delay, self._notify
        )

    def _cancel_notification(self) -> None:
        if self._notification is not None:
            self._notification.cancel()
            self._notification = None

    def _notify(self) -> None:
        self._notification = None
        self.notifications += 1
        names = self.evidence_names()
        handles = self.evidence_handles()
        for observer in list(self.context.observers):
            observer.on_evidence_list(names, handles)
            observer.on_scene_generated()


__all__ = ["GenerationOrchestrator", "GenerationReport", "GenerationState", "HierarchyStats"]
