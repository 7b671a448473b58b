"""Periodic reconciliation of fingerprint-like entities with the evidence ledger."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional, Set

from pygame.math import Vector3

from crimescene.assets.content import SceneSettings
from crimescene.engine.context import EngineContext
from crimescene.engine.scheduler import TimerHandle
from crimescene.evidence.ledger import EvidenceEntry, fingerprint_unique_id
from crimescene.evidence.names import fingerprint_display_name, is_fingerprint_name
from crimescene.world.entities import SceneEntity
from crimescene.world.errors import MissingCollaborator, StaleReference


class ScanEventKind(Enum):
    ENTERED = "entered"
    EXITED = "exited"


@dataclass(frozen=True)
class ScanEvent:
    kind: ScanEventKind
    handle: object


@dataclass
class ScanResult:
    tick: int
    full: bool
    added: int = 0
    removed: int = 0
    photographed: int = 0
    tracked: int = 0


@dataclass
class _Tracked:
    unique_id: str
    display_name: str


class SyncScanner:
    """Keeps fingerprint entries in the ledger in step with the scene.

    Host trigger callbacks are posted as :class:`ScanEvent` values and drained
    in order once per tick.
    """

    def __init__(
        self,
        context: EngineContext,
        origin: Optional[Vector3] = None,
        detection_radius: float = 100.0,
        scan_interval: float = 0.2,
        full_rescan_every: int = 10,
        track_fingerprints: bool = True,
        use_marker_identification: bool = True,
        fingerprint_tag: str = "Fingerprint",
        fingerprint_layer: str = "UV",
    ) -> None:
        self.context = context
        self.origin = Vector3(origin) if origin is not None else Vector3()
        self.detection_radius = detection_radius
        self.scan_interval = scan_interval
        self.full_rescan_every = max(1, full_rescan_every)
        self.track_fingerprints = track_fingerprints
        self.use_marker_identification = use_marker_identification
        self.fingerprint_tag = fingerprint_tag
        self.fingerprint_layer = fingerprint_layer
        self._logger = context.channel("scanner")
        self._events: Deque[ScanEvent] = deque()
        self._tracked: Dict[object, _Tracked] = {}
        self._ledger_generation = -1
        self._timer: Optional[TimerHandle] = None
        self._reported_missing: Set[str] = set()
        self.ticks = 0
        self.last_result: Optional[ScanResult] = None

    @classmethod
    def from_settings(cls, context: EngineContext, settings: SceneSettings) -> "SyncScanner":
        return cls(
            context,
            origin=settings.anchor,
            detection_radius=settings.detection_radius,
            scan_interval=settings.scan_interval,
            full_rescan_every=settings.full_rescan_every,
            track_fingerprints=settings.track_fingerprints,
            use_marker_identification=settings.use_marker_identification,
            fingerprint_tag=settings.fingerprint_tag,
            fingerprint_layer=settings.fingerprint_layer,
        )

    @property
    def tracked_handles(self) -> List[object]:
        return list(self._tracked.keys())

    def start(self) -> None:
        if self._timer is None:
            self._timer = self.context.scheduler.call_every(self.scan_interval, self.tick)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def post(self, event: ScanEvent) -> None:
        self._events.append(event)

    def entered(self, handle: object) -> None:
        self.post(ScanEvent(ScanEventKind.ENTERED, handle))

    def exited(self, handle: object) -> None:
        self.post(ScanEvent(ScanEventKind.EXITED, handle))

    def is_valid(self, entity: SceneEntity) -> bool:
        if not entity.active or not entity.has_visual:
            return False
        if self.use_marker_identification:
            return entity.has_marker
        return (
            entity.tag == self.fingerprint_tag
            and entity.layer == self.fingerprint_layer
            and is_fingerprint_name(entity.name)
        )

    def in_range(self, entity: SceneEntity) -> bool:
        return entity.position.distance_to(self.origin) <= self.detection_radius

    def tick(self) -> ScanResult:
        self.ticks += 1
        ledger = self.context.ledger
        full = self.ticks % self.full_rescan_every == 0 or self.ticks == 1
        if ledger.generation != self._ledger_generation:
            # The ledger was rebuilt: everything tracked before belongs to a previous scene.
            self._tracked.clear()
            self._ledger_generation = ledger.generation
            full = True
        result = ScanResult(tick=self.ticks, full=full)
        scene = self.context.scene
        if not self.track_fingerprints:
            self._stand_down(result)
        elif scene is None:
            self._events.clear()
            self._report_missing("scene", "no scene collaborator; fingerprint tracking disabled")
        else:
            self._drain_events(result)
            self._reconcile(result, full)
        if self.track_fingerprints:
            self._pull_detector(result)
        result.tracked = len(self._tracked)
        self.last_result = result
        if (result.added or result.removed or result.photographed) and self._logger.enabled:
            self._logger.info(
                "Scan %d%s: +%d -%d photographed=%d tracked=%d",
                result.tick,
                " (full)" if full else "",
                result.added,
                result.removed,
                result.photographed,
                result.tracked,
            )
        return result

    def rescan(self) -> ScanResult:
        """Run a full reconciliation immediately, outside the timer."""

        result = ScanResult(tick=self.ticks, full=True)
        if not self.track_fingerprints:
            self._stand_down(result)
            self.last_result = result
            return result
        if self.context.scene is None:
            self._report_missing("scene", "no scene collaborator; fingerprint tracking disabled")
        else:
            self._reconcile(result, True)
        self._pull_detector(result)
        result.tracked = len(self._tracked)
        self.last_result = result
        return result

    def _stand_down(self, result: ScanResult) -> None:
        self._events.clear()
        for handle in list(self._tracked.keys()):
            self._untrack(handle)
            result.removed += 1

    def _drain_events(self, result: ScanResult) -> None:
        scene = self.context.scene
        while self._events:
            event = self._events.popleft()
            if event.kind is ScanEventKind.ENTERED:
                entity = scene.get(event.handle)
                if entity is not None and event.handle not in self._tracked:
                    if self.is_valid(entity) and self.in_range(entity):
                        self._track(entity)
                        result.added += 1
            elif event.handle in self._tracked:
                self._untrack(event.handle)
                result.removed += 1

    def _reconcile(self, result: ScanResult, full: bool) -> None:
        if full:
            self._full_scan(result)
            return
        scene = self.context.scene
        # Between full rescans only tracked entities are rechecked, and only for existence and range.
        for handle in list(self._tracked.keys()):
            entity = scene.get(handle)
            if entity is None:
                if self._logger.enabled:
                    self._logger.debug("%s", StaleReference(f"{self._tracked[handle].display_name} vanished", handle=handle))
            elif self.in_range(entity):
                continue
            self._untrack(handle)
            result.removed += 1

    def _full_scan(self, result: ScanResult) -> None:
        scene = self.context.scene
        valid: Dict[object, SceneEntity] = {}
        for entity in scene.entities():
            if self.is_valid(entity) and self.in_range(entity):
                valid[entity.handle] = entity
        for handle in list(self._tracked.keys()):
            if handle not in valid:
                self._untrack(handle)
                result.removed += 1
        ledger = self.context.ledger
        for handle, entity in valid.items():
            tracked = self._tracked.get(handle)
            if tracked is None:
                self._track(entity)
                result.added += 1
            elif tracked.unique_id not in ledger:
                self._track(entity)

    def _track(self, entity: SceneEntity) -> None:
        scene = self.context.scene
        parent_name = None
        if entity.parent is not None and scene is not None:
            parent = scene.get(entity.parent)
            parent_name = parent.name if parent is not None else None
        unique_id = fingerprint_unique_id(entity.name, entity.handle)
        display_name = fingerprint_display_name(entity.name, parent_name)
        self._tracked[entity.handle] = _Tracked(unique_id, display_name)
        self.context.ledger.upsert(
            EvidenceEntry(
                unique_id=unique_id,
                display_name=display_name,
                is_fingerprint_like=True,
                handle=entity.handle,
            )
        )

    def _untrack(self, handle: object) -> None:
        tracked = self._tracked.pop(handle, None)
        if tracked is not None:
            self.context.ledger.remove(tracked.unique_id)

    def _pull_detector(self, result: ScanResult) -> None:
        detector = self.context.detector
        if detector is None:
            self._report_missing("detector", "no photo detector; photographed state is not synced")
            return
        ledger = self.context.ledger
        for handle in detector.photographed_handles():
            tracked = self._tracked.get(handle)
            if tracked is None:
                continue
            entry = ledger.get(tracked.unique_id)
            if entry is None or entry.photographed:
                continue
            ok, _ = ledger.mark_photographed(tracked.unique_id)
            if ok:
                result.photographed += 1

    def _report_missing(self, collaborator: str, message: str) -> None:
        if collaborator in self._reported_missing:
            return
        self._reported_missing.add(collaborator)
        if self._logger.enabled:
            self._logger.warning("%s", MissingCollaborator(message, collaborator=collaborator))


__all__ = ["ScanEvent", "ScanEventKind", "ScanResult", "SyncScanner"]
