"""Objects that were already in the scene before generation.

Hand-placed furniture follows the same category toggles as generated
furniture: a registered object is hidden (or destroyed) while its category
is switched off and shown again when it is switched back on.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from crimescene.engine.context import EngineContext
from crimescene.world.entities import SceneEntity
from crimescene.world.errors import MissingCollaborator
from crimescene.world.rules import SpawnCategory
from crimescene.world.toggles import CategoryToggleSet

DEFAULT_MANAGED_TAGS = ("Table", "Chair", "Bottle", "Glass", "Furniture", "BarObject", "Decoration")
DEFAULT_MANAGED_NAMES = ("Table", "Chair", "Bottle", "Glass", "Counter", "Bar", "Shelf", "Cabinet")
PROTECTED_NAME_PARTS = ("Generator", "Manager", "Camera", "Light", "Player")

# First match wins, so "bar stool" is a bar object and not a chair.
CATEGORY_KEYWORDS: Tuple[Tuple[SpawnCategory, Tuple[str, ...]], ...] = (
    (SpawnCategory.TABLES, ("table", "desk")),
    (SpawnCategory.BAR_OBJECTS, ("bar", "counter")),
    (SpawnCategory.CHAIRS, ("chair", "seat", "stool")),
    (SpawnCategory.BOTTLES, ("bottle", "wine", "beer")),
    (SpawnCategory.GLASSES, ("glass", "cup", "mug")),
    (SpawnCategory.FURNITURE, ("furniture", "shelf", "cabinet")),
    (SpawnCategory.DECORATIONS, ("decoration", "plant", "picture")),
)


def categorize_entity(name: str, tag: str = "") -> SpawnCategory:
    lowered_name = name.lower()
    lowered_tag = tag.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered_name for keyword in keywords):
            return category
        # Tags only count through the category's leading keyword.
        if keywords[0] in lowered_tag:
            return category
    return SpawnCategory.CUSTOM


@dataclass(frozen=True)
class ManagedCounts:
    kept: int
    hidden: int
    destroyed: int


class ExistingObjectManager:
    """Registers pre-existing scene objects and applies category toggles to them."""

    def __init__(
        self,
        context: EngineContext,
        managed_tags: Sequence[str] = DEFAULT_MANAGED_TAGS,
        managed_names: Sequence[str] = DEFAULT_MANAGED_NAMES,
        managed_layers: Sequence[str] = (),
    ) -> None:
        self.context = context
        self.managed_tags = tuple(managed_tags)
        self.managed_names = tuple(managed_names)
        self.managed_layers = tuple(managed_layers)
        self._logger = context.channel("existing")
        self._managed: Dict[object, SpawnCategory] = {}
        self._original_active: Dict[object, bool] = {}

    def __len__(self) -> int:
        return len(self._managed)

    def managed_handles(self) -> List[object]:
        return list(self._managed.keys())

    def category_of(self, handle: object) -> Optional[SpawnCategory]:
        return self._managed.get(handle)

    def matches(self, entity: SceneEntity) -> bool:
        if any(part in entity.name for part in PROTECTED_NAME_PARTS):
            return False
        if entity.tag in self.managed_tags:
            return True
        lowered = entity.name.lower()
        if any(pattern.lower() in lowered for pattern in self.managed_names):
            return True
        return entity.layer in self.managed_layers

    def register(self, exclude: Iterable[object] = ()) -> int:
        """Scan the scene and remember every matching object.

        ``exclude`` holds handles owned by the generator; their descendants
        are skipped as well. Returns how many objects are now managed.
        """

        self._managed = {}
        self._original_active = {}
        scene = self.context.scene
        if scene is None:
            if self._logger.enabled:
                self._logger.warning(
                    "%s", MissingCollaborator("no scene to scan for existing objects", collaborator="scene")
                )
            return 0
        entities = list(scene.entities())
        by_handle = {entity.handle: entity for entity in entities}
        excluded: Set[object] = set(exclude)
        for entity in entities:
            if self._owned_by(entity, excluded, by_handle) or not self.matches(entity):
                continue
            self._managed[entity.handle] = categorize_entity(entity.name, entity.tag)
            self._original_active[entity.handle] = entity.active
            if self._logger.enabled:
                self._logger.debug("Registered %s as %s", entity.name, self._managed[entity.handle].value)
        if self._logger.enabled:
            self._logger.info("Registered %d existing objects", len(self._managed))
        return len(self._managed)

    @staticmethod
    def _owned_by(entity: SceneEntity, excluded: Set[object], by_handle: Dict[object, SceneEntity]) -> bool:
        current: Optional[SceneEntity] = entity
        seen: Set[object] = set()
        while current is not None and current.handle not in seen:
            if current.handle in excluded:
                return True
            seen.add(current.handle)
            current = by_handle.get(current.parent) if current.parent is not None else None
        return False

    def apply(self, toggles: CategoryToggleSet, hide_instead_of_destroy: bool = True) -> ManagedCounts:
        scene = self.context.scene
        if scene is None or not self._managed:
            return ManagedCounts(0, 0, 0)
        kept = hidden = destroyed = 0
        for handle, category in list(self._managed.items()):
            entity = scene.get(handle)
            if entity is None:
                self._forget(handle)
                continue
            wanted = toggles.is_enabled(category)
            if wanted:
                if not entity.active:
                    scene.set_active(handle, True)
                kept += 1
            elif hide_instead_of_destroy:
                if entity.active:
                    scene.set_active(handle, False)
                hidden += 1
            else:
                scene.destroy(handle)
                self._forget(handle)
                destroyed += 1
        counts = ManagedCounts(kept, hidden, destroyed)
        if self._logger.enabled:
            self._logger.info(
                "Existing objects: %d active, %d hidden, %d destroyed", counts.kept, counts.hidden, counts.destroyed
            )
        return counts

    def hide_all(self) -> int:
        return self._set_all(False)

    def show_all(self) -> int:
        return self._set_all(True)

    def restore_all(self) -> int:
        scene = self.context.scene
        if scene is None:
            return 0
        restored = 0
        for handle, active in self._original_active.items():
            if scene.set_active(handle, active):
                restored += 1
        return restored

    def _set_all(self, active: bool) -> int:
        scene = self.context.scene
        if scene is None:
            return 0
        return sum(1 for handle in self._managed if scene.set_active(handle, active))

    def _forget(self, handle: object) -> None:
        self._managed.pop(handle, None)
        self._original_active.pop(handle, None)


__all__ = ["ExistingObjectManager", "ManagedCounts", "categorize_entity"]
