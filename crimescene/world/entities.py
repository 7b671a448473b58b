"""Scene entity collaborator: the host world the generator spawns into."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol

from pygame.math import Vector3


@dataclass
class SceneEntity:
    handle: int
    name: str
    template: str
    position: Vector3
    rotation: float = 0.0
    tag: str = "Untagged"
    layer: str = "Default"
    active: bool = True
    has_visual: bool = True
    has_marker: bool = False
    parent: Optional[int] = None


class SceneQuery(Protocol):
    def instantiate(
        self,
        template: str,
        position: Vector3,
        rotation: float = 0.0,
        name: str = "",
        parent: Optional[int] = None,
        tag: str = "Untagged",
        layer: str = "Default",
        marker: bool = False,
    ) -> int:
        ...

    def destroy(self, handle: int) -> bool:
        ...

    def exists(self, handle: int) -> bool:
        ...

    def get(self, handle: int) -> Optional[SceneEntity]:
        ...

    def position_of(self, handle: int) -> Optional[Vector3]:
        ...

    def set_active(self, handle: int, active: bool) -> bool:
        ...

    def entities(self) -> Iterable[SceneEntity]:
        ...


class InMemoryScene:
    """Dictionary-backed world used for headless runs.

    Handles are never reused, so an entity that is destroyed and spawned
    again always comes back with a new identity.
    """

    def __init__(self) -> None:
        self._entities: Dict[int, SceneEntity] = {}
        self._next_handle = 1

    def __len__(self) -> int:
        return len(self._entities)

    def instantiate(
        self,
        template: str,
        position: Vector3,
        rotation: float = 0.0,
        name: str = "",
        parent: Optional[int] = None,
        tag: str = "Untagged",
        layer: str = "Default",
        marker: bool = False,
    ) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._entities[handle] = SceneEntity(
            handle=handle,
            name=name or f"{template}(Clone)",
            template=template,
            position=Vector3(position),
            rotation=rotation,
            tag=tag,
            layer=layer,
            has_marker=marker,
            parent=parent,
        )
        return handle

    def spawn_fingerprint(
        self,
        position: Vector3,
        name: str = "Fingerprint",
        parent: Optional[int] = None,
        marker: bool = True,
    ) -> int:
        return self.instantiate(
            "Fingerprint",
            position,
            name=name,
            parent=parent,
            tag="Fingerprint",
            layer="UV",
            marker=marker,
        )

    def destroy(self, handle: int) -> bool:
        if handle not in self._entities:
            return False
        del self._entities[handle]
        for child in [entity.handle for entity in self._entities.values() if entity.parent == handle]:
            self.destroy(child)
        return True

    def exists(self, handle: int) -> bool:
        return handle in self._entities

    def get(self, handle: int) -> Optional[SceneEntity]:
        return self._entities.get(handle)

    def position_of(self, handle: int) -> Optional[Vector3]:
        entity = self._entities.get(handle)
        if entity is None:
            return None
        return Vector3(entity.position)

    def move(self, handle: int, position: Vector3) -> bool:
        entity = self._entities.get(handle)
        if entity is None:
            return False
        entity.position = Vector3(position)
        return True

    def set_active(self, handle: int, active: bool) -> bool:
        entity = self._entities.get(handle)
        if entity is None:
            return False
        entity.active = active
        return True

    def parent_name(self, handle: int) -> Optional[str]:
        entity = self._entities.get(handle)
        if entity is None or entity.parent is None:
            return None
        parent = self._entities.get(entity.parent)
        return parent.name if parent else None

    def entities(self) -> List[SceneEntity]:
        return list(self._entities.values())


__all__ = ["InMemoryScene", "SceneEntity", "SceneQuery"]
