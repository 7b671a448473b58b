"""Explicitly owned engine context shared by every component."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, Sequence, Set

from crimescene.engine.logger import ChannelLogger, GameLogger, LoggerConfig
from crimescene.engine.random_source import RandomSource
from crimescene.engine.scheduler import Scheduler
from crimescene.engine.telemetry import GenerationTelemetry
from crimescene.evidence.ledger import EvidenceLedger

if TYPE_CHECKING:
    from crimescene.world.entities import SceneQuery


class PhotoDetector(Protocol):
    """External camera collaborator: which entities it has confirmed photographed."""

    def photographed_handles(self) -> Set[object]:
        ...


class GenerationObserver(Protocol):
    def on_evidence_list(self, names: Sequence[str], handles: Sequence[object]) -> None:
        ...

    def on_scene_generated(self) -> None:
        ...


class StaticDetector:
    """Detector whose photographed set is fed by the host."""

    def __init__(self, handles: Iterable[object] = ()) -> None:
        self._handles: Set[object] = set(handles)

    def photograph(self, handle: object) -> None:
        self._handles.add(handle)

    def forget(self, handle: object) -> None:
        self._handles.discard(handle)

    def photographed_handles(self) -> Set[object]:
        return set(self._handles)


@dataclass
class EngineContext:
    logger: GameLogger
    scheduler: Scheduler = field(default_factory=Scheduler)
    random: RandomSource = field(default_factory=RandomSource)
    telemetry: GenerationTelemetry = field(default_factory=GenerationTelemetry)
    scene: Optional["SceneQuery"] = None
    detector: Optional[PhotoDetector] = None
    ledger: Optional[EvidenceLedger] = None
    observers: List[GenerationObserver] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.ledger is None:
            self.ledger = EvidenceLedger(self.logger.channel("evidence"))

    @classmethod
    def create(
        cls,
        logger: Optional[GameLogger] = None,
        seed: Optional[int] = None,
        scene: Optional["SceneQuery"] = None,
        detector: Optional[PhotoDetector] = None,
    ) -> "EngineContext":
        return cls(
            logger=logger or GameLogger(LoggerConfig()),
            random=RandomSource(seed),
            scene=scene,
            detector=detector,
        )

    def channel(self, name: str) -> ChannelLogger:
        return self.logger.channel(name)

    def add_observer(self, observer: GenerationObserver) -> None:
        if observer not in self.observers:
            self.observers.append(observer)

    def remove_observer(self, observer: GenerationObserver) -> None:
        if observer in self.observers:
            self.observers.remove(observer)


__all__ = ["EngineContext", "GenerationObserver", "PhotoDetector", "StaticDetector"]
