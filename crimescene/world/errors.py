"""Recoverable issues recorded while generating and tracking a scene.

None of these are raised past a component boundary. Components record them
on their reports and log them; callers branch on the result values instead.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SceneIssue:
    message: str

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass(frozen=True)
class PlacementExhausted(SceneIssue):
    """Retry budget used up for one item; the item is skipped."""

    category: str = ""
    attempts: int = 0


@dataclass(frozen=True)
class InvalidRuleConfiguration(SceneIssue):
    """A rule value was out of range and has been corrected."""

    category: str = ""
    field: str = ""


@dataclass(frozen=True)
class MissingCollaborator(SceneIssue):
    """An external collaborator is absent; its feature degrades to a no-op."""

    collaborator: str = ""


@dataclass(frozen=True)
class StaleReference(SceneIssue):
    """A tracked entity was destroyed outside the engine and has been pruned."""

    handle: object = None


__all__ = [
    "InvalidRuleConfiguration",
    "MissingCollaborator",
    "PlacementExhausted",
    "SceneIssue",
    "StaleReference",
]
