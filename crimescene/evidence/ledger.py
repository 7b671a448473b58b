"""Ordered registry of discoverable evidence and its found/photographed state."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

from crimescene.engine.logger import ChannelLogger


def fingerprint_unique_id(name: str, handle: object) -> str:
    """Identifier for a fingerprint-like entity, stable for as long as its handle is."""

    return f"Fingerprint_{name}_{handle}"


@dataclass(frozen=True)
class EvidenceEntry:
    unique_id: str
    display_name: str
    is_fingerprint_like: bool = False
    found: bool = False
    photographed: bool = False
    handle: object = None


@dataclass(frozen=True)
class LedgerSummary:
    total: int
    found: int
    photographed: int
    fingerprints: int
    fingerprints_photographed: int


class EvidenceLedger:
    """Owns every :class:`EvidenceEntry`. Flags only move from false to true.

    Entries are immutable and the whole ordered mapping is swapped in one
    assignment on :meth:`rebuild`, so readers always see a consistent set.
    """

    def __init__(self, logger: Optional[ChannelLogger] = None) -> None:
        self._logger = logger
        self._entries: Dict[str, EvidenceEntry] = {}
        self.generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, unique_id: object) -> bool:
        return unique_id in self._entries

    def get(self, unique_id: str) -> Optional[EvidenceEntry]:
        return self._entries.get(unique_id)

    def entries(self) -> List[EvidenceEntry]:
        return list(self._entries.values())

    def ids(self) -> List[str]:
        return list(self._entries.keys())

    def upsert(self, entry: EvidenceEntry) -> EvidenceEntry:
        existing = self._entries.get(entry.unique_id)
        if existing is not None:
            entry = replace(
                entry,
                found=existing.found or entry.found,
                photographed=existing.photographed or entry.photographed,
            )
        if entry.photographed and not entry.found:
            entry = replace(entry, found=True)
        entries = dict(self._entries)
        entries[entry.unique_id] = entry
        self._entries = entries
        return entry

    def remove(self, unique_id: str) -> bool:
        if unique_id not in self._entries:
            return False
        entries = dict(self._entries)
        del entries[unique_id]
        self._entries = entries
        return True

    def mark_found(self, unique_id: str) -> tuple[bool, str]:
        entry = self._entries.get(unique_id)
        if entry is None:
            return False, f"Unknown evidence '{unique_id}'"
        if entry.found:
            return True, f"{entry.display_name} already found"
        self._swap(replace(entry, found=True))
        if self._logger and self._logger.enabled:
            self._logger.info("Evidence found: %s", entry.display_name)
        return True, f"{entry.display_name} found"

    def mark_photographed(self, unique_id: str) -> tuple[bool, str]:
        entry = self._entries.get(unique_id)
        if entry is None:
            return False, f"Unknown evidence '{unique_id}'"
        if entry.photographed:
            return True, f"{entry.display_name} already photographed"
        self._swap(replace(entry, found=True, photographed=True))
        if self._logger and self._logger.enabled:
            self._logger.info("Evidence photographed: %s", entry.display_name)
        return True, f"{entry.display_name} photographed"

    def mark_found_by_name(self, display_name: str) -> tuple[bool, str]:
        for entry in self._entries.values():
            if entry.display_name == display_name and not entry.found:
                return self.mark_found(entry.unique_id)
        for entry in self._entries.values():
            if entry.display_name == display_name:
                return True, f"{display_name} already found"
        return False, f"Unknown evidence '{display_name}'"

    def rebuild(self, entries: Iterable[EvidenceEntry] = ()) -> None:
        fresh: Dict[str, EvidenceEntry] = {}
        for entry in entries:
            if entry.photographed and not entry.found:
                entry = replace(entry, found=True)
            fresh[entry.unique_id] = entry
        self._entries = fresh
        self.generation += 1
        if self._logger and self._logger.enabled:
            self._logger.info("Evidence ledger rebuilt with %d entries", len(fresh))

    def _swap(self, entry: EvidenceEntry) -> None:
        entries = dict(self._entries)
        entries[entry.unique_id] = entry
        self._entries = entries

    def fingerprint_entries(self) -> List[EvidenceEntry]:
        return [entry for entry in self._entries.values() if entry.is_fingerprint_like]

    def named_entries(self) -> List[EvidenceEntry]:
        return [entry for entry in self._entries.values() if not entry.is_fingerprint_like]

    @property
    def found_count(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.found)

    @property
    def photographed_count(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.photographed)

    @property
    def fingerprint_count(self) -> int:
        return len(self.fingerprint_entries())

    def summary(self) -> LedgerSummary:
        entries = self._entries
        fingerprints = [entry for entry in entries.values() if entry.is_fingerprint_like]
        return LedgerSummary(
            total=len(entries),
            found=sum(1 for entry in entries.values() if entry.found),
            photographed=sum(1 for entry in entries.values() if entry.photographed),
            fingerprints=len(fingerprints),
            fingerprints_photographed=sum(1 for entry in fingerprints if entry.photographed),
        )


__all__ = ["EvidenceEntry", "EvidenceLedger", "LedgerSummary", "fingerprint_unique_id"]
