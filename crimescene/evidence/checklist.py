"""Checklist presentation kept in sync with the evidence ledger."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from crimescene.assets.content import SceneSettings
from crimescene.engine.context import EngineContext
from crimescene.engine.scheduler import TimerHandle
from crimescene.evidence.ledger import EvidenceEntry, LedgerSummary
from crimescene.evidence.names import clean_object_name

MYSTERY_TEXT = "???????"
MYSTERY_SYMBOL = "?"
FOUND_SYMBOL = "✓"
NOT_FOUND_SYMBOL = "□"
PHOTO_SYMBOL = "📷"
BULLET = "• "


@dataclass(frozen=True)
class ChecklistLine:
    unique_id: str
    text: str
    symbol: str
    found: bool
    photographed: bool
    fingerprint: bool

    def render(self) -> str:
        suffix = f" {PHOTO_SYMBOL}" if self.photographed else ""
        return f"{self.symbol} {BULLET}{self.text}{suffix}"


class EvidenceChecklist:
    """Observer that rebuilds its view when a scene is generated.

    Also polls the spawned-object count so it catches regenerations that
    happen without a notification, waiting for the scene to settle first.
    """

    def __init__(
        self,
        context: EngineContext,
        mystery_mode: bool = True,
        exclude_fingerprints: bool = False,
        fallback_names: Sequence[str] = (),
        track_fingerprints: bool = True,
    ) -> None:
        self.context = context
        self.mystery_mode = mystery_mode
        self.exclude_fingerprints = exclude_fingerprints
        self.fallback_names = list(fallback_names)
        self.track_fingerprints = track_fingerprints
        self._logger = context.channel("evidence")
        self._names: List[str] = []
        self._handles: List[object] = []
        self._received = False
        self._received_generation = -1
        self._lines: List[ChecklistLine] = []
        self._summary: Optional[LedgerSummary] = None
        self._poll_timer: Optional[TimerHandle] = None
        self._settle_timer: Optional[TimerHandle] = None
        self._count_source: Optional[Callable[[], int]] = None
        self._last_count = 0
        self._settle_delay = 0.5
        self.refreshes = 0
        self.dirty = True

    @classmethod
    def from_settings(cls, context: EngineContext, settings: SceneSettings) -> "EvidenceChecklist":
        return cls(
            context,
            mystery_mode=settings.mystery_mode,
            exclude_fingerprints=settings.exclude_fingerprints_from_list,
            fallback_names=settings.fallback_evidence,
            track_fingerprints=settings.track_fingerprints,
        )

    # -- observer protocol ---------------------------------------------------

    def on_evidence_list(self, names: Sequence[str], handles: Sequence[object]) -> None:
        self._names = list(names)
        self._handles = list(handles)
        self._received = True
        self._received_generation = self.context.ledger.generation

    def on_scene_generated(self) -> None:
        self.refresh()

    # -- polling -------------------------------------------------------------

    def start(
        self,
        count_source: Callable[[], int],
        interval: float = 1.0,
        settle_delay: float = 0.5,
    ) -> None:
        self._count_source = count_source
        self._last_count = count_source()
        self._settle_delay = settle_delay
        if self._poll_timer is None:
            self._poll_timer = self.context.scheduler.call_every(interval, self.poll)

    def stop(self) -> None:
        for timer in (self._poll_timer, self._settle_timer):
            if timer is not None:
                timer.cancel()
        self._poll_timer = None
        self._settle_timer = None

    def poll(self) -> None:
        if self._count_source is not None:
            count = self._count_source()
            if count != self._last_count:
                self._last_count = count
                if self._settle_timer is not None:
                    self._settle_timer.cancel()
                self._settle_timer = self.context.scheduler.call_later(self._settle_delay, self._settled)
        summary = self.context.ledger.summary()
        if summary != self._summary:
            if self._summary is not None and summary.found > self._summary.found and self._logger.enabled:
                self._logger.info("Checklist progress: %d/%d found", summary.found, summary.total)
            self._summary = summary
            self.dirty = True

    def _settled(self) -> None:
        self._settle_timer = None
        self.refresh()

    # -- view ----------------------------------------------------------------

    def refresh(self) -> None:
        ledger = self.context.ledger
        # Without a generator feeding names, fall back to the manual evidence list.
        if not self._received and not ledger.named_entries() and self.fallback_names:
            for name in self.fallback_names:
                cleaned = clean_object_name(name)
                ledger.upsert(EvidenceEntry(unique_id=cleaned, display_name=cleaned))
        if self._received and self._received_generation == ledger.generation:
            named = self._announced_entries()
        else:
            named = ledger.named_entries()
        entries = named + ledger.fingerprint_entries()
        self._summary = ledger.summary()
        self._lines = [self._line(entry) for entry in entries if self._listed(entry)]
        self.refreshes += 1
        self.dirty = False

    def _announced_entries(self) -> List[EvidenceEntry]:
        """Named entries in the order the generator announced them.

        Announced items are matched by handle, then by display name. Ones the
        ledger does not know are registered; handled entries that were not
        announced belong to removed objects and are left out.
        """

        ledger = self.context.ledger
        named = ledger.named_entries()
        by_handle = {entry.handle: entry for entry in named if entry.handle is not None}
        by_name = {entry.display_name: entry for entry in named}
        ordered: List[EvidenceEntry] = []
        seen = set()
        for name, handle in zip(self._names, self._handles):
            entry = by_handle.get(handle) if handle is not None else None
            if entry is None:
                entry = by_name.get(name)
            if entry is None:
                cleaned = clean_object_name(name)
                entry = ledger.upsert(EvidenceEntry(unique_id=cleaned, display_name=cleaned, handle=handle))
            if entry.unique_id not in seen:
                seen.add(entry.unique_id)
                ordered.append(entry)
        ordered.extend(entry for entry in named if entry.handle is None and entry.unique_id not in seen)
        return ordered

    def _listed(self, entry: EvidenceEntry) -> bool:
        if entry.is_fingerprint_like:
            return self.track_fingerprints and not self.exclude_fingerprints
        return True

    def _line(self, entry: EvidenceEntry) -> ChecklistLine:
        if self.mystery_mode and not entry.found:
            text = MYSTERY_TEXT
            symbol = MYSTERY_SYMBOL
        else:
            text = clean_object_name(entry.display_name)
            symbol = FOUND_SYMBOL if entry.found else NOT_FOUND_SYMBOL
        return ChecklistLine(
            unique_id=entry.unique_id,
            text=text,
            symbol=symbol,
            found=entry.found,
            photographed=entry.photographed,
            fingerprint=entry.is_fingerprint_like,
        )

    def lines(self) -> List[ChecklistLine]:
        if self.dirty:
            self.refresh()
        return list(self._lines)

    def mark_found(self, display_name: str) -> tuple[bool, str]:
        result = self.context.ledger.mark_found_by_name(display_name)
        self.dirty = True
        return result

    def progress(self) -> tuple[int, int]:
        summary = self.context.ledger.summary()
        return summary.found, summary.total

    def all_found(self) -> bool:
        found, total = self.progress()
        return total > 0 and found >= total

    def fingerprint_status(self) -> str:
        summary = self.context.ledger.summary()
        total = summary.fingerprints
        done = summary.fingerprints_photographed
        percent = int(round(done * 100.0 / total)) if total else 0
        return f"FINGERPRINTS: {done}/{total} ({percent}%)"

    def render(self) -> str:
        rows = ["EVIDENCE CHECKLIST"]
        rows.extend(line.render() for line in self.lines())
        found, total = self.progress()
        rows.append(f"FOUND: {found}/{total}")
        if self.track_fingerprints:
            rows.append(self.fingerprint_status())
        return "\n".join(rows)


__all__ = ["ChecklistLine", "EvidenceChecklist"]
