"""Configuration drift detection with debounced regeneration."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from crimescene.assets.content import SceneConfig
from crimescene.engine.logger import ChannelLogger
from crimescene.engine.scheduler import Scheduler, TimerHandle

FLOAT_TOLERANCE = 1e-3
ANCHOR_TOLERANCE = 0.01


def _freeze(value: object) -> object:
    if isinstance(value, dict):
        return tuple((key, _freeze(item)) for key, item in sorted(value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _differs(a: object, b: object) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return a is not b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return abs(float(a) - float(b)) > FLOAT_TOLERANCE
    if isinstance(a, tuple) and isinstance(b, tuple):
        if len(a) != len(b):
            return True
        return any(_differs(left, right) for left, right in zip(a, b))
    return a != b


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Deep, immutable copy of everything that influences a generation."""

    rules: Tuple
    evidence_rule: Tuple
    evidence: Tuple
    toggles: Tuple
    anchor: Tuple[float, float, float]
    bounds: Tuple
    seed_mode: str
    seed: Optional[int]

    @classmethod
    def capture(cls, config: SceneConfig) -> "ConfigurationSnapshot":
        settings = config.settings
        return cls(
            rules=tuple(_freeze(rule.to_dict()) for rule in config.rules),
            evidence_rule=_freeze(config.evidence_rule.to_dict()),
            evidence=tuple(_freeze(template.to_dict()) for template in config.evidence),
            toggles=_freeze(config.toggles.to_dict()),
            anchor=(settings.anchor.x, settings.anchor.y, settings.anchor.z),
            bounds=_freeze(settings.bounds.to_dict()),
            seed_mode="randomize" if settings.seed is None else "fixed",
            seed=settings.seed,
        )

    def differences(self, other: "ConfigurationSnapshot") -> Dict[str, bool]:
        anchor_shift = math.dist(self.anchor, other.anchor)
        return {
            "ruleCount": len(self.rules) != len(other.rules),
            "rules": _differs(self.rules, other.rules),
            "evidence": _differs(self.evidence_rule, other.evidence_rule) or _differs(self.evidence, other.evidence),
            "categories": self.toggles != other.toggles,
            "anchor": anchor_shift > ANCHOR_TOLERANCE,
            "bounds": _differs(self.bounds, other.bounds),
            "seed": self.seed_mode != other.seed_mode or self.seed != other.seed,
        }


def has_changed(current: SceneConfig, previous: Optional[ConfigurationSnapshot]) -> bool:
    if previous is None:
        return True
    snapshot = ConfigurationSnapshot.capture(current)
    return any(snapshot.differences(previous).values())


class ConfigChangeMonitor:
    """Polls the live configuration and regenerates once edits settle."""

    def __init__(
        self,
        config_source: Callable[[], SceneConfig],
        generate: Callable[[], object],
        scheduler: Scheduler,
        logger: Optional[ChannelLogger] = None,
        poll_interval: float = 0.2,
        debounce_delay: float = 0.1,
    ) -> None:
        self._config_source = config_source
        self._generate = generate
        self._scheduler = scheduler
        self._logger = logger
        self.poll_interval = poll_interval
        self.debounce_delay = debounce_delay
        self._snapshot: Optional[ConfigurationSnapshot] = None
        self._last_seen: Optional[ConfigurationSnapshot] = None
        self._poll_timer: Optional[TimerHandle] = None
        self._debounce_timer: Optional[TimerHandle] = None
        self.regenerations = 0

    @property
    def snapshot(self) -> Optional[ConfigurationSnapshot]:
        return self._snapshot

    @property
    def running(self) -> bool:
        return self._poll_timer is not None and not self._poll_timer.cancelled

    @property
    def regeneration_pending(self) -> bool:
        return self._debounce_timer is not None and self._debounce_timer.pending

    def start(self) -> None:
        if self.running:
            return
        if self._snapshot is None:
            self.take_snapshot()
        self._poll_timer = self._scheduler.call_every(self.poll_interval, self.poll)

    def stop(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None
        self._cancel_debounce()

    def take_snapshot(self) -> ConfigurationSnapshot:
        self._snapshot = ConfigurationSnapshot.capture(self._config_source())
        self._last_seen = self._snapshot
        return self._snapshot

    def poll(self) -> bool:
        """Compare the live config against the last one seen; restart the debounce on drift."""

        config = self._config_source()
        reference = self._last_seen or self._snapshot
        if not has_changed(config, reference):
            return False
        current = ConfigurationSnapshot.capture(config)
        if self._logger and self._logger.enabled and reference is not None:
            changed = [name for name, flag in current.differences(reference).items() if flag]
            self._logger.info("Configuration changed (%s); regeneration scheduled", ", ".join(changed))
        self._last_seen = current
        self._restart_debounce()
        return True

    def notify_changed(self) -> None:
        """Hook for editors that know an edit happened without waiting for the poll."""

        self._last_seen = ConfigurationSnapshot.capture(self._config_source())
        self._restart_debounce()

    def _restart_debounce(self) -> None:
        self._cancel_debounce()
        self._debounce_timer = self._scheduler.call_later(self.debounce_delay, self._fire)

    def _cancel_debounce(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None

    def _fire(self) -> None:
        self._debounce_timer = None
        self.regenerations += 1
        if self._logger and self._logger.enabled:
            self._logger.info("Configuration settled; regenerating scene")
        self._generate()
        self.take_snapshot()


__all__ = ["ConfigChangeMonitor", "ConfigurationSnapshot", "has_changed"]
