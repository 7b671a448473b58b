"""Lightweight counters for generation and tracking instrumentation."""
from __future__ import annotations

from dataclasses import dataclass

from crimescene.engine.logger import ChannelLogger


@dataclass
class GenerationTelemetrySnapshot:
    cycles: int
    attempts: int
    placed: int
    failed: int
    skipped: int
    duration_ms: float

    @property
    def success_rate(self) -> float:
        total = self.placed + self.failed
        if total <= 0:
            return 0.0
        return self.placed / total


@dataclass
class GenerationTelemetry:
    """Aggregates placement statistics for the most recent generation cycle."""

    cycles: int = 0
    attempts: int = 0
    placed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: float = 0.0
    _log_accumulator: float = 0.0

    def begin_cycle(self) -> None:
        self.cycles += 1
        self.attempts = 0
        self.placed = 0
        self.failed = 0
        self.skipped = 0
        self.duration_ms = 0.0

    def record_attempts(self, count: int) -> None:
        self.attempts += count

    def record_placed(self) -> None:
        self.placed += 1

    def record_failed(self) -> None:
        self.failed += 1

    def record_skipped(self) -> None:
        self.skipped += 1

    def add_duration(self, duration_ms: float) -> None:
        self.duration_ms += duration_ms

    def advance_time(self, dt: float, logger: ChannelLogger | None = None) -> None:
        self._log_accumulator += dt
        if self._log_accumulator >= 5.0:
            self._log_accumulator = 0.0
            if logger and logger.enabled:
                logger.info(
                    "Generation: cycles=%d placed=%d failed=%d skipped=%d attempts=%d time=%.2fms",
                    self.cycles,
                    self.placed,
                    self.failed,
                    self.skipped,
                    self.attempts,
                    self.duration_ms,
                )

    def snapshot(self) -> GenerationTelemetrySnapshot:
        return GenerationTelemetrySnapshot(
            cycles=self.cycles,
            attempts=self.attempts,
            placed=self.placed,
            failed=self.failed,
            skipped=self.skipped,
            duration_ms=self.duration_ms,
        )


__all__ = ["GenerationTelemetry", "GenerationTelemetrySnapshot"]
