"""Cooperative timer scheduler driven by the host tick."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional


@dataclass
class TimerHandle:
    """A one-shot or repeating callback registered with the scheduler."""

    due: float
    callback: Callable[[], None]
    interval: Optional[float] = None
    sequence: int = 0
    cancelled: bool = False
    fired: int = 0

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    @property
    def pending(self) -> bool:
        if self.cancelled:
            return False
        return self.repeating or self.fired == 0

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class Scheduler:
    """Runs delayed and periodic callbacks on the caller's thread.

    All mutation happens inside :meth:`tick`, so components sharing a
    scheduler never observe each other mid-update.
    """

    now: float = 0.0
    _timers: List[TimerHandle] = field(default_factory=list)
    _sequence: int = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._add(max(0.0, delay), callback, None)

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle:
        interval = max(1e-3, interval)
        return self._add(interval, callback, interval)

    def _add(self, delay: float, callback: Callable[[], None], interval: Optional[float]) -> TimerHandle:
        self._sequence += 1
        handle = TimerHandle(
            due=self.now + delay,
            callback=callback,
            interval=interval,
            sequence=self._sequence,
        )
        self._timers.append(handle)
        return handle

    def pending(self) -> int:
        return sum(1 for timer in self._timers if timer.pending)

    def tick(self, dt: float) -> int:
        """Advance the clock by ``dt`` and fire every timer that came due."""

        self.now += max(0.0, dt)
        fired = 0
        while True:
            due = [timer for timer in self._timers if not timer.cancelled and timer.due <= self.now + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.sequence))
            if timer.repeating:
                timer.due += timer.interval
            else:
                self._timers.remove(timer)
            timer.fired += 1
            fired += 1
            timer.callback()
        self._timers = [timer for timer in self._timers if not timer.cancelled]
        return fired

    def clear(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers = []


__all__ = ["Scheduler", "TimerHandle"]
