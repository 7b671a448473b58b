"""Fixed timestep host loop for headless runs."""
from __future__ import annotations

import time
from typing import Callable, Optional


class FixedTimestepLoop:
    """Feeds fixed simulation steps to ``update`` from a wall clock."""

    def __init__(
        self,
        update: Callable[[float], None],
        on_frame: Optional[Callable[[float], None]] = None,
        fixed_hz: float = 60.0,
        max_frame_time: float = 0.25,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Optional[Callable[[float], None]] = time.sleep,
    ) -> None:
        self.update = update
        self.on_frame = on_frame
        self.fixed_dt = 1.0 / fixed_hz
        self.max_frame_time = max_frame_time
        self._clock = clock
        self._sleep = sleep
        self._running = False
        self.steps = 0

    def stop(self) -> None:
        self._running = False

    def run(self, duration: Optional[float] = None) -> int:
        """Run until :meth:`stop` is called or ``duration`` seconds of steps have elapsed."""

        self._running = True
        accumulator = 0.0
        simulated = 0.0
        last_time = self._clock()
        while self._running:
            now = self._clock()
            frame_time = now - last_time
            last_time = now
            if frame_time > self.max_frame_time:
                frame_time = self.max_frame_time
            accumulator += frame_time
            while self._running and accumulator >= self.fixed_dt:
                self.update(self.fixed_dt)
                self.steps += 1
                accumulator -= self.fixed_dt
                simulated += self.fixed_dt
                if duration is not None and simulated >= duration - 1e-9:
                    self._running = False
                    break
            alpha = accumulator / self.fixed_dt if self.fixed_dt > 0 else 0.0
            if self.on_frame:
                self.on_frame(alpha)
            if self._running and self._sleep and accumulator < self.fixed_dt:
                self._sleep(self.fixed_dt - accumulator)
        return self.steps


__all__ = ["FixedTimestepLoop"]
