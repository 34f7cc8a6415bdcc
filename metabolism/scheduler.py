"""metabolism/scheduler.py — Fixed-period tick driver.

The outer loop calls ``update(dt)`` every frame; the scheduler turns
those frame deltas into engine ticks at a fixed period (0.25 s by
default), independent of the frame rate.

    scheduler = TickScheduler(0.25, engine.tick)
    ...
    scheduler.update(dt)          # from the 60 fps loop

In background mode ticks run on a single worker thread.  ``update``
then never waits: if the previous tick is still running, the due
ticks are deferred and readers keep seeing the last published result.
"""

from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

# Absorbs float drift when frame deltas sum to exactly one period.
_PERIOD_SLACK = 1e-9


class TickScheduler:
    """Accumulates frame time and runs ``tick_fn`` once per period."""

    def __init__(self, period: float, tick_fn: Callable[[], Any], *,
                 max_catch_up: int = 4, background: bool = False) -> None:
        self.period = period
        self.max_catch_up = max_catch_up
        self._tick_fn = tick_fn
        self._accum = 0.0
        self._executor: ThreadPoolExecutor | None = None
        self._inflight: Future | None = None
        self.background = False
        # Stats
        self.ticks_run = 0
        self.ticks_dropped = 0     # beyond max_catch_up after a stall
        self.ticks_deferred = 0    # due while a background tick was running
        self.set_background(background)

    # ── Configuration ────────────────────────────────────────────────

    def set_background(self, enabled: bool) -> None:
        if enabled and self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="metabolism-tick")
        elif not enabled and self._executor is not None:
            self.wait()
            self._executor.shutdown(wait=True)
            self._executor = None
        self.background = enabled

    def set_period(self, period: float) -> None:
        self.period = period

    # ── Driving ──────────────────────────────────────────────────────

    def due(self) -> int:
        """Ticks owed for the accumulated time (without consuming it)."""
        return int((self._accum + _PERIOD_SLACK) // self.period)

    def update(self, dt: float) -> int:
        """Advance by *dt* seconds.  Returns the number of ticks started."""
        self._accum += max(0.0, dt)
        due = self.due()
        if due == 0:
            return 0
        self._accum = max(0.0, self._accum - due * self.period)
        if due > self.max_catch_up:
            self.ticks_dropped += due - self.max_catch_up
            due = self.max_catch_up

        if not self.background:
            self._run(due)
            return due

        if self.busy:
            self.ticks_deferred += due
            return 0
        self._inflight = self._executor.submit(self._run, due)
        return due

    def run_now(self) -> Any:
        """Run one tick synchronously, after any tick in flight."""
        self.wait()
        return self._run(1)

    def _run(self, count: int) -> Any:
        out = None
        for _ in range(count):
            out = self._tick_fn()
            self.ticks_run += 1
        return out

    # ── Background helpers ───────────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def wait(self, timeout: float | None = None) -> None:
        """Block until the in-flight background tick (if any) finishes."""
        if self._inflight is not None:
            self._inflight.result(timeout=timeout)
            self._inflight = None

    def shutdown(self) -> None:
        if self._executor is not None:
            self.wait()
            self._executor.shutdown(wait=True)
            self._executor = None
        self.background = False

    def debug_info(self) -> dict:
        return {
            "period": self.period,
            "accumulated": self._accum,
            "ticks_run": self.ticks_run,
            "dropped": self.ticks_dropped,
            "deferred": self.ticks_deferred,
            "background": self.background,
            "busy": self.busy,
        }
