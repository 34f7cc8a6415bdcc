"""metabolism/engine.py — Top-level metabolic engine.

Owns the live graph, status cache, dirty flag, solver, scheduler and
the published ``FluxResult``, and exposes a single ``update(dt)`` for
the outer loop.

Usage in a scene::

    # In on_enter():
    self.engine = MetabolicEngine.from_files("data/blocks.toml")

    # In update():
    self.engine.update(dt)
    result = self.engine.latest()

Per tick:
  1. drain gene events → patch live graph → one dirty mark
  2. take the dirty flag together with the live graph reference
  3. not dirty → keep the current result (idempotent no-op)
  4. dirty → overlay status cache → validate → solve → swap result

All writes to the live graph happen under ``lock``; the solve itself
runs outside it on a graph nobody mutates.
"""

from __future__ import annotations
import threading
import time
import traceback
from pathlib import Path
from typing import Any

from components.blocks import BlockKind, GeneState
from components.dev_log import DevLog
from components.flux import EMPTY_RESULT, FluxResult
from core.events import (
    EventBus, FluxPublished, NonConvergence, StatusPatched, TickFailed,
    TickOverBudget,
)
from metabolism.config import EngineConfig
from metabolism.draft import DraftGateway
from metabolism.graph_store import MetabolicGraph, patch_statuses, validate
from metabolism.invalidation import DirtyFlag
from metabolism.scheduler import TickScheduler
from metabolism.solver import FluxSolver
from metabolism.status import StatusCache, StatusPropagator


class MetabolicEngine:
    """The explicitly owned engine object; no module-level state."""

    def __init__(self, graph: MetabolicGraph | None = None,
                 config: EngineConfig | None = None, *,
                 bus: EventBus | None = None,
                 log: DevLog | None = None,
                 status_cache: StatusCache | None = None) -> None:
        self.config = config or EngineConfig()
        self.lock = threading.RLock()
        self._tick_lock = threading.Lock()

        self.graph: MetabolicGraph = validate(graph or MetabolicGraph())
        self.status_cache = status_cache or StatusCache()
        self.status = StatusPropagator(self.status_cache, self.config)
        self.dirty = DirtyFlag()
        self.solver = FluxSolver(self.config)
        self.log = log or DevLog()
        self.bus = bus or EventBus(on_error=self._handler_failed)
        self.gateway = DraftGateway(self)
        self.scheduler = TickScheduler(
            self.config.tick_period, self.tick,
            max_catch_up=self.config.max_catch_up,
            background=self.config.async_ticks,
        )

        self._result: FluxResult = EMPTY_RESULT
        self._stress = 1.0
        self._stress_until = 0.0
        self.clock = 0.0          # engine seconds (ticks × period)

        # Stats
        self.ticks = 0
        self.rebuilds = 0
        self.republished = 0
        self.failures = 0
        self.last_tick_seconds = 0.0

        # First tick always solves.
        self.dirty.mark()

    # ── Setup ────────────────────────────────────────────────────────

    @classmethod
    def from_files(cls, blocks_path: str | Path,
                   config: EngineConfig | None = None, **kwargs) -> MetabolicEngine:
        """Load designer topology from TOML; config from loaded tuning."""
        graph = MetabolicGraph.from_toml(blocks_path)
        engine = cls(graph, config or EngineConfig.from_tuning(), **kwargs)
        print(f"[METABOLISM] Engine ready: {len(graph.nodes)} blocks, "
              f"{len(graph.edges)} edges, period {engine.config.tick_period}s")
        return engine

    def reconfigure(self, config: EngineConfig) -> int:
        """Swap configuration; the next tick re-solves with it."""
        with self.lock:
            self.config = config
            self.solver.config = config
            changes = self.status.remap(config)
            if changes:
                self.graph = patch_statuses(self.graph, changes)
            self.scheduler.set_period(config.tick_period)
            self.scheduler.max_catch_up = config.max_catch_up
            gen = self.dirty.mark()
        if config.async_ticks != self.scheduler.background:
            self.scheduler.set_background(config.async_ticks)
        self.log.record("config", "reconfigured", gen=gen)
        print(f"[METABOLISM] Reconfigured → gen {gen}")
        return gen

    def close(self) -> None:
        """Full teardown: stop the background worker."""
        self.scheduler.shutdown()

    # ── Collaborator inputs ──────────────────────────────────────────

    def push_gene_event(self, kind: BlockKind | str,
                        state: GeneState | str) -> None:
        """Push-only input from the gene model; applied next tick."""
        self.status.push(kind, state)

    def apply_stress(self, multiplier: float, seconds: float) -> int:
        """Temporarily scale every block's supply; above 1 it may pass
        capacity until the stress expires."""
        with self.lock:
            self._stress = max(0.0, float(multiplier))
            self._stress_until = self.clock + max(0.0, seconds)
            gen = self.dirty.mark()
        self.log.record("stress", f"x{multiplier:g} for {seconds:g}s", gen=gen)
        return gen

    def invalidate(self) -> int:
        """Force a rebuild on the next tick."""
        return self.dirty.mark()

    # ── Outer loop entry point ───────────────────────────────────────

    def update(self, dt: float) -> int:
        """Called every frame; runs ticks that are due.  Never blocks on
        a background tick."""
        return self.scheduler.update(dt)

    def latest(self) -> FluxResult:
        """The last published snapshot (immutable)."""
        return self._result

    # ── Tick ─────────────────────────────────────────────────────────

    def _expire_stress(self) -> None:
        if self._stress != 1.0 and self.clock >= self._stress_until:
            self._stress = 1.0
            self.dirty.mark()
            self.log.record("stress", "expired", gen=self.dirty.generation)

    def _apply_status(self) -> None:
        changes = self.status.apply()
        if not changes:
            return
        self.graph = patch_statuses(self.graph, changes)
        gen = self.dirty.mark()
        names = [k.key for k in changes]
        for kind, status in changes.items():
            self.log.record("status", f"{kind.key} → {status.label()}", gen=gen)
        self.bus.emit(StatusPatched(generation=gen, kinds=names))

    def tick(self) -> FluxResult:
        """Run one engine tick.  Always leaves *some* valid result published."""
        t0 = time.perf_counter()
        with self._tick_lock:
            self.ticks += 1
            gen = self.dirty.generation
            try:
                with self.lock:
                    self.clock += self.config.tick_period
                    self._expire_stress()
                    self._apply_status()
                    dirty, gen = self.dirty.take()
                    if dirty:
                        snapshot = self.status_cache.overlay(self.graph)
                    stress = self._stress

                if not dirty:
                    self.republished += 1
                    return self._result

                result = self._rebuild(snapshot, gen, stress)
            except Exception as ex:
                self.failures += 1
                print(f"[METABOLISM] tick {self.ticks} failed: {ex}")
                traceback.print_exc()
                self.log.record("error", f"tick failed: {ex}", gen=gen)
                self.bus.emit(TickFailed(generation=gen, error=str(ex)))
                # Retry next tick; the last good result stays published.
                self.dirty.mark()
                return self._result
            finally:
                self.last_tick_seconds = time.perf_counter() - t0
                self._check_budget()

        return result

    def _rebuild(self, snapshot: MetabolicGraph, gen: int,
                 stress: float) -> FluxResult:
        validate(snapshot)
        result = self.solver.solve(snapshot, generation=gen, stress=stress)
        previous, self._result = self._result, result     # atomic publish
        self.rebuilds += 1
        self._log_pressure(previous, result)

        if result.converged:
            self.log.record("solve", f"converged in {result.passes} passes",
                            gen=gen, details={"residual": result.residual})
        else:
            print(f"[FLUX] WARNING gen {gen}: no convergence after "
                  f"{result.passes} passes (residual {result.residual:.3g}); "
                  f"publishing last pass")
            self.log.record("warning", "non-convergence", gen=gen,
                            details={"passes": result.passes,
                                     "residual": result.residual})
            self.bus.emit(NonConvergence(generation=gen, passes=result.passes,
                                         residual=result.residual))
        self.bus.emit(FluxPublished(generation=gen, revision=result.revision,
                                    converged=result.converged,
                                    passes=result.passes))
        return result

    def _log_pressure(self, previous: FluxResult, result: FluxResult) -> None:
        # Only onsets and reliefs; a block that stays saturated logs once.
        for node_id, saturated in result.saturated.items():
            if saturated == previous.saturated.get(node_id, False):
                continue
            self.log.record("pressure",
                            "back-pressure" if saturated else "relieved",
                            gen=result.generation, node=node_id,
                            details={"intake": result.intake.get(node_id, 0.0)})

    def _handler_failed(self, event_name: str, exc: Exception) -> None:
        self.log.record("error", f"{event_name} handler failed: {exc}",
                        gen=self.dirty.generation)

    def _check_budget(self) -> None:
        budget = self.config.tick_budget
        if self.last_tick_seconds > budget:
            print(f"[METABOLISM] tick took {self.last_tick_seconds * 1000:.1f} ms "
                  f"(budget {budget * 1000:.0f} ms)")
            self.bus.emit(TickOverBudget(elapsed=self.last_tick_seconds,
                                         budget=budget))

    # ── Persistence helpers ──────────────────────────────────────────

    def to_dict(self) -> dict:
        with self.lock:
            return {
                "graph": self.graph.to_dict(),
                "status_cache": self.status_cache.to_dict(),
                "generation": self.dirty.generation,
            }

    def restore(self, data: dict[str, Any]) -> int:
        """Replace live topology and status cache from ``to_dict`` output."""
        graph = MetabolicGraph.from_dict(data["graph"])
        cache = StatusCache.from_dict(data.get("status_cache", {}))
        with self.lock:
            self.status.restore(cache.snapshot())
            self.graph = self.status_cache.overlay(graph)
            gen = self.dirty.mark()
        self.log.record("save", "restored", gen=gen)
        return gen

    # ── Queries ──────────────────────────────────────────────────────

    def debug_info(self) -> dict:
        """Return debug information about the engine state."""
        result = self._result
        return {
            "nodes": len(self.graph.nodes),
            "edges": len(self.graph.edges),
            "revision": self.graph.revision,
            "generation": self.dirty.generation,
            "published_generation": result.generation,
            "converged": result.converged,
            "passes": result.passes,
            "ticks": self.ticks,
            "rebuilds": self.rebuilds,
            "failures": self.failures,
            "pending_gene_events": len(self.status.queue),
            "stress": self._stress,
            "last_tick_ms": self.last_tick_seconds * 1000.0,
            "scheduler": self.scheduler.debug_info(),
        }
