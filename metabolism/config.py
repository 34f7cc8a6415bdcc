"""metabolism/config.py — Engine configuration surface.

Fixed at engine construction; change it only through
``engine.reconfigure(new_config)``, which marks the graph dirty so the
next tick solves with the new numbers.

    cfg = EngineConfig.from_tuning()          # data/tuning.toml
    cfg = EngineConfig(damping=0.3, max_passes=12)
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from components.blocks import BlockKind
from core import constants as C
from core import tuning
from metabolism.errors import ConfigError


def _default_factors() -> dict[BlockKind, float]:
    return {kind: C.MUTATED_FACTOR for kind in BlockKind}


@dataclass(frozen=True)
class EngineConfig:
    """All tunables of the metabolic engine, validated on construction."""

    # ── Scheduler ────────────────────────────────────────────────────
    tick_period: float = C.TICK_PERIOD
    async_ticks: bool = C.ASYNC_TICKS
    tick_budget: float = C.TICK_BUDGET
    max_catch_up: int = C.MAX_CATCH_UP_TICKS
    gene_queue_size: int = C.GENE_QUEUE_SIZE

    # ── Solver ───────────────────────────────────────────────────────
    threshold_fraction: float = C.THRESHOLD_FRACTION
    damping: float = C.DAMPING
    max_passes: int = C.MAX_PASSES
    epsilon: float = C.CONVERGENCE_EPSILON
    parallel_edge_threshold: int = C.PARALLEL_EDGE_THRESHOLD
    parallel_workers: int = C.PARALLEL_WORKERS
    unrouted_policy: str = C.UNROUTED_EXPORT

    # Per-kind Mutated throughput factor m, 0 < m < 1.
    mutated_factors: Mapping[BlockKind, float] = field(
        default_factory=_default_factors)

    def __post_init__(self):
        factors = _default_factors()
        factors.update(self.mutated_factors)
        object.__setattr__(self, "mutated_factors", MappingProxyType(factors))
        problems = self.problems()
        if problems:
            raise ConfigError("invalid engine config: " + "; ".join(problems),
                              context={"problems": problems})

    def problems(self) -> list[str]:
        out: list[str] = []
        if not self.tick_period > 0:
            out.append(f"tick_period must be > 0 (got {self.tick_period})")
        if not 0.0 <= self.threshold_fraction <= 1.0:
            out.append(f"threshold_fraction must be in [0, 1] "
                       f"(got {self.threshold_fraction})")
        if not 0.0 < self.damping <= 1.0:
            out.append(f"damping must be in (0, 1] (got {self.damping})")
        if int(self.max_passes) < 1:
            out.append(f"max_passes must be >= 1 (got {self.max_passes})")
        if not self.epsilon > 0:
            out.append(f"epsilon must be > 0 (got {self.epsilon})")
        if self.parallel_edge_threshold < 1:
            out.append("parallel_edge_threshold must be >= 1")
        if self.parallel_workers < 1:
            out.append("parallel_workers must be >= 1")
        if self.unrouted_policy not in C.UNROUTED_POLICIES:
            out.append(f"unrouted_policy must be one of {C.UNROUTED_POLICIES} "
                       f"(got {self.unrouted_policy!r})")
        if self.max_catch_up < 1:
            out.append("max_catch_up must be >= 1")
        if self.gene_queue_size < 1:
            out.append("gene_queue_size must be >= 1")
        for kind, m in self.mutated_factors.items():
            if not 0.0 < m < 1.0:
                out.append(f"mutated factor for {kind.key} must be in (0, 1) "
                           f"(got {m})")
        return out

    # ── Queries ──────────────────────────────────────────────────────

    def mutated_factor(self, kind: BlockKind) -> float:
        return self.mutated_factors[kind]

    def with_changes(self, **changes) -> EngineConfig:
        return replace(self, **changes)

    # ── Loading ──────────────────────────────────────────────────────

    @classmethod
    def from_tuning(cls) -> EngineConfig:
        """Build from the ``[metabolism]`` tables of the loaded tuning file.

        Missing keys fall back to the defaults in ``core.constants``.
        Unknown kind names in ``[metabolism.mutated_factor]`` raise
        ``ConfigError``.
        """
        sched = "metabolism"
        solver = "metabolism.solver"

        factors = _default_factors()
        raw = tuning.section("metabolism.mutated_factor")
        default_m = raw.pop("default", None)
        if default_m is not None:
            factors = {kind: float(default_m) for kind in BlockKind}
        for name, m in raw.items():
            try:
                factors[BlockKind.parse(name)] = float(m)
            except ValueError as ex:
                raise ConfigError(str(ex), context={"section": "mutated_factor"})

        return cls(
            tick_period=float(tuning.get(sched, "tick_period", C.TICK_PERIOD)),
            async_ticks=bool(tuning.get(sched, "async_ticks", C.ASYNC_TICKS)),
            tick_budget=float(tuning.get(sched, "tick_budget", C.TICK_BUDGET)),
            max_catch_up=int(tuning.get(sched, "max_catch_up",
                                        C.MAX_CATCH_UP_TICKS)),
            gene_queue_size=int(tuning.get(sched, "gene_queue_size",
                                           C.GENE_QUEUE_SIZE)),
            threshold_fraction=float(tuning.get(solver, "threshold_fraction",
                                                C.THRESHOLD_FRACTION)),
            damping=float(tuning.get(solver, "damping", C.DAMPING)),
            max_passes=int(tuning.get(solver, "max_passes", C.MAX_PASSES)),
            epsilon=float(tuning.get(solver, "epsilon", C.CONVERGENCE_EPSILON)),
            parallel_edge_threshold=int(tuning.get(
                solver, "parallel_edge_threshold", C.PARALLEL_EDGE_THRESHOLD)),
            parallel_workers=int(tuning.get(solver, "parallel_workers",
                                            C.PARALLEL_WORKERS)),
            unrouted_policy=str(tuning.get(solver, "unrouted_policy",
                                           C.UNROUTED_EXPORT)),
            mutated_factors=factors,
        )
