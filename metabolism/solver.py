"""metabolism/solver.py — Bounded iterative flux relaxation.

One solve turns a validated graph snapshot into a ``FluxResult``.
The topology may contain cycles, so instead of a topological sweep
the solver runs up to ``max_passes`` relaxation passes:

  1. Every node's supply is ``capacity × status multiplier × stress``.
     Stress is the temporary test multiplier and may lift supply past
     capacity while it lasts.  The status multiplier is applied here
     and nowhere else.
  2. Each pass proposes, in edge insertion order,
     ``min(supply[src], edge cap) × fraction × tier × admission[dst]``.
     A source never sends more than its supply in total.
  3. A target whose proposed intake passes its threshold realizes
     exactly the threshold, the cut shared by all of its feeding edges
     in proportion to their proposals.
  4. Damping acts on admission: the next pass proposes the threshold
     plus ``(1 - damping)`` of this pass's excess into that target, so
     upstream output is throttled over the following passes.

The loop stops once the largest per-node change between passes drops
below ``epsilon``, or as soon as the next pass provably realizes the
same flows.  The latter holds unless a supply-clamped source feeds a
throttled target, so acyclic graphs and plain cycles settle after one
pass, congested or not.  Running out of passes publishes the last pass
with ``converged=False``.

    solver = FluxSolver(config)
    result = solver.solve(graph, generation=3)
"""

from __future__ import annotations
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from components.flux import FluxResult
from components.graph import MetabolicEdge
from core.constants import UNROUTED_EXPORT
from metabolism.config import EngineConfig
from metabolism.graph_store import MetabolicGraph


@dataclass(frozen=True, slots=True)
class _EdgeBase:
    """Per-edge numbers that do not change between passes."""
    index: int
    source: str
    target: str
    base: float        # min(supply, cap) × fraction × tier, before admission
    cap: float         # edge capacity (inf when unbounded)


def plan_batches(edges: list[MetabolicEdge]) -> list[list[int]]:
    """Split edge indices into batches whose targets are pairwise distinct.

    Greedy, in insertion order: each edge joins the first batch that
    does not already feed its target.
    """
    batches: list[list[int]] = []
    targets: list[set[str]] = []
    for i, e in enumerate(edges):
        for batch, seen in zip(batches, targets):
            if e.target not in seen:
                batch.append(i)
                seen.add(e.target)
                break
        else:
            batches.append([i])
            targets.append({e.target})
    return batches


class FluxSolver:
    """Stateless between solves; holds only the configuration."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.solves = 0
        self.parallel_solves = 0

    # ── Initialisation ───────────────────────────────────────────────

    def _node_limits(self, graph: MetabolicGraph, stress: float):
        supply: dict[str, float] = {}
        limit: dict[str, float] = {}
        threshold: dict[str, float] = {}

        overrides: dict[str, float] = {}
        for e in graph.edges:
            if e.threshold is not None:
                overrides[e.target] = min(overrides.get(e.target, math.inf),
                                          e.threshold)

        frac = self.config.threshold_fraction
        for nid, node in graph.nodes.items():
            mult = node.effective_status.multiplier
            cap = max(0.0, node.capacity)
            lim = cap * mult
            supply[nid] = lim * max(0.0, stress)
            limit[nid] = lim
            if node.threshold is not None:
                overrides[nid] = min(overrides.get(nid, math.inf),
                                     node.threshold)
            thr = overrides.get(nid, lim * frac)
            threshold[nid] = max(0.0, min(thr, lim))
        return supply, limit, threshold

    def _edge_bases(self, graph: MetabolicGraph,
                    supply: dict[str, float]) -> list[_EdgeBase]:
        out: list[_EdgeBase] = []
        for i, e in enumerate(graph.edges):
            cap = math.inf if e.capacity is None else max(0.0, e.capacity)
            avail = min(supply.get(e.source, 0.0), cap)
            base = avail * e.fraction * e.enzyme_tier
            if not math.isfinite(base) or base < 0.0:
                base = 0.0
            out.append(_EdgeBase(i, e.source, e.target, base, cap))
        return out

    # ── Proposal step (parallel when large) ──────────────────────────

    @staticmethod
    def _propose_batch(bases: list[_EdgeBase], batch: list[int],
                       admit: dict[str, float]) -> list[tuple[int, float]]:
        out = []
        for i in batch:
            b = bases[i]
            out.append((i, b.base * admit.get(b.target, 1.0)))
        return out

    def _propose(self, bases: list[_EdgeBase], batches: list[list[int]] | None,
                 admit: dict[str, float]) -> list[float]:
        proposed = [0.0] * len(bases)
        if batches is None:
            for b in bases:
                proposed[b.index] = b.base * admit.get(b.target, 1.0)
            return proposed

        with ThreadPoolExecutor(max_workers=self.config.parallel_workers) as ex:
            results = list(ex.map(
                lambda batch: self._propose_batch(bases, batch, admit), batches))
        for chunk in results:
            for i, value in chunk:
                proposed[i] = value
        return proposed

    # ── Solve ────────────────────────────────────────────────────────

    def solve(self, graph: MetabolicGraph, generation: int = 0,
              stress: float = 1.0) -> FluxResult:
        cfg = self.config
        self.solves += 1

        node_ids = list(graph.nodes)
        supply, limit, threshold = self._node_limits(graph, stress)
        bases = self._edge_bases(graph, supply)

        batches = None
        if len(bases) >= cfg.parallel_edge_threshold:
            batches = plan_batches(graph.edges)
            self.parallel_solves += 1

        # Unrouted remainder per source
        routed: dict[str, float] = {nid: 0.0 for nid in node_ids}
        for e in graph.edges:
            routed[e.source] += e.fraction
        export_share: dict[str, float] = {}
        for nid in node_ids:
            if cfg.unrouted_policy == UNROUTED_EXPORT:
                export_share[nid] = supply[nid] * max(0.0, 1.0 - routed[nid])
            else:
                export_share[nid] = 0.0

        admit: dict[str, float] = {nid: 1.0 for nid in node_ids}
        saturated: dict[str, bool] = {nid: False for nid in node_ids}
        prev_in: dict[str, float] | None = None
        prev_out: dict[str, float] | None = None

        realized: list[float] = [0.0] * len(bases)
        intake: dict[str, float] = {}
        output: dict[str, float] = {}
        exported: dict[str, float] = {}
        residual = math.inf
        converged = False
        passes = 0

        for p in range(1, cfg.max_passes + 1):
            passes = p
            proposed = self._propose(bases, batches, admit)

            # A source never sends more than its supply in total
            out_total: dict[str, float] = {nid: 0.0 for nid in node_ids}
            for b in bases:
                out_total[b.source] += proposed[b.index]
            clamped: set[str] = set()
            for b in bases:
                total = out_total[b.source]
                if total > supply[b.source] and total > 0.0:
                    proposed[b.index] *= supply[b.source] / total
                    clamped.add(b.source)

            # Merged in insertion order regardless of batching
            p_in: dict[str, float] = {nid: 0.0 for nid in node_ids}
            p_out: dict[str, float] = {nid: 0.0 for nid in node_ids}
            for b in bases:
                p_in[b.target] += proposed[b.index]
                p_out[b.source] += proposed[b.index]

            if prev_in is None:
                # Pass 0: the unthrottled proposal
                prev_in = dict(p_in)
                prev_out = self._outputs(p_out, export_share, supply)[0]
                for nid in node_ids:
                    saturated[nid] = p_in[nid] > threshold[nid] + 1e-12

            # Realized intake never passes the threshold; the cut is
            # shared by every feeding edge in proportion to its proposal.
            scale: dict[str, float] = {}
            throttle: dict[str, float] = {}
            for nid in node_ids:
                want = p_in[nid]
                thr = threshold[nid]
                if want <= thr or want <= 0.0:
                    scale[nid] = 1.0
                    continue
                scale[nid] = max(0.0, min(thr, limit[nid]) / want)
                # Next pass proposes the threshold plus the damped excess
                throttle[nid] = (thr + (want - thr) * (1.0 - cfg.damping)) / want

            r_in: dict[str, float] = {nid: 0.0 for nid in node_ids}
            r_out: dict[str, float] = {nid: 0.0 for nid in node_ids}
            for b in bases:
                flow = proposed[b.index] * scale[b.target]
                flow = max(0.0, min(flow, b.cap))
                realized[b.index] = flow
                r_in[b.target] += flow
                r_out[b.source] += flow

            intake = r_in
            output, exported = self._outputs(r_out, export_share, supply)

            residual = 0.0
            for nid in node_ids:
                residual = max(residual,
                               abs(intake[nid] - prev_in[nid]),
                               abs(output[nid] - prev_out[nid]))

            for nid, factor in throttle.items():
                admit[nid] *= factor

            prev_in, prev_out = intake, output
            if self._settled(bases, clamped, throttle):
                residual = 0.0
                converged = True
                break
            if residual < cfg.epsilon:
                converged = True
                break

        edge_flux = {e.id: realized[i] for i, e in enumerate(graph.edges)}
        return FluxResult(
            generation=generation,
            revision=graph.revision,
            output=output,
            intake=intake,
            saturated=saturated,
            edge_flux=edge_flux,
            exported=exported,
            converged=converged,
            passes=passes,
            residual=0.0 if residual == math.inf else residual,
        )

    @staticmethod
    def _settled(bases: list[_EdgeBase], clamped: set[str],
                 throttle: dict[str, float]) -> bool:
        """True when the next pass would realize exactly this one.

        A throttled target keeps realizing its threshold whatever its
        admission, so only a supply-clamped source feeding a throttled
        target can move flows between passes: lowering that target's
        admission frees supply for the source's other edges.
        """
        if not throttle or not clamped:
            return True
        return not any(b.source in clamped and b.target in throttle
                       for b in bases)

    @staticmethod
    def _outputs(outflow: dict[str, float], export_share: dict[str, float],
                 supply: dict[str, float]):
        """Node output = routed outflow + fallback export, capped at supply."""
        output: dict[str, float] = {}
        exported: dict[str, float] = {}
        for nid, routed in outflow.items():
            room = max(0.0, supply[nid] - routed)
            ex = min(export_share[nid], room)
            exported[nid] = ex
            output[nid] = routed + ex
        return output, exported
