"""components/flux.py — Published flux snapshot.

A ``FluxResult`` is produced once per rebuild and never mutated; the
engine publishes it by swapping a reference.  Readers may hold on to
one for as long as they like.

    result = engine.latest()
    result.output["chloroplast"]      # units per tick
    result.saturated["mito"]          # back-pressure flag
    result.generation                 # dirty-flag generation it reflects
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


def _frozen(d: Mapping | None) -> Mapping:
    return MappingProxyType(dict(d or {}))


@dataclass(frozen=True)
class FluxResult:
    """Immutable per-generation solve output.

    Attributes
    ----------
    generation : int
        Dirty-flag generation this result corresponds to.
    revision : int
        Revision of the graph that was solved.
    output : Mapping[str, float]
        Per-node published output rate (routed + exported).
    intake : Mapping[str, float]
        Per-node realized input.
    saturated : Mapping[str, bool]
        True where the node's intake was pushed past its threshold.
    edge_flux : Mapping[str, float]
        Per-edge realized flux.
    exported : Mapping[str, float]
        Per-node unrouted remainder counted as fallback export.
    converged : bool
        False when the solver ran out of passes.
    passes : int
        Relaxation passes performed.
    residual : float
        Largest per-node change in the last pass.
    """
    generation: int = 0
    revision: int = 0
    output: Mapping[str, float] = field(default_factory=dict)
    intake: Mapping[str, float] = field(default_factory=dict)
    saturated: Mapping[str, bool] = field(default_factory=dict)
    edge_flux: Mapping[str, float] = field(default_factory=dict)
    exported: Mapping[str, float] = field(default_factory=dict)
    converged: bool = True
    passes: int = 0
    residual: float = 0.0

    def __post_init__(self):
        for name in ("output", "intake", "saturated", "edge_flux", "exported"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    # ── Queries ──────────────────────────────────────────────────────

    def total_intake(self, node_id: str) -> float:
        return self.intake.get(node_id, 0.0)

    def same_flux(self, other: FluxResult) -> bool:
        """True when both results carry identical numbers.

        Generation and revision are ignored.
        """
        return (dict(self.output) == dict(other.output)
                and dict(self.intake) == dict(other.intake)
                and dict(self.saturated) == dict(other.saturated)
                and dict(self.edge_flux) == dict(other.edge_flux)
                and dict(self.exported) == dict(other.exported)
                and self.converged == other.converged)

    def summary_lines(self) -> list[str]:
        """Human-readable per-node lines for the debug readout."""
        lines = [f"gen {self.generation}  rev {self.revision}  "
                 f"passes {self.passes}  "
                 f"{'converged' if self.converged else 'NOT CONVERGED'}"]
        for nid, out in self.output.items():
            flag = " [BP]" if self.saturated.get(nid) else ""
            lines.append(f"  {nid:<22} in {self.intake.get(nid, 0.0):7.3f}"
                         f"  out {out:7.3f}{flag}")
        return lines


EMPTY_RESULT = FluxResult()
