"""components/graph.py — Node and edge records of the metabolic graph.

Records are immutable: edits build a new record with
``dataclasses.replace`` and store it into a (copied) graph, so two
graphs can share records without either seeing the other's changes.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from components.blocks import BlockKind, BlockStatus


@dataclass(frozen=True, slots=True)
class MetabolicNode:
    """A single metabolic block instance.

    Attributes
    ----------
    id : str
        Stable identifier, unchanged across rebuilds.
    kind : BlockKind
        Which pathway this block runs.
    capacity : float
        Maximum throughput per tick.
    status : BlockStatus
        Gene-driven activation (patched by status propagation).
    override : BlockStatus | None
        Player-set status; wins over ``status`` when present.
    threshold : float | None
        Absolute back-pressure threshold for this node's intake.
    """
    id: str
    kind: BlockKind
    capacity: float = 1.0
    status: BlockStatus = field(default_factory=BlockStatus.active)
    override: BlockStatus | None = None
    threshold: float | None = None

    @property
    def effective_status(self) -> BlockStatus:
        return self.override if self.override is not None else self.status

    def to_dict(self) -> dict:
        d: dict = {
            "kind": self.kind.key,
            "capacity": self.capacity,
            "status": self.status.to_dict(),
        }
        if self.override is not None:
            d["override"] = self.override.to_dict()
        if self.threshold is not None:
            d["threshold"] = self.threshold
        return d


@dataclass(frozen=True, slots=True)
class MetabolicEdge:
    """A routed connection ``source → target``.

    ``fraction`` is the share of the source's supply sent along this
    edge, ``enzyme_tier`` multiplies it.  ``capacity`` caps how much of
    the source's supply the edge can see (``None`` = unbounded).
    ``threshold`` overrides the target's back-pressure threshold.
    """
    id: str
    source: str
    target: str
    fraction: float = 1.0
    enzyme_tier: float = 1.0
    capacity: float | None = None
    threshold: float | None = None

    def to_dict(self) -> dict:
        d: dict = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "fraction": self.fraction,
            "enzyme_tier": self.enzyme_tier,
        }
        if self.capacity is not None:
            d["capacity"] = self.capacity
        if self.threshold is not None:
            d["threshold"] = self.threshold
        return d
