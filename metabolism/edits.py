"""metabolism/edits.py — Edit commands accepted by ``apply_commit``.

Drafts journal these, ``diff_graphs`` produces them, and the graph
store applies them in submission order.  Each one names its target by
stable id so a list of edits can be replayed against a graph that is
not the one it was recorded on.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Union

from components.blocks import BlockStatus
from components.graph import MetabolicEdge, MetabolicNode


@dataclass(frozen=True, slots=True)
class AddNode:
    """Insert a new block; its id must not already exist."""
    node: MetabolicNode


@dataclass(frozen=True, slots=True)
class RemoveNode:
    """Delete a block.  Edges touching it are *not* removed."""
    node_id: str


@dataclass(frozen=True, slots=True)
class AddEdge:
    """Insert a new edge at the end of the solve order."""
    edge: MetabolicEdge


@dataclass(frozen=True, slots=True)
class RemoveEdge:
    edge_id: str


@dataclass(frozen=True, slots=True)
class SetFraction:
    """Change the routed fraction of an existing edge."""
    edge_id: str
    fraction: float


@dataclass(frozen=True, slots=True)
class SetEnzymeTier:
    edge_id: str
    tier: float


@dataclass(frozen=True, slots=True)
class SetCapacity:
    """Change a block's maximum throughput."""
    node_id: str
    capacity: float


@dataclass(frozen=True, slots=True)
class SetThreshold:
    """Set or clear (``None``) a block's absolute back-pressure threshold."""
    node_id: str
    threshold: float | None


@dataclass(frozen=True, slots=True)
class OverrideStatus:
    """Pin a block's status regardless of gene expression.

    ``status=None`` clears the override.
    """
    node_id: str
    status: BlockStatus | None


# Union of every edit type; extend as new edits are added.
GraphEdit = Union[AddNode, RemoveNode, AddEdge, RemoveEdge, SetFraction,
                  SetEnzymeTier, SetCapacity, SetThreshold, OverrideStatus]


def describe(edit: GraphEdit) -> str:
    """Short one-line label for logs and the readout."""
    if isinstance(edit, AddNode):
        return f"+node {edit.node.id} ({edit.node.kind.key})"
    if isinstance(edit, RemoveNode):
        return f"-node {edit.node_id}"
    if isinstance(edit, AddEdge):
        e = edit.edge
        return f"+edge {e.id} {e.source}->{e.target} x{e.fraction:g}"
    if isinstance(edit, RemoveEdge):
        return f"-edge {edit.edge_id}"
    if isinstance(edit, SetFraction):
        return f"edge {edit.edge_id} fraction={edit.fraction:g}"
    if isinstance(edit, SetEnzymeTier):
        return f"edge {edit.edge_id} tier={edit.tier:g}"
    if isinstance(edit, SetCapacity):
        return f"node {edit.node_id} capacity={edit.capacity:g}"
    if isinstance(edit, SetThreshold):
        return f"node {edit.node_id} threshold={edit.threshold}"
    if isinstance(edit, OverrideStatus):
        label = edit.status.label() if edit.status else "cleared"
        return f"node {edit.node_id} override={label}"
    return repr(edit)
