"""metabolism/graph_store.py — Canonical metabolic topology.

The live graph is never edited in place.  Every change goes through a
pure function that copies, edits the copy, validates it and returns a
new graph with ``revision + 1``; the engine then swaps its reference.

    graph = build(tomllib.load(f))            # designer definitions
    graph = apply_commit(graph, [SetFraction("e1", 0.3)])
    graph = apply_status_patch(graph, BlockKind.RESPIRATION,
                               BlockStatus.silent())
"""

from __future__ import annotations
import math
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Mapping

from components.blocks import BlockKind, BlockStatus
from components.graph import MetabolicEdge, MetabolicNode
from core.constants import FRACTION_EPSILON
from metabolism.edits import (
    AddEdge, AddNode, GraphEdit, OverrideStatus, RemoveEdge, RemoveNode,
    SetCapacity, SetEnzymeTier, SetFraction, SetThreshold, describe,
)
from metabolism.errors import ConcurrentCommitConflict, InvalidTopology


class MetabolicGraph:
    """Node map plus ordered edge list.

    Node iteration follows insertion order; edge order is the solver's
    tie-break order, so both are preserved through copies and saves.
    """

    def __init__(self, nodes: Mapping[str, MetabolicNode] | None = None,
                 edges: Iterable[MetabolicEdge] | None = None,
                 revision: int = 0) -> None:
        self.nodes: dict[str, MetabolicNode] = dict(nodes or {})
        self.edges: list[MetabolicEdge] = list(edges or [])
        self.revision = revision

    # ── Construction ─────────────────────────────────────────────────

    def add_node(self, node: MetabolicNode) -> None:
        self.nodes[node.id] = node

    def add_edge(self, edge: MetabolicEdge) -> None:
        self.edges.append(edge)

    def copy(self) -> MetabolicGraph:
        """Independent storage; records are immutable so they are shared."""
        return MetabolicGraph(self.nodes, self.edges, self.revision)

    # ── Queries ──────────────────────────────────────────────────────

    def get_node(self, node_id: str) -> MetabolicNode | None:
        return self.nodes.get(node_id)

    def get_edge(self, edge_id: str) -> MetabolicEdge | None:
        for e in self.edges:
            if e.id == edge_id:
                return e
        return None

    def edge_position(self, edge_id: str) -> int | None:
        for i, e in enumerate(self.edges):
            if e.id == edge_id:
                return i
        return None

    def outgoing(self, node_id: str) -> list[MetabolicEdge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> list[MetabolicEdge]:
        return [e for e in self.edges if e.target == node_id]

    def nodes_of_kind(self, kind: BlockKind) -> list[MetabolicNode]:
        return [n for n in self.nodes.values() if n.kind is kind]

    def fraction_sum(self, node_id: str) -> float:
        return sum(e.fraction for e in self.edges if e.source == node_id)

    def same_topology(self, other: MetabolicGraph) -> bool:
        return (list(self.nodes.items()) == list(other.nodes.items())
                and self.edges == other.edges)

    def __repr__(self) -> str:
        return (f"MetabolicGraph(nodes={len(self.nodes)}, "
                f"edges={len(self.edges)}, rev={self.revision})")

    # ── Serialization ────────────────────────────────────────────────

    @classmethod
    def from_toml(cls, filepath: str | Path) -> MetabolicGraph:
        """Load designer definitions from a TOML file.

        Expected format:

            [nodes.chloroplast]
            kind = "light_capture"
            capacity = 10.0
            status = "active"

            [[edges]]
            id = "chloro_glyco"
            source = "chloroplast"
            target = "glycolysis"
            fraction = 0.6
            enzyme_tier = 1.0

        Raises ``InvalidTopology`` if the definitions do not validate.
        """
        filepath = Path(filepath)
        if not filepath.exists():
            print(f"[GRAPH] block definitions not found: {filepath}")
            return cls()

        with open(filepath, "rb") as f:
            data = tomllib.load(f)

        graph = build(data)
        print(f"[GRAPH] loaded {len(graph.nodes)} blocks, "
              f"{len(graph.edges)} edges from {filepath}")
        return graph

    def to_dict(self) -> dict:
        """Serialize to the same shape ``build`` accepts (for saves)."""
        return {
            "revision": self.revision,
            "nodes": {nid: n.to_dict() for nid, n in self.nodes.items()},
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetabolicGraph:
        graph = build(data)
        graph.revision = int(data.get("revision", 0))
        return graph


# ═══════════════════════════════════════════════════════════════════
#  Validation
# ═══════════════════════════════════════════════════════════════════

def _bad_number(value: float | None, allow_none: bool = False) -> bool:
    if value is None:
        return not allow_none
    return not math.isfinite(value) or value < 0.0


def check(graph: MetabolicGraph) -> list[str]:
    """Return every invariant violation in *graph* (empty when valid)."""
    problems: list[str] = []

    for nid, node in graph.nodes.items():
        if nid != node.id:
            problems.append(f"node key {nid!r} does not match id {node.id!r}")
        if _bad_number(node.capacity):
            problems.append(f"node {nid!r} has invalid capacity {node.capacity}")
        if _bad_number(node.threshold, allow_none=True):
            problems.append(f"node {nid!r} has invalid threshold {node.threshold}")

    seen: set[str] = set()
    sums: dict[str, float] = {}
    for e in graph.edges:
        if e.id in seen:
            problems.append(f"duplicate edge id {e.id!r}")
        seen.add(e.id)
        if e.source not in graph.nodes:
            problems.append(f"edge {e.id!r} references unknown source {e.source!r}")
        if e.target not in graph.nodes:
            problems.append(f"edge {e.id!r} references unknown target {e.target!r}")
        if not (math.isfinite(e.fraction) and 0.0 <= e.fraction <= 1.0):
            problems.append(f"edge {e.id!r} fraction {e.fraction} outside [0, 1]")
        if _bad_number(e.enzyme_tier):
            problems.append(f"edge {e.id!r} has invalid enzyme tier {e.enzyme_tier}")
        if _bad_number(e.capacity, allow_none=True):
            problems.append(f"edge {e.id!r} has invalid capacity {e.capacity}")
        if _bad_number(e.threshold, allow_none=True):
            problems.append(f"edge {e.id!r} has invalid threshold {e.threshold}")
        sums[e.source] = sums.get(e.source, 0.0) + e.fraction

    for nid, total in sums.items():
        if total > 1.0 + FRACTION_EPSILON:
            problems.append(f"node {nid!r} routes {total:.6g} of its output (> 1)")

    return problems


def validate(graph: MetabolicGraph) -> MetabolicGraph:
    """Raise ``InvalidTopology`` listing every problem; return *graph*."""
    problems = check(graph)
    if problems:
        raise InvalidTopology(problems, context={"revision": graph.revision})
    return graph


# ═══════════════════════════════════════════════════════════════════
#  Build from definitions
# ═══════════════════════════════════════════════════════════════════

def _opt_float(value) -> float | None:
    return None if value is None else float(value)


def _node_from_def(node_id: str, ndata: Mapping[str, Any]) -> MetabolicNode:
    kind = BlockKind.parse(ndata.get("kind", ""))
    status = BlockStatus.from_dict(ndata.get("status", "active"))
    override = ndata.get("override")
    return MetabolicNode(
        id=node_id,
        kind=kind,
        capacity=float(ndata.get("capacity", 1.0)),
        status=status,
        override=BlockStatus.from_dict(override) if override else None,
        threshold=_opt_float(ndata.get("threshold")),
    )


def _edge_from_def(edata: Mapping[str, Any]) -> MetabolicEdge:
    source = str(edata["source"])
    target = str(edata["target"])
    return MetabolicEdge(
        id=str(edata.get("id") or f"{source}->{target}"),
        source=source,
        target=target,
        fraction=float(edata.get("fraction", 1.0)),
        enzyme_tier=float(edata.get("enzyme_tier", 1.0)),
        capacity=_opt_float(edata.get("capacity")),
        threshold=_opt_float(edata.get("threshold")),
    )


def build(definitions: Mapping[str, Any]) -> MetabolicGraph:
    """Build and validate a graph from static block definitions.

    ``definitions["nodes"]`` is either a table keyed by node id or a
    list of tables with an ``id`` key; ``definitions["edges"]`` is a
    list of edge tables.  Raises ``InvalidTopology`` with every problem
    found.
    """
    graph = MetabolicGraph()
    problems: list[str] = []

    raw_nodes = definitions.get("nodes", {})
    if isinstance(raw_nodes, Mapping):
        node_items = list(raw_nodes.items())
    else:
        node_items = [(str(nd.get("id", "")), nd) for nd in raw_nodes]

    for node_id, ndata in node_items:
        if not isinstance(ndata, Mapping):
            problems.append(f"node {node_id!r} definition is not a table")
            continue
        if node_id in graph.nodes:
            problems.append(f"duplicate node id {node_id!r}")
            continue
        try:
            graph.add_node(_node_from_def(node_id, ndata))
        except (ValueError, KeyError, TypeError) as ex:
            problems.append(f"node {node_id!r}: {ex}")

    for i, edata in enumerate(definitions.get("edges", [])):
        try:
            graph.add_edge(_edge_from_def(edata))
        except (ValueError, KeyError, TypeError) as ex:
            problems.append(f"edge #{i}: bad definition ({ex})")

    problems.extend(check(graph))
    if problems:
        raise InvalidTopology(problems, context={"source": "definitions"})
    return graph


# ═══════════════════════════════════════════════════════════════════
#  Commits and status patches
# ═══════════════════════════════════════════════════════════════════

def _replace_node(graph: MetabolicGraph, node_id: str, **changes) -> str | None:
    node = graph.nodes.get(node_id)
    if node is None:
        return f"node {node_id!r} does not exist"
    graph.nodes[node_id] = replace(node, **changes)
    return None


def _replace_edge(graph: MetabolicGraph, edge_id: str, **changes) -> str | None:
    pos = graph.edge_position(edge_id)
    if pos is None:
        return f"edge {edge_id!r} does not exist"
    graph.edges[pos] = replace(graph.edges[pos], **changes)
    return None


def apply_edit(graph: MetabolicGraph, edit: GraphEdit) -> str | None:
    """Apply *edit* to *graph* in place.  Returns a precondition failure."""
    if isinstance(edit, AddNode):
        if edit.node.id in graph.nodes:
            return f"node {edit.node.id!r} already exists"
        graph.add_node(edit.node)
        return None
    if isinstance(edit, RemoveNode):
        if graph.nodes.pop(edit.node_id, None) is None:
            return f"node {edit.node_id!r} does not exist"
        return None
    if isinstance(edit, AddEdge):
        if graph.edge_position(edit.edge.id) is not None:
            return f"edge {edit.edge.id!r} already exists"
        graph.add_edge(edit.edge)
        return None
    if isinstance(edit, RemoveEdge):
        pos = graph.edge_position(edit.edge_id)
        if pos is None:
            return f"edge {edit.edge_id!r} does not exist"
        del graph.edges[pos]
        return None
    if isinstance(edit, SetFraction):
        return _replace_edge(graph, edit.edge_id, fraction=float(edit.fraction))
    if isinstance(edit, SetEnzymeTier):
        return _replace_edge(graph, edit.edge_id, enzyme_tier=float(edit.tier))
    if isinstance(edit, SetCapacity):
        return _replace_node(graph, edit.node_id, capacity=float(edit.capacity))
    if isinstance(edit, SetThreshold):
        return _replace_node(graph, edit.node_id,
                             threshold=_opt_float(edit.threshold))
    if isinstance(edit, OverrideStatus):
        return _replace_node(graph, edit.node_id, override=edit.status)
    return f"unsupported edit {edit!r}"


def apply_commit(graph: MetabolicGraph, edits: Iterable[GraphEdit],
                 base_revision: int | None = None) -> MetabolicGraph:
    """Apply *edits* in order and return the new validated graph.

    The batch is all-or-nothing: *graph* is never touched.  An edit
    whose target is missing (or already present) raises
    ``ConcurrentCommitConflict`` when *base_revision* is given and the
    graph has advanced past it, else ``InvalidTopology``.  Invariant
    violations in the final graph always raise ``InvalidTopology``.
    """
    work = graph.copy()
    stale = base_revision is not None and graph.revision != base_revision
    edits = list(edits)

    for i, edit in enumerate(edits):
        problem = apply_edit(work, edit)
        if problem is None:
            continue
        ctx = {"edit_index": i, "edit": describe(edit),
               "revision": graph.revision, "base_revision": base_revision}
        if stale:
            raise ConcurrentCommitConflict(
                f"{problem} (live graph advanced from revision "
                f"{base_revision} to {graph.revision})", context=ctx)
        raise InvalidTopology([problem], context=ctx)

    problems = check(work)
    if problems:
        raise InvalidTopology(problems, context={
            "revision": graph.revision, "edits": len(edits)})

    work.revision = graph.revision + 1
    return work


def patch_statuses(graph: MetabolicGraph,
                   statuses: Mapping[BlockKind, BlockStatus]) -> MetabolicGraph:
    """Set the gene-driven status of every node of each listed kind.

    Player overrides are kept.  Nodes are never added or removed.
    """
    work = graph.copy()
    for nid, node in work.nodes.items():
        status = statuses.get(node.kind)
        if status is not None and status != node.status:
            work.nodes[nid] = replace(node, status=status)
    work.revision = graph.revision + 1
    return work


def apply_status_patch(graph: MetabolicGraph, kind: BlockKind,
                       status: BlockStatus) -> MetabolicGraph:
    """Pure and total: update every node of *kind* to *status*."""
    return patch_statuses(graph, {kind: status})
