"""metabolism/draft.py — Copy-on-write drafts and the commit gateway.

The editing collaborator never touches the live graph.  It takes a
``Draft`` (a private copy with its own node/edge storage), edits it
freely, and hands it back to ``commit``::

    draft = engine.gateway.acquire()
    draft.set_fraction("glyco_tca", 0.3)
    draft.add_edge("glycolysis", "fermenter", fraction=0.2)
    try:
        gen = engine.gateway.commit(draft)      # published in ``gen``
    except (InvalidTopology, ConcurrentCommitConflict) as ex:
        show(ex.user_message)                   # retake and redo

On commit the gateway diffs the draft against the copy it started from
(by stable id) and replays that diff onto whatever the live graph is
now.  Gene-driven ``status`` is never part of a diff, so status
patches that landed in the meantime are kept and cannot conflict.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

from components.blocks import BlockKind, BlockStatus
from components.graph import MetabolicEdge, MetabolicNode
from core.events import CommitAccepted, CommitRejected
from metabolism.edits import (
    AddEdge, AddNode, GraphEdit, OverrideStatus, RemoveEdge, RemoveNode,
    SetCapacity, SetEnzymeTier, SetFraction, SetThreshold, describe,
)
from metabolism.errors import (
    ConcurrentCommitConflict, InvalidTopology, MetabolismError,
)
from metabolism.graph_store import (
    MetabolicGraph, apply_commit, apply_edit, check,
)

if TYPE_CHECKING:
    from metabolism.engine import MetabolicEngine


# ═══════════════════════════════════════════════════════════════════
#  Diff
# ═══════════════════════════════════════════════════════════════════

def _edge_shape(e: MetabolicEdge) -> tuple:
    """Fields that can only change by removing and re-adding the edge."""
    return (e.source, e.target, e.capacity, e.threshold)


def diff_graphs(base: MetabolicGraph, target: MetabolicGraph) -> list[GraphEdit]:
    """Ordered edits that turn *base* into *target*.

    Order: removed edges, removed nodes, added nodes, node field
    changes, added edges, edge field changes.  Nodes whose kind changed
    and edges whose endpoints, capacity or threshold changed are
    removed and re-added.  Gene-driven ``status`` is ignored.
    """
    base_edges = {e.id: e for e in base.edges}
    target_edges = {e.id: e for e in target.edges}

    def node_replaced(nid: str) -> bool:
        return base.nodes[nid].kind is not target.nodes[nid].kind

    def edge_replaced(eid: str) -> bool:
        return _edge_shape(base_edges[eid]) != _edge_shape(target_edges[eid])

    edits: list[GraphEdit] = []

    for e in base.edges:
        if e.id not in target_edges or edge_replaced(e.id):
            edits.append(RemoveEdge(e.id))

    for nid in base.nodes:
        if nid not in target.nodes or node_replaced(nid):
            edits.append(RemoveNode(nid))

    for nid, node in target.nodes.items():
        if nid not in base.nodes or node_replaced(nid):
            edits.append(AddNode(node))

    for nid, new in target.nodes.items():
        if nid not in base.nodes or node_replaced(nid):
            continue
        old = base.nodes[nid]
        if new.capacity != old.capacity:
            edits.append(SetCapacity(nid, new.capacity))
        if new.threshold != old.threshold:
            edits.append(SetThreshold(nid, new.threshold))
        if new.override != old.override:
            edits.append(OverrideStatus(nid, new.override))

    for e in target.edges:
        if e.id not in base_edges or edge_replaced(e.id):
            edits.append(AddEdge(e))

    for e in target.edges:
        if e.id not in base_edges or edge_replaced(e.id):
            continue
        old = base_edges[e.id]
        if e.fraction != old.fraction:
            edits.append(SetFraction(e.id, e.fraction))
        if e.enzyme_tier != old.enzyme_tier:
            edits.append(SetEnzymeTier(e.id, e.enzyme_tier))

    return edits


# ═══════════════════════════════════════════════════════════════════
#  Draft
# ═══════════════════════════════════════════════════════════════════

class Draft:
    """Private working copy of the live graph plus an edit journal.

    Edits apply immediately to ``graph`` so the editor can preview
    them.  Missing/duplicate ids raise ``InvalidTopology`` right away;
    whole-graph invariants are only enforced at commit, so a draft may
    pass through invalid states (see ``problems()``).
    """

    def __init__(self, live: MetabolicGraph) -> None:
        self.base = live.copy()
        self.graph = live.copy()
        self.base_revision = live.revision
        self.edits: list[GraphEdit] = []
        self.closed = False
        self._edge_seq = 0

    # ── Generic ──────────────────────────────────────────────────────

    def apply(self, edit: GraphEdit) -> None:
        if self.closed:
            raise MetabolismError("draft is closed",
                                  context={"base_revision": self.base_revision})
        problem = apply_edit(self.graph, edit)
        if problem is not None:
            raise InvalidTopology([problem], context={"edit": describe(edit)})
        self.edits.append(edit)

    def diff(self) -> list[GraphEdit]:
        return diff_graphs(self.base, self.graph)

    def problems(self) -> list[str]:
        return check(self.graph)

    @property
    def dirty(self) -> bool:
        return bool(self.edits)

    # ── Node edits ───────────────────────────────────────────────────

    def add_node(self, node_id: str, kind: BlockKind | str,
                 capacity: float = 1.0, *,
                 threshold: float | None = None) -> MetabolicNode:
        node = MetabolicNode(id=node_id, kind=BlockKind.parse(kind),
                             capacity=float(capacity), threshold=threshold)
        self.apply(AddNode(node))
        return node

    def remove_node(self, node_id: str, cascade: bool = False) -> None:
        """Remove a node.  With *cascade*, its edges go first."""
        if cascade:
            for e in list(self.graph.edges):
                if node_id in (e.source, e.target):
                    self.apply(RemoveEdge(e.id))
        self.apply(RemoveNode(node_id))

    def set_capacity(self, node_id: str, capacity: float) -> None:
        self.apply(SetCapacity(node_id, float(capacity)))

    def set_threshold(self, node_id: str, threshold: float | None) -> None:
        self.apply(SetThreshold(node_id, threshold))

    def override_status(self, node_id: str, status: BlockStatus | None) -> None:
        self.apply(OverrideStatus(node_id, status))

    # ── Edge edits ───────────────────────────────────────────────────

    def _fresh_edge_id(self, source: str, target: str) -> str:
        taken = {e.id for e in self.graph.edges} | {e.id for e in self.base.edges}
        eid = f"{source}->{target}"
        while eid in taken:
            self._edge_seq += 1
            eid = f"{source}->{target}#{self._edge_seq}"
        return eid

    def add_edge(self, source: str, target: str, fraction: float = 1.0,
                 enzyme_tier: float = 1.0, *, edge_id: str | None = None,
                 capacity: float | None = None,
                 threshold: float | None = None) -> MetabolicEdge:
        edge = MetabolicEdge(
            id=edge_id or self._fresh_edge_id(source, target),
            source=source, target=target,
            fraction=float(fraction), enzyme_tier=float(enzyme_tier),
            capacity=capacity, threshold=threshold,
        )
        self.apply(AddEdge(edge))
        return edge

    def remove_edge(self, edge_id: str) -> None:
        self.apply(RemoveEdge(edge_id))

    def set_fraction(self, edge_id: str, fraction: float) -> None:
        self.apply(SetFraction(edge_id, float(fraction)))

    def set_enzyme_tier(self, edge_id: str, tier: float) -> None:
        self.apply(SetEnzymeTier(edge_id, float(tier)))

    def __repr__(self) -> str:
        return (f"Draft(base_rev={self.base_revision}, edits={len(self.edits)}, "
                f"closed={self.closed})")


# ═══════════════════════════════════════════════════════════════════
#  Gateway
# ═══════════════════════════════════════════════════════════════════

class DraftGateway:
    """The editing collaborator's only write path into the engine."""

    def __init__(self, engine: MetabolicEngine) -> None:
        self._engine = engine
        self.accepted = 0
        self.rejected = 0

    def acquire(self) -> Draft:
        """Copy of the current live graph, safe to edit from any thread."""
        with self._engine.lock:
            live = self._engine.graph
        return Draft(live)

    def cancel(self, draft: Draft) -> None:
        if not draft.closed:
            draft.closed = True
            self._engine.log.record("commit", "draft cancelled",
                                    details={"edits": len(draft.edits)})

    def commit(self, draft: Draft) -> int:
        """Replay *draft*'s diff onto the live graph.

        Returns the generation in which the change will be published.
        Raises ``InvalidTopology`` or ``ConcurrentCommitConflict``; on
        either the live graph is untouched and the draft stays open so
        the editor can show it, but it must be re-taken to retry.
        """
        if draft.closed:
            raise MetabolismError("draft already committed or cancelled")

        eng = self._engine
        edits = draft.diff()
        if not edits:
            draft.closed = True
            return eng.dirty.generation

        with eng.lock:
            live = eng.graph
            try:
                new = apply_commit(live, edits, base_revision=draft.base_revision)
            except (InvalidTopology, ConcurrentCommitConflict) as ex:
                self.rejected += 1
                reason = type(ex).__name__
                problems = getattr(ex, "problems", [str(ex)])
                print(f"[GATEWAY] commit rejected ({reason}): {ex.log_message()}")
                eng.log.record("commit", f"rejected: {reason}",
                               gen=eng.dirty.generation,
                               details={"problems": problems})
                eng.bus.emit(CommitRejected(reason=reason, message=str(ex),
                                            problems=list(problems)))
                raise
            eng.graph = eng.status_cache.overlay(new)
            gen = eng.dirty.mark()

        draft.closed = True
        self.accepted += 1
        labels = [describe(e) for e in edits]
        print(f"[GATEWAY] commit accepted: {len(edits)} edits → gen {gen}, "
              f"rev {new.revision}")
        eng.log.record("commit", f"accepted {len(edits)} edits", gen=gen,
                       details={"edits": labels, "revision": new.revision})
        eng.bus.emit(CommitAccepted(generation=gen, revision=new.revision,
                                    edits=labels))
        return gen
