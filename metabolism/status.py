"""metabolism/status.py — Gene expression → block status.

The gene model pushes ``(kind, state)`` pairs from any thread::

    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.SILENT)

Nothing happens until the next tick drains the queue.  The whole batch
is folded into the ``StatusCache`` in arrival order and the kinds whose
status actually changed come back as one patch, so a burst of
notifications costs a single dirty mark.

Mapping:
    Expressed → Active
    Mutated   → Mutated(m)   (m from the per-kind config factor)
    other     → Silent
"""

from __future__ import annotations
import threading
from collections import deque
from dataclasses import dataclass
from typing import Mapping

from components.blocks import Activation, BlockKind, BlockStatus, GeneState
from metabolism.config import EngineConfig
from metabolism.graph_store import MetabolicGraph, patch_statuses


@dataclass(frozen=True, slots=True)
class GeneEvent:
    """One notification from the gene-expression model."""
    kind: BlockKind
    state: GeneState | str


def to_status(state: GeneState | str, factor: float) -> BlockStatus:
    if isinstance(state, str):
        try:
            state = GeneState[state.strip().upper()]
        except KeyError:
            return BlockStatus.silent()
    if state is GeneState.EXPRESSED:
        return BlockStatus.active()
    if state is GeneState.MUTATED:
        return BlockStatus.mutated(factor)
    return BlockStatus.silent()


class GeneEventQueue:
    """Bounded, thread-safe FIFO of gene events.

    When full, the buffer is compacted to the newest event per kind
    instead of rejecting the push, so the final state of every kind
    always survives a burst.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self.maxsize = max(1, maxsize)
        self._items: deque[GeneEvent] = deque()
        self._lock = threading.Lock()
        self.compactions = 0

    def put(self, event: GeneEvent) -> None:
        with self._lock:
            if len(self._items) >= self.maxsize:
                self._compact()
            if len(self._items) >= self.maxsize:
                # Every kind already queued at most once; drop the oldest.
                self._items.popleft()
            self._items.append(event)

    def _compact(self) -> None:
        latest: dict[BlockKind, GeneEvent] = {}
        for ev in self._items:
            latest.pop(ev.kind, None)
            latest[ev.kind] = ev
        self._items = deque(latest.values())
        self.compactions += 1

    def drain(self) -> list[GeneEvent]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class StatusCache:
    """Current gene-driven status per block kind.

    Kinds the gene model has never reported are absent; their nodes
    keep the status the designer gave them.
    """

    def __init__(self, initial: Mapping[BlockKind, BlockStatus] | None = None):
        self._status: dict[BlockKind, BlockStatus] = dict(initial or {})

    def get(self, kind: BlockKind) -> BlockStatus | None:
        return self._status.get(kind)

    def snapshot(self) -> dict[BlockKind, BlockStatus]:
        return dict(self._status)

    def _set(self, kind: BlockKind, status: BlockStatus) -> bool:
        if self._status.get(kind) == status:
            return False
        self._status[kind] = status
        return True

    def _replace(self, statuses: Mapping[BlockKind, BlockStatus]) -> None:
        self._status = dict(statuses)

    def overlay(self, graph: MetabolicGraph) -> MetabolicGraph:
        """*graph* with every node carrying its kind's cached status.

        Returns *graph* itself when nothing differs.  The revision is
        left alone: this is a solve snapshot, not a new topology.
        """
        stale = {n.kind for n in graph.nodes.values()
                 if n.kind in self._status and n.status != self._status[n.kind]}
        if not stale:
            return graph
        patched = patch_statuses(graph, {k: self._status[k] for k in stale})
        patched.revision = graph.revision
        return patched

    def to_dict(self) -> dict:
        return {k.key: s.to_dict() for k, s in self._status.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, dict]) -> StatusCache:
        return cls({BlockKind.parse(k): BlockStatus.from_dict(v)
                    for k, v in data.items()})

    def __len__(self) -> int:
        return len(self._status)


class StatusPropagator:
    """Sole writer of the ``StatusCache``."""

    def __init__(self, cache: StatusCache, config: EngineConfig) -> None:
        self.cache = cache
        self.config = config
        self.queue = GeneEventQueue(config.gene_queue_size)
        self.events_applied = 0

    def push(self, kind: BlockKind, state: GeneState | str) -> None:
        self.queue.put(GeneEvent(BlockKind.parse(kind), state))

    def apply(self) -> dict[BlockKind, BlockStatus]:
        """Drain the queue into the cache.

        Returns the kinds whose cached status ended up different from
        before the batch (empty when the burst was a no-op).
        """
        events = self.queue.drain()
        if not events:
            return {}
        before = self.cache.snapshot()
        for ev in events:
            factor = self.config.mutated_factor(ev.kind)
            self.cache._set(ev.kind, to_status(ev.state, factor))
        self.events_applied += len(events)
        after = self.cache.snapshot()
        return {k: s for k, s in after.items() if before.get(k) != s}

    def remap(self, config: EngineConfig) -> dict[BlockKind, BlockStatus]:
        """Switch to *config* and recompute every cached Mutated factor.

        Returns the kinds whose status changed.
        """
        self.config = config
        changed: dict[BlockKind, BlockStatus] = {}
        for kind, status in self.cache.snapshot().items():
            if status.state is not Activation.MUTATED:
                continue
            fresh = BlockStatus.mutated(config.mutated_factor(kind))
            if self.cache._set(kind, fresh):
                changed[kind] = fresh
        return changed

    def restore(self, statuses: Mapping[BlockKind, BlockStatus]) -> None:
        """Make *statuses* the whole cache (save-game restore).

        Kinds missing from *statuses* are forgotten, and gene events still
        queued from before the restore are dropped.
        """
        self.queue.drain()
        self.cache._replace(statuses)
