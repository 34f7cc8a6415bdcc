"""test_status.py — Gene events, status cache and batched propagation.

Covers:
1. Expressed/Mutated/other → Active/Mutated(m)/Silent, m per kind
2. A burst of events in one period costs one dirty mark
3. A burst that ends where it started costs none
4. Propagation never adds or removes nodes
5. Blocks added later pick up the cached status of their kind
6. A full queue keeps the newest event per kind

Run:  python test_status.py
"""
from __future__ import annotations
import sys, traceback

from components.blocks import BlockKind, BlockStatus, GeneState
from metabolism.config import EngineConfig
from metabolism.engine import MetabolicEngine
from metabolism.graph_store import build
from metabolism.status import (
    GeneEvent, GeneEventQueue, StatusCache, to_status,
)


# ── Test harness ─────────────────────────────────────────────────────

_passed = 0
_failed = 0

def ok(label: str):
    global _passed
    _passed += 1
    print(f"  [PASS] {label}")

def fail(label: str, detail: str = ""):
    global _failed
    _failed += 1
    msg = f"  [FAIL] {label}"
    if detail:
        msg += f" — {detail}"
    print(msg)

def check(cond: bool, label: str, detail: str = ""):
    if cond:
        ok(label)
    else:
        fail(label, detail)
    assert cond, f"{label}: {detail}"


# ── Fixtures ─────────────────────────────────────────────────────────

def _engine(**cfg) -> MetabolicEngine:
    graph = build({
        "nodes": {
            "glyco": {"kind": "sugar_catabolism", "capacity": 10.0},
            "mito_a": {"kind": "respiration", "capacity": 6.0},
            "mito_b": {"kind": "respiration", "capacity": 6.0},
            "ferment": {"kind": "fermentation", "capacity": 3.0},
        },
        "edges": [
            {"id": "g_a", "source": "glyco", "target": "mito_a", "fraction": 0.3},
            {"id": "g_b", "source": "glyco", "target": "mito_b", "fraction": 0.3},
            {"id": "g_f", "source": "glyco", "target": "ferment", "fraction": 0.2},
        ],
    })
    engine = MetabolicEngine(graph, EngineConfig(**cfg))
    engine.tick()          # initial solve
    return engine


# ═══════════════════════════════════════════════════════════════════════
#  Mapping
# ═══════════════════════════════════════════════════════════════════════

def test_state_mapping():
    print("\n--- gene state → block status ---")
    check(to_status(GeneState.EXPRESSED, 0.5) == BlockStatus.active(),
          "Expressed → Active")
    check(to_status(GeneState.MUTATED, 0.3) == BlockStatus.mutated(0.3),
          "Mutated → Mutated(m)")
    check(to_status(GeneState.SILENT, 0.5) == BlockStatus.silent(),
          "Silent → Silent")
    check(to_status("mutated", 0.5) == BlockStatus.mutated(0.5),
          "state names accepted")
    check(to_status("unexpressed", 0.5) == BlockStatus.silent(),
          "unknown state → Silent")


def test_per_kind_factor():
    print("\n--- Mutated factor per kind ---")
    engine = _engine(mutated_factors={BlockKind.RESPIRATION: 0.4})
    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.MUTATED)
    engine.push_gene_event(BlockKind.FERMENTATION, GeneState.MUTATED)
    engine.tick()
    g = engine.graph
    check(g.nodes["mito_a"].status == BlockStatus.mutated(0.4),
          "respiration uses its own factor", g.nodes["mito_a"].status.label())
    check(g.nodes["ferment"].status == BlockStatus.mutated(0.5),
          "other kinds use the default")
    r = engine.latest()
    check(r.output["mito_a"] <= 6.0 * 0.4 + 1e-9,
          "published output scaled by factor", str(r.output["mito_a"]))


# ═══════════════════════════════════════════════════════════════════════
#  Batching
# ═══════════════════════════════════════════════════════════════════════

def test_burst_costs_one_mark():
    print("\n--- one mark per batch ---")
    engine = _engine()
    marks = engine.dirty.marks
    gen = engine.dirty.generation
    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.MUTATED)
    engine.push_gene_event(BlockKind.FERMENTATION, GeneState.SILENT)
    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.SILENT)
    check(engine.dirty.marks == marks, "nothing applied before the tick")
    engine.tick()
    check(engine.dirty.marks - marks == 1, "three events, one mark",
          str(engine.dirty.marks - marks))
    check(engine.latest().generation == gen + 1, "published next generation")
    check(engine.graph.nodes["mito_b"].status == BlockStatus.silent(),
          "last event per kind wins")
    events = [type(e).__name__ for e in engine.bus.take()]
    check(events.count("StatusPatched") == 1,
          "one StatusPatched per status batch", str(events))


def test_noop_burst():
    print("\n--- burst that changes nothing ---")
    engine = _engine()
    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.SILENT)
    engine.tick()
    marks = engine.dirty.marks
    rebuilds = engine.rebuilds
    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.EXPRESSED)
    engine.push_gene_event(BlockKind.RESPIRATION, GeneState.SILENT)
    engine.tick()
    check(engine.dirty.marks == marks, "no mark", str(engine.dirty.marks - marks))
    check(engine.rebuilds == rebuilds, "no rebuild")


def test_nodes_never_removed():
    print("\n--- silencing keeps topology ---")
    engine = _engine()
    before = list(engine.graph.nodes)
    edges = list(engine.graph.edges)
    for kind in BlockKind:
        engine.push_gene_event(kind, GeneState.SILENT)
    engine.tick()
    check(list(engine.graph.nodes) == before, "every node still present")
    check(engine.graph.edges == edges, "every edge still present")
    check(all(v == 0.0 for v in engine.latest().output.values()),
          "all-silent network outputs nothing")


def test_overlay_new_nodes():
    print("\n--- cached status applies to later blocks ---")
    engine = _engine()
    engine.push_gene_event("respiration", "silent")
    engine.tick()
    draft = engine.gateway.acquire()
    draft.add_node("mito_c", BlockKind.RESPIRATION, 6.0)
    draft.add_edge("glyco", "mito_c", fraction=0.1)
    engine.gateway.commit(draft)
    check(engine.graph.nodes["mito_c"].status == BlockStatus.silent(),
          "new respiration block starts silent")
    engine.tick()
    check(engine.latest().edge_flux["glyco->mito_c"] == 0.0,
          "and admits no flux")


# ═══════════════════════════════════════════════════════════════════════
#  Queue and cache
# ═══════════════════════════════════════════════════════════════════════

def test_queue_compaction():
    print("\n--- bounded queue ---")
    q = GeneEventQueue(maxsize=4)
    R, F, A = (BlockKind.RESPIRATION, BlockKind.FERMENTATION,
               BlockKind.LIGHT_CAPTURE)
    q.put(GeneEvent(R, GeneState.SILENT))
    q.put(GeneEvent(F, GeneState.SILENT))
    q.put(GeneEvent(R, GeneState.MUTATED))
    q.put(GeneEvent(F, GeneState.EXPRESSED))
    q.put(GeneEvent(A, GeneState.SILENT))
    items = q.drain()
    check(q.compactions == 1, "compacted once")
    check([(e.kind, e.state) for e in items] == [
        (R, GeneState.MUTATED), (F, GeneState.EXPRESSED), (A, GeneState.SILENT)],
          "newest event per kind kept in order", str(items))
    check(len(q) == 0, "drain empties the queue")

    q = GeneEventQueue(maxsize=2)
    q.put(GeneEvent(R, GeneState.SILENT))
    q.put(GeneEvent(F, GeneState.SILENT))
    q.put(GeneEvent(A, GeneState.SILENT))
    check([e.kind for e in q.drain()] == [F, A],
          "distinct kinds overflow drops the oldest")


def test_cache_roundtrip():
    print("\n--- StatusCache to_dict/from_dict ---")
    cache = StatusCache({BlockKind.RESPIRATION: BlockStatus.mutated(0.4),
                         BlockKind.FERMENTATION: BlockStatus.silent()})
    back = StatusCache.from_dict(cache.to_dict())
    check(back.snapshot() == cache.snapshot(), "statuses survive a save")


# ═══════════════════════════════════════════════════════════════════════
#  MAIN
# ═══════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    sections = [
        ("State mapping", test_state_mapping),
        ("Per-kind factor", test_per_kind_factor),
        ("Burst = one mark", test_burst_costs_one_mark),
        ("No-op burst", test_noop_burst),
        ("Nodes never removed", test_nodes_never_removed),
        ("Overlay new nodes", test_overlay_new_nodes),
        ("Queue compaction", test_queue_compaction),
        ("Cache roundtrip", test_cache_roundtrip),
    ]

    for name, fn in sections:
        try:
            fn()
        except AssertionError:
            pass
        except Exception:
            _failed += 1
            print(f"\n  [CRASH] {name} — unhandled exception:")
            traceback.print_exc()

    print(f"\n{'=' * 60}")
    print(f"  Status: {_passed} passed, {_failed} failed")
    print(f"{'=' * 60}")
    sys.exit(1 if _failed else 0)
