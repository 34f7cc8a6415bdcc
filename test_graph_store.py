"""test_graph_store.py — Topology build, validation, commits and status patches.

Covers:
1. build() accepts the shipped block definitions and rejects bad ones
2. apply_commit() is all-or-nothing and never touches its input
3. Rejection: deleting a node that an edge still references
4. Stale-base precondition failures become ConcurrentCommitConflict
5. apply_status_patch() is pure, total, and never removes nodes

Run:  python test_graph_store.py
"""
from __future__ import annotations
import sys, traceback
from pathlib import Path

from components.blocks import BlockKind, BlockStatus, BLOCK_DESCRIPTIONS
from components.graph import MetabolicEdge, MetabolicNode
from metabolism.edits import (
    AddEdge, AddNode, OverrideStatus, RemoveEdge, RemoveNode, SetFraction,
)
from metabolism.errors import ConcurrentCommitConflict, InvalidTopology
from metabolism.graph_store import (
    MetabolicGraph, apply_commit, apply_status_patch, build,
)

DATA = Path(__file__).resolve().parent / "data"


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

def _defs() -> dict:
    return {
        "nodes": {
            "x": {"kind": "sugar_catabolism", "capacity": 10.0},
            "y": {"kind": "respiration", "capacity": 8.0},
            "z": {"kind": "fermentation", "capacity": 4.0},
            "island": {"kind": "polymerization", "capacity": 2.0},
        },
        "edges": [
            {"id": "xy", "source": "x", "target": "y", "fraction": 0.6},
            {"id": "xz", "source": "x", "target": "z", "fraction": 0.4},
        ],
    }


# ═══════════════════════════════════════════════════════════════════════
#  Build & validation
# ═══════════════════════════════════════════════════════════════════════

def test_build_valid():
    print("\n--- build: valid definitions ---")
    g = build(_defs())
    check(list(g.nodes) == ["x", "y", "z", "island"],
          "node insertion order preserved", str(list(g.nodes)))
    check([e.id for e in g.edges] == ["xy", "xz"], "edge order preserved")
    check(g.nodes["y"].kind is BlockKind.RESPIRATION, "kind parsed from key")
    check(g.revision == 0, "fresh graph at revision 0")


def test_build_shipped_blocks():
    print("\n--- build: data/blocks.toml ---")
    g = MetabolicGraph.from_toml(DATA / "blocks.toml")
    check(len(g.nodes) == len(BlockKind), "one block per kind",
          f"{len(g.nodes)} nodes")
    check(g.nodes["secondary"].status == BlockStatus.silent(),
          "designer status read from TOML")
    for nid in g.nodes:
        check(g.fraction_sum(nid) <= 1.0 + 1e-6, f"{nid} fraction sum <= 1")


def test_dangling_edge():
    print("\n--- build: dangling edge ---")
    d = _defs()
    d["edges"].append({"id": "bad", "source": "x", "target": "ghost",
                       "fraction": 0.0})
    try:
        build(d)
        check(False, "dangling edge rejected")
    except InvalidTopology as ex:
        check(any("ghost" in p for p in ex.problems),
              "dangling edge rejected with InvalidTopology", str(ex.problems))


def test_fraction_sum():
    print("\n--- build: outgoing fraction sum ---")
    d = _defs()
    d["edges"][1]["fraction"] = 0.41
    try:
        build(d)
        check(False, "fraction sum 1.01 rejected")
    except InvalidTopology as ex:
        check("'x' routes" in str(ex), "fraction sum 1.01 rejected", str(ex))

    d = _defs()
    d["edges"][1]["fraction"] = 0.4 + 5e-7
    g = build(d)
    check(g.fraction_sum("x") > 1.0, "sum within epsilon of 1 accepted")

    d = _defs()
    d["edges"][0]["fraction"] = 0.1
    g = build(d)
    check(abs(g.fraction_sum("x") - 0.5) < 1e-12,
          "sum below 1 accepted (remainder exported)")


def test_reports_every_problem():
    print("\n--- build: all problems listed ---")
    d = _defs()
    d["nodes"]["w"] = {"kind": "photosynthesis", "capacity": 1.0}
    d["edges"].append({"id": "xy", "source": "y", "target": "z",
                       "fraction": 1.5})
    try:
        build(d)
        check(False, "bad definitions rejected")
    except InvalidTopology as ex:
        text = " | ".join(ex.problems)
        check("photosynthesis" in text, "unknown kind reported", text)
        check("duplicate edge id" in text, "duplicate edge id reported", text)
        check("outside [0, 1]" in text, "fraction range reported", text)


def test_block_kinds():
    print("\n--- block kinds ---")
    check(set(BLOCK_DESCRIPTIONS) == set(BlockKind), "every kind described")
    check(BlockKind.parse("LightCapture") is BlockKind.LIGHT_CAPTURE,
          "CamelCase parses")
    check(BlockKind.parse("respiration") is BlockKind.RESPIRATION,
          "lower-case key parses")
    try:
        BlockKind.parse("photosynthesis")
        check(False, "unknown kind raises")
    except ValueError:
        ok("unknown kind raises ValueError")


# ═══════════════════════════════════════════════════════════════════════
#  Commits
# ═══════════════════════════════════════════════════════════════════════

def test_commit_is_pure():
    print("\n--- apply_commit: copy on write ---")
    g = build(_defs())
    before = g.to_dict()
    new = apply_commit(g, [
        SetFraction("xy", 0.3),
        AddNode(MetabolicNode("lipid", BlockKind.LIPID_METABOLISM, 3.0)),
        AddEdge(MetabolicEdge("xl", "x", "lipid", fraction=0.2)),
        OverrideStatus("z", BlockStatus.silent()),
    ])
    check(g.to_dict() == before, "input graph untouched")
    check(new.revision == g.revision + 1, "revision bumped once per batch")
    check(new.get_edge("xy").fraction == 0.3, "fraction changed")
    check(new.edges[-1].id == "xl", "added edge appended to solve order")
    check(new.nodes["z"].effective_status == BlockStatus.silent(),
          "override wins over gene status")


def test_commit_rejects_whole_batch():
    print("\n--- apply_commit: remove referenced node ---")
    g = build(_defs())
    before = g.to_dict()
    try:
        apply_commit(g, [SetFraction("xy", 0.1), RemoveNode("z")])
        check(False, "dangling reference rejected")
    except InvalidTopology as ex:
        check(any("'z'" in p for p in ex.problems),
              "rejected with InvalidTopology", str(ex.problems))
    check(g.to_dict() == before, "graph unchanged after rejection")

    new = apply_commit(g, [RemoveEdge("xz"), RemoveNode("z")])
    check("z" not in new.nodes, "removal with its edge accepted")


def test_commit_conflict():
    print("\n--- apply_commit: stale base revision ---")
    g = build(_defs())
    moved = apply_commit(g, [RemoveNode("island")])
    try:
        apply_commit(moved, [RemoveNode("island")], base_revision=g.revision)
        check(False, "stale removal conflicts")
    except ConcurrentCommitConflict as ex:
        check(ex.context.get("base_revision") == g.revision,
              "ConcurrentCommitConflict carries base revision", str(ex.context))

    try:
        apply_commit(moved, [RemoveNode("island")], base_revision=moved.revision)
        check(False, "missing node on current base is a topology error")
    except InvalidTopology:
        ok("missing node on current base is InvalidTopology")


# ═══════════════════════════════════════════════════════════════════════
#  Status patches
# ═══════════════════════════════════════════════════════════════════════

def test_status_patch():
    print("\n--- apply_status_patch ---")
    g = build(_defs())
    g = apply_commit(g, [OverrideStatus("y", BlockStatus.mutated(0.7))])
    new = apply_status_patch(g, BlockKind.RESPIRATION, BlockStatus.silent())
    check(g.nodes["y"].status == BlockStatus.active(), "input untouched")
    check(new.nodes["y"].status == BlockStatus.silent(), "status patched")
    check(new.nodes["y"].override == BlockStatus.mutated(0.7),
          "player override kept")
    check(list(new.nodes) == list(g.nodes), "no node added or removed")
    check(new.edges == g.edges, "wiring preserved")

    same = apply_status_patch(g, BlockKind.LIGHT_CAPTURE, BlockStatus.silent())
    check(same.same_topology(g), "patch for an absent kind is a no-op")


# ═══════════════════════════════════════════════════════════════════════
#  MAIN
# ═══════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    sections = [
        ("Build valid", test_build_valid),
        ("Shipped blocks", test_build_shipped_blocks),
        ("Dangling edge", test_dangling_edge),
        ("Fraction sum", test_fraction_sum),
        ("All problems", test_reports_every_problem),
        ("Block kinds", test_block_kinds),
        ("Commit purity", test_commit_is_pure),
        ("Commit rejection", test_commit_rejects_whole_batch),
        ("Commit conflict", test_commit_conflict),
        ("Status patch", test_status_patch),
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
    print(f"  Graph store: {_passed} passed, {_failed} failed")
    print(f"{'=' * 60}")
    sys.exit(1 if _failed else 0)
