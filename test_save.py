"""test_save.py — Save slots for the live metabolism.

Run:  python test_save.py
"""
from __future__ import annotations
import json, sys, tempfile, traceback
from pathlib import Path

from components.blocks import BlockKind, BlockStatus, GeneState
from core.save import (
    FORMAT_VERSION, get_save_file, load_engine_state, restore_engine_state,
    save_engine_state,
)
from metabolism.engine import MetabolicEngine
from metabolism.graph_store import MetabolicGraph

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


def _engine() -> MetabolicEngine:
    return MetabolicEngine(MetabolicGraph.from_toml(DATA / "blocks.toml"))


# ═══════════════════════════════════════════════════════════════════════

def test_roundtrip():
    print("\n--- save → restore ---")
    with tempfile.TemporaryDirectory() as tmp:
        engine = _engine()
        engine.push_gene_event(BlockKind.FERMENTATION, GeneState.SILENT)
        engine.tick()
        draft = engine.gateway.acquire()
        draft.set_capacity("glycolysis", 14.0)
        draft.override_status("lipids", BlockStatus.mutated(0.5))
        engine.gateway.commit(draft)
        engine.tick()

        path = save_engine_state(engine, 1, tmp)
        check(path.exists(), "slot written", str(path))
        data = json.loads(path.read_text())
        check(data["format_version"] == FORMAT_VERSION, "format version stored")

        fresh = _engine()
        check(restore_engine_state(fresh, 1, tmp), "slot restored")
        check(fresh.graph.to_dict() == engine.graph.to_dict(),
              "live topology restored")
        check(fresh.status_cache.snapshot() == engine.status_cache.snapshot(),
              "status cache restored")
        check(fresh.dirty.dirty, "restore marks dirty")
        check(fresh.tick().same_flux(engine.latest()), "same flux after restore")


def test_restore_replaces_statuses():
    print("\n--- restore forgets statuses the save never had ---")
    with tempfile.TemporaryDirectory() as tmp:
        engine = _engine()
        saved = engine.tick()
        save_engine_state(engine, 2, tmp)

        engine.push_gene_event(BlockKind.RESPIRATION, GeneState.SILENT)
        engine.tick()
        check(engine.graph.nodes["electron_chain"].status == BlockStatus.silent(),
              "respiration silenced after the save")
        engine.push_gene_event(BlockKind.FERMENTATION, GeneState.SILENT)

        check(restore_engine_state(engine, 2, tmp), "slot restored")
        check(engine.status_cache.snapshot() == {}, "cache holds only saved kinds",
              str(engine.status_cache.snapshot()))
        r = engine.tick()
        check(engine.graph.nodes["electron_chain"].status == BlockStatus.active(),
              "respiration back to its saved status",
              engine.graph.nodes["electron_chain"].status.label())
        check(engine.graph.nodes["fermenter"].status == BlockStatus.active(),
              "gene event queued before the restore dropped")
        check(r.same_flux(saved), "flux matches the saved state")


def test_empty_and_bad_slots():
    print("\n--- empty and unreadable slots ---")
    with tempfile.TemporaryDirectory() as tmp:
        engine = _engine()
        check(load_engine_state(5, tmp) is None, "empty slot → None")
        check(not restore_engine_state(engine, 5, tmp), "empty slot → False")

        get_save_file(6, tmp).write_text(json.dumps({"format_version": 99}))
        check(load_engine_state(6, tmp) is None, "wrong version → None")

        get_save_file(7, tmp).write_text("{not json")
        check(load_engine_state(7, tmp) is None, "corrupt file → None")


# ═══════════════════════════════════════════════════════════════════════
#  MAIN
# ═══════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    sections = [
        ("Round trip", test_roundtrip),
        ("Restore replaces statuses", test_restore_replaces_statuses),
        ("Empty and bad slots", test_empty_and_bad_slots),
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
    print(f"  Save: {_passed} passed, {_failed} failed")
    print(f"{'=' * 60}")
    sys.exit(1 if _failed else 0)
