"""core/save.py — Metabolism state persistence (separate from block definitions).

Save files (JSON) store only runtime state:
- Live topology, including player edits and status overrides
- Gene-driven status cache per block kind
- Generation counter at save time (informational)

Block definition files (TOML) store only the designer template:
- Node kinds, capacities, default statuses
- Edge wiring, fractions, enzyme tiers

When loading a game:
1. Build the engine from ``data/blocks.toml`` (designer template)
2. Load the save JSON (runtime overlay)
3. ``engine.restore(data["metabolism"])`` replaces the live graph and
   marks it dirty, so the next tick re-solves
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from metabolism.engine import MetabolicEngine


SAVES_DIR = Path("saves")
FORMAT_VERSION = 1


def get_save_file(slot: int = 0, saves_dir: Path | None = None) -> Path:
    """Get the path for a save slot."""
    root = SAVES_DIR if saves_dir is None else Path(saves_dir)
    root.mkdir(parents=True, exist_ok=True)
    return root / f"slot{slot}.json"


def save_engine_state(engine: "MetabolicEngine", slot: int = 0,
                      saves_dir: Path | None = None) -> Path:
    """Write the engine's live topology and status cache to a slot.

    Returns path to save file.
    """
    save_path = get_save_file(slot, saves_dir)
    save_data = {
        "format_version": FORMAT_VERSION,
        "metabolism": engine.to_dict(),
    }
    with open(save_path, "w") as f:
        json.dump(save_data, f, indent=2)

    print(f"[SAVE] wrote {save_path}")
    return save_path


def load_engine_state(slot: int = 0,
                      saves_dir: Path | None = None) -> dict[str, Any] | None:
    """Load a save slot.

    Returns the parsed dict (keys: format_version, metabolism), or None
    if the slot is empty or unreadable.
    """
    save_path = get_save_file(slot, saves_dir)
    if not save_path.exists():
        return None

    try:
        with open(save_path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as ex:
        print(f"[SAVE] Error loading save file: {ex}")
        return None

    if data.get("format_version") != FORMAT_VERSION:
        print(f"[SAVE] {save_path} has format "
              f"{data.get('format_version')!r}, expected {FORMAT_VERSION}")
        return None
    return data


def restore_engine_state(engine: "MetabolicEngine", slot: int = 0,
                         saves_dir: Path | None = None) -> bool:
    """Load a slot into *engine*.  Returns False when there is nothing
    usable to load.

    A save whose topology no longer validates raises ``InvalidTopology``;
    the engine keeps its current graph in that case.
    """
    data = load_engine_state(slot, saves_dir)
    if not data or "metabolism" not in data:
        return False
    engine.restore(data["metabolism"])
    print(f"[SAVE] restored slot {slot}")
    return True
