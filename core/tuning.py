"""core/tuning.py — Data-driven tuning constants.

All engine numbers live in ``data/tuning.toml`` and are loaded once
at startup.  Any module can read a value with::

    from core.tuning import get
    damping = get("metabolism.solver", "damping", 0.5)

Hot-reload: ``reload_if_changed()`` re-reads the file when its mtime
moves; the readout scene polls it and hands a fresh
``EngineConfig.from_tuning()`` to ``engine.reconfigure()``.  F4 forces
a reload.
"""

from __future__ import annotations
import tomllib
from pathlib import Path


_data: dict = {}
_path: Path | None = None
_mtime: float = 0.0


def default_path() -> Path:
    """``data/tuning.toml`` relative to the project root."""
    return Path(__file__).resolve().parent.parent / "data" / "tuning.toml"


def load(path: str | Path | None = None) -> None:
    """Load (or reload) tuning constants from *path*.

    A missing file is not an error: every caller passes a default.
    """
    global _data, _path, _mtime

    path = default_path() if path is None else Path(path)
    _path = path

    if not path.exists():
        print(f"[TUNING] {path} not found — using defaults")
        _data = {}
        _mtime = 0.0
        return

    with open(path, "rb") as f:
        _data = tomllib.load(f)
    _mtime = path.stat().st_mtime

    print(f"[TUNING] Loaded {path.name}: [{', '.join(sorted(_data))}]")


def reload() -> None:
    """Re-read the tuning file from disk."""
    load(_path)


def reload_if_changed() -> bool:
    """Reload when the file on disk is newer.  Returns True if reloaded."""
    if _path is None or not _path.exists():
        return False
    if _path.stat().st_mtime <= _mtime:
        return False
    reload()
    return True


def override(section_path: str, key: str, value) -> None:
    """Set a value in memory (tests and the dev console)."""
    node = _data
    for part in section_path.split("."):
        node = node.setdefault(part, {})
    node[key] = value


def clear() -> None:
    """Forget everything loaded; all reads fall back to defaults."""
    global _data
    _data = {}


def _walk(section_path: str):
    node = _data
    for part in section_path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
        if node is None:
            return None
    return node


def get(section: str, key: str, default=None):
    """Read a tuning value.

    *section* uses dot-notation to traverse nested tables, e.g.
    ``"metabolism.solver"`` looks up ``[metabolism.solver]``.

    >>> get("metabolism.solver", "max_passes", 8)
    8
    """
    node = _walk(section)
    if isinstance(node, dict):
        return node.get(key, default)
    return default


def section(section_path: str) -> dict:
    """Return an entire section dict (shallow copy), or empty dict."""
    node = _walk(section_path)
    return dict(node) if isinstance(node, dict) else {}
