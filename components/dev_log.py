"""components.dev_log — Structured engine event log.

A bounded ring of what the metabolic engine did on each tick: rebuilds,
solves, commits, status patches, back-pressure onsets and warnings.
The flux readout scene shows it so the developer can see why a number
changed.

Usage:
    log = engine.log
    log.record("solve", "converged in 3 passes", gen=12,
               details={"residual": 2e-5})
    log.for_node("secondary")      # back-pressure history of one block

Each entry is a dict:
    {"t": float, "gen": int, "node": str, "cat": str,
     "msg": str, "details": dict | None}

Ticks may run on a worker thread, so every access goes through a lock.
"""

from __future__ import annotations
import threading
import time
from collections import deque
from dataclasses import dataclass, field


@dataclass
class DevLog:
    max_entries: int = 500
    _ring: deque = field(init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock,
                                  repr=False, compare=False)

    def __post_init__(self):
        self._ring = deque(maxlen=self.max_entries)

    def record(self, cat: str, msg: str, *,
               gen: int = 0, node: str = "",
               t: float | None = None,
               details: dict | None = None) -> None:
        entry = {"t": time.monotonic() if t is None else t,
                 "gen": gen, "node": node, "cat": cat,
                 "msg": msg, "details": details}
        with self._lock:
            self._ring.append(entry)

    def clear(self):
        with self._lock:
            self._ring.clear()

    def recent(self, n: int = 50) -> list[dict]:
        """Return the *n* most recent entries (newest last)."""
        with self._lock:
            return list(self._ring)[-n:]

    def _where(self, key: str, value: str, n: int) -> list[dict]:
        with self._lock:
            return [e for e in self._ring if e[key] == value][-n:]

    def for_node(self, node_id: str, n: int = 30) -> list[dict]:
        return self._where("node", node_id, n)

    def for_cat(self, cat: str, n: int = 50) -> list[dict]:
        return self._where("cat", cat, n)
