"""metabolism/invalidation.py — Generation-counted dirty flag.

Every accepted commit, status batch or config change calls ``mark()``;
the tick calls ``take()`` exactly once.  Marks that land between two
takes collapse into a single generation, so N edits in one period cost
one rebuild.

    flag = DirtyFlag()
    flag.mark(); flag.mark()
    flag.take()      # (True, 1)
    flag.take()      # (False, 1)
"""

from __future__ import annotations
import threading


class DirtyFlag:
    """Boolean plus monotonic generation, guarded by one lock."""

    def __init__(self, generation: int = 0, dirty: bool = False) -> None:
        self._lock = threading.Lock()
        self._dirty = dirty
        self._generation = generation
        self.marks = 0          # total mark() calls, coalesced or not

    def mark(self) -> int:
        """Flag a rebuild.  Returns the generation the change lands in."""
        with self._lock:
            self.marks += 1
            if not self._dirty:
                self._dirty = True
                self._generation += 1
            return self._generation

    def take(self) -> tuple[bool, int]:
        """Read and clear atomically.  Returns ``(was_dirty, generation)``.

        A ``mark()`` that arrives after this returns starts the next
        generation; it is never folded into the rebuild in progress.
        """
        with self._lock:
            was_dirty = self._dirty
            self._dirty = False
            return was_dirty, self._generation

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def __repr__(self) -> str:
        return f"DirtyFlag(dirty={self._dirty}, gen={self._generation})"
