"""core/events.py — Lightweight event bus.

Decouples the engine, which *signals* what happened on a tick, from
the collaborators that *react* to it.  The bus is owned by the
engine::

    from core.events import EventBus
    bus = engine.bus
    bus.emit(FluxPublished(generation=4, revision=9))

Consumers subscribe with a callable::

    bus.subscribe("CommitRejected", show_rejection)

And the presentation loop drains once per frame::

    bus.drain()          # calls all handlers for pending events

Design rules:
  - Events are plain dataclasses carrying no behaviour.
  - A raising handler is reported (console + engine DevLog) and skipped.
  - ``emit()`` is O(1) and thread-safe (ticks may run on a worker).
  - ``drain()`` runs handlers on the caller's thread, FIFO.
  - Handlers may emit new events; those are processed in the same drain.
"""

from __future__ import annotations
import threading
import traceback
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable


# ═══════════════════════════════════════════════════════════════════
#  Event definitions
# ═══════════════════════════════════════════════════════════════════

@dataclass
class FluxPublished:
    """A new FluxResult replaced the previous one."""
    generation: int = 0
    revision: int = 0
    converged: bool = True
    passes: int = 0


@dataclass
class NonConvergence:
    """Solver ran out of passes; the last pass was published anyway."""
    generation: int = 0
    passes: int = 0
    residual: float = 0.0


@dataclass
class StatusPatched:
    """Gene events changed the status of one or more block kinds."""
    generation: int = 0
    kinds: list[str] = field(default_factory=list)


@dataclass
class CommitAccepted:
    """A draft was applied to the live graph."""
    generation: int = 0
    revision: int = 0
    edits: list[str] = field(default_factory=list)


@dataclass
class CommitRejected:
    """A draft commit failed; the live graph is unchanged."""
    reason: str = ""            # "InvalidTopology" or "ConcurrentCommitConflict"
    message: str = ""
    problems: list[str] = field(default_factory=list)


@dataclass
class TickFailed:
    """A tick raised; the previous result stays published."""
    generation: int = 0
    error: str = ""


@dataclass
class TickOverBudget:
    elapsed: float = 0.0
    budget: float = 0.0


# ═══════════════════════════════════════════════════════════════════
#  Event Bus
# ═══════════════════════════════════════════════════════════════════

class EventBus:
    """Fire-and-forget event bus owned by the metabolic engine.

    *on_error* is called as ``on_error(event_name, exc)`` when a handler
    raises; the engine points it at its DevLog.  The failing handler is
    skipped and the rest of the drain carries on.
    """

    MAX_ROUNDS = 1000

    def __init__(self, on_error: Callable[[str, Exception], None] | None = None):
        self._queue: list[Any] = []
        self._lock = threading.Lock()
        self._subs: dict[str, list[Callable]] = defaultdict(list)
        self.on_error = on_error

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, event_type: str, handler: Callable) -> None:
        """Register *handler* for *event_type*, the event class name
        (``"FluxPublished"``)."""
        self._subs[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Callable) -> None:
        """Remove one registration of *handler*; unknown handlers are ignored."""
        handlers = self._subs.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    # ── Queue ────────────────────────────────────────────────────────

    def emit(self, event) -> None:
        """Queue an event for processing on next ``drain()``."""
        with self._lock:
            self._queue.append(event)

    def take(self) -> list[Any]:
        """Remove and return pending events without running handlers."""
        with self._lock:
            batch, self._queue = self._queue, []
        return batch

    def clear(self) -> None:
        """Discard all pending events."""
        self.take()

    def drain(self) -> int:
        """Run handlers for every queued event, FIFO.  Returns the count.

        Events emitted by handlers join the same drain, one round per
        generation of events, up to ``MAX_ROUNDS``.
        """
        processed = 0
        for _ in range(self.MAX_ROUNDS):
            batch = self.take()
            if not batch:
                break
            for event in batch:
                self._dispatch(event)
            processed += len(batch)
        return processed

    def _dispatch(self, event) -> None:
        name = type(event).__name__
        for handler in list(self._subs.get(name, ())):
            try:
                handler(event)
            except Exception as exc:
                print(f"[EVENT] {name} handler {getattr(handler, '__name__', handler)} "
                      f"failed: {exc}")
                traceback.print_exc()
                if self.on_error is not None:
                    self.on_error(name, exc)
