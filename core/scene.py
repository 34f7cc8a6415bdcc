"""
core/scene.py — Scene base class for the readout window

The App keeps a stack of scenes; only the top one receives input,
update and draw calls.  The engine ticks underneath whichever scene is
on top, so a covered scene simply stops looking.

Engine events are declared rather than subscribed by hand.  ``EVENTS``
maps an event class name to a handler method name; the App binds them
to ``app.engine.bus`` when the scene comes to the top and unbinds them
when it is covered or popped, so a revealed scene never ends up with
two copies of a handler:

    class Readout(Scene):
        EVENTS = {"CommitRejected": "_on_rejected"}

        def _on_rejected(self, event):
            self.banner = event.message

        def draw(self, surface, app):
            result = app.engine.latest()
            ...
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    import pygame
    from core.app import App


class Scene:
    EVENTS: dict[str, str] = {}

    # ── Event bus wiring (called by App) ─────────────────────────────

    def bind_events(self, app: App) -> None:
        bus = app.engine.bus
        bound: list[tuple[str, Callable]] = []
        for event_name, method in self.EVENTS.items():
            handler = getattr(self, method)
            bus.subscribe(event_name, handler)
            bound.append((event_name, handler))
        self._bound = bound

    def unbind_events(self, app: App) -> None:
        bus = app.engine.bus
        for event_name, handler in getattr(self, "_bound", ()):
            bus.unsubscribe(event_name, handler)
        self._bound = []

    # ── Hooks ────────────────────────────────────────────────────────

    def on_enter(self, app: App):
        """Scene reached the top of the stack (pushed or revealed)."""

    def on_exit(self, app: App):
        """Scene is being popped or covered."""

    def handle_event(self, event: pygame.event.Event, app: App):
        pass

    def update(self, dt: float, app: App):
        """Per-frame presentation work; *dt* in seconds.  Engine ticks
        are not driven from here."""

    def draw(self, surface: pygame.Surface, app: App):
        pass
