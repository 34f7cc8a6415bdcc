"""
core/app.py — Pygame window around one metabolic engine

Owns the window, the 60 fps frame loop and the scene stack.  Each frame
hands its delta to ``engine.update`` (the engine decides whether a
tick is due), drains the engine's event bus, then lets the top scene
update and draw.

    app = App(engine, title="Metabolism")
    app.push_scene(FluxScene())
    app.run()                    # returns when the last scene is popped

Scenes only read ``app.engine.latest()``; edits go through
``app.engine.gateway`` like any other collaborator.
"""

from __future__ import annotations
import pygame
from typing import TYPE_CHECKING

from core.constants import RENDER_FPS, SCREEN_H, SCREEN_W
from core.scene import Scene

if TYPE_CHECKING:
    from metabolism.engine import MetabolicEngine


class App:
    def __init__(self, engine: MetabolicEngine, title: str = "Metabolism",
                 width: int = SCREEN_W, height: int = SCREEN_H,
                 fps: int = RENDER_FPS):
        pygame.init()
        self.engine = engine
        self.title = title
        self.surface = pygame.display.set_mode((width, height))
        pygame.display.set_caption(title)
        self.clock = pygame.time.Clock()
        self.fps = fps
        self.running = True
        self.frames = 0
        self._scenes: list[Scene] = []

        self.font = pygame.font.SysFont("monospace", 14)
        self.font_sm = pygame.font.SysFont("monospace", 11)

    # ── Scene stack ──────────────────────────────────────────────────

    @property
    def scene(self) -> Scene | None:
        return self._scenes[-1] if self._scenes else None

    def push_scene(self, scene: Scene):
        self._cover(self.scene)
        self._scenes.append(scene)
        self._reveal(scene)

    def pop_scene(self):
        top = self.scene
        if top is None:
            return
        self._cover(top)
        self._scenes.pop()
        if self._scenes:
            self._reveal(self._scenes[-1])
        else:
            self.running = False

    def _cover(self, scene: Scene | None):
        if scene is not None:
            scene.on_exit(self)
            scene.unbind_events(self)

    def _reveal(self, scene: Scene):
        scene.bind_events(self)
        scene.on_enter(self)

    # ── Frame loop ───────────────────────────────────────────────────

    def run(self):
        try:
            while self.running:
                self.frame(self.clock.tick(self.fps) / 1000.0)
        finally:
            self.engine.close()
            pygame.quit()

    def frame(self, dt: float):
        """One presentation frame: input, engine cadence, events, draw."""
        self.frames += 1
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif self.scene is not None:
                self.scene.handle_event(event, self)

        # 0..n ticks, or a hand-off to the tick worker
        self.engine.update(dt)
        self.engine.bus.drain()

        scene = self.scene
        if scene is not None:
            scene.update(dt, self)
            scene.draw(self.surface, self)

        if self.frames % self.fps == 0:
            result = self.engine.latest()
            pygame.display.set_caption(
                f"{self.title}  gen {result.generation}  rev {result.revision}")
        pygame.display.flip()

    # ── Convenience ──────────────────────────────────────────────────

    def draw_text(self, surface: pygame.Surface, text: str, x: int, y: int,
                  color=(255, 255, 255), font=None):
        """Blit one line of text.  Returns its rect."""
        img = (font or self.font).render(text, True, color)
        return surface.blit(img, (x, y))
