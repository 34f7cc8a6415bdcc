"""
scenes/flux_scene.py — Live metabolic flux readout

Text-only view of the latest published FluxResult plus the engine's
DevLog feed.  The scene is a reader: every change it makes goes
through the same doors an external collaborator would use.

  Left panel   — one row per block: kind, status, intake, output, [BP]
  Right panel  — DevLog feed (Tab cycles the category filter)
  Footer       — generation, passes, tick timing, last rejection

Controls:
  Up/Down     select block
  E / M / S   push gene event Expressed / Mutated / Silent for its kind
  O           toggle a Silent override on the block (draft + commit)
  + / -       raise / lower its capacity by 1 (draft + commit)
  X           draft that removes the block but keeps its edges (rejected)
  T           stress test: ×2 supply for 2 s
  F4          reload data/tuning.toml and reconfigure
  F5 / F9     save / load slot 0
  Tab / C     cycle log filter / clear log
  Escape      quit
"""

from __future__ import annotations
import pygame

from components.blocks import BlockStatus, GeneState
from core import tuning
from core.app import App
from core.save import restore_engine_state, save_engine_state
from core.scene import Scene
from metabolism.config import EngineConfig
from metabolism.errors import MetabolismError

# ── UI constants ─────────────────────────────────────────────────────
_BG = (16, 20, 24)
_BORDER = (50, 60, 55)
_HEADER = (0, 255, 200)
_SUBHEADER = (100, 200, 180)
_DIM = (90, 90, 90)
_TEXT = (200, 200, 200)
_HIGHLIGHT_BG = (36, 56, 44)
_WARN = (255, 200, 80)
_BAD = (255, 80, 80)

_CAT_COLORS: dict[str, tuple[int, int, int]] = {
    "solve":   (100, 255, 160),
    "status":  (120, 200, 255),
    "commit":  (255, 220, 100),
    "warning": (255, 160, 60),
    "error":   (255, 50, 50),
    "stress":  (200, 160, 255),
    "pressure": (255, 120, 120),
    "config":  (180, 180, 180),
    "save":    (180, 180, 180),
}
_LOG_CATS = ["", "solve", "status", "pressure", "commit", "warning", "error",
             "stress"]


class FluxScene(Scene):
    EVENTS = {
        "CommitRejected": "_on_rejected",
        "NonConvergence": "_on_nonconvergence",
    }

    def __init__(self):
        self.selected = 0
        self.log_cat_filter = ""         # "" = all
        self.message = ""
        self.message_color = _TEXT
        self._reload_poll = 0.0

    # ── event handlers ───────────────────────────────────────────────

    def _on_rejected(self, event):
        self._say(f"Commit rejected ({event.reason}): {event.message}", _BAD)

    def _on_nonconvergence(self, event):
        self._say(f"gen {event.generation}: not converged after "
                  f"{event.passes} passes", _WARN)

    def _say(self, text: str, color=_TEXT):
        self.message = text
        self.message_color = color

    # ── input ────────────────────────────────────────────────────────

    def _selected_node(self, app: App):
        nodes = list(app.engine.graph.nodes.values())
        if not nodes:
            return None
        self.selected = max(0, min(self.selected, len(nodes) - 1))
        return nodes[self.selected]

    def handle_event(self, event: pygame.event.Event, app: App):
        if event.type != pygame.KEYDOWN:
            return
        engine = app.engine
        key = event.key

        if key == pygame.K_ESCAPE:
            app.pop_scene()
            return
        if key == pygame.K_UP:
            self.selected = max(0, self.selected - 1)
            return
        if key == pygame.K_DOWN:
            self.selected += 1
            return
        if key == pygame.K_TAB:
            idx = _LOG_CATS.index(self.log_cat_filter)
            self.log_cat_filter = _LOG_CATS[(idx + 1) % len(_LOG_CATS)]
            return
        if key == pygame.K_c:
            engine.log.clear()
            return
        if key == pygame.K_t:
            gen = engine.apply_stress(2.0, 2.0)
            self._say(f"Stress test ×2 for 2 s (gen {gen})", _WARN)
            return
        if key == pygame.K_F4:
            self._reload_tuning(app)
            return
        if key == pygame.K_F5:
            path = save_engine_state(engine)
            self._say(f"Saved to {path}")
            return
        if key == pygame.K_F9:
            try:
                ok = restore_engine_state(engine)
            except MetabolismError as ex:
                self._say(f"Save not loaded: {ex.user_message}", _BAD)
                return
            self._say("Loaded slot 0" if ok else "Slot 0 is empty")
            return

        node = self._selected_node(app)
        if node is None:
            return
        gene_keys = {pygame.K_e: GeneState.EXPRESSED,
                     pygame.K_m: GeneState.MUTATED,
                     pygame.K_s: GeneState.SILENT}
        if key in gene_keys:
            engine.push_gene_event(node.kind, gene_keys[key])
            self._say(f"gene event: {node.kind.key} → {gene_keys[key].name}")
        elif key == pygame.K_o:
            self._edit(app, lambda d: d.override_status(
                node.id, None if node.override else BlockStatus.silent()))
        elif key in (pygame.K_PLUS, pygame.K_EQUALS, pygame.K_KP_PLUS):
            self._edit(app, lambda d: d.set_capacity(node.id, node.capacity + 1.0))
        elif key in (pygame.K_MINUS, pygame.K_KP_MINUS):
            self._edit(app, lambda d: d.set_capacity(
                node.id, max(0.0, node.capacity - 1.0)))
        elif key == pygame.K_x:
            self._edit(app, lambda d: d.remove_node(node.id))

    def _edit(self, app: App, change):
        """Take a draft, apply *change*, commit.  Rejections surface
        through the CommitRejected handler."""
        gateway = app.engine.gateway
        draft = gateway.acquire()
        try:
            change(draft)
            gen = gateway.commit(draft)
        except MetabolismError as ex:
            gateway.cancel(draft)
            self._say(ex.user_message, _BAD)
            return
        self._say(f"Committed → published in gen {gen}")

    def _reload_tuning(self, app: App):
        tuning.reload()
        try:
            cfg = EngineConfig.from_tuning()
        except MetabolismError as ex:
            self._say(f"Tuning not applied: {ex}", _BAD)
            return
        app.engine.reconfigure(cfg)
        self._say("Tuning reloaded")

    def update(self, dt: float, app: App):
        # Pick up edits to data/tuning.toml about once a second
        self._reload_poll += dt
        if self._reload_poll >= 1.0:
            self._reload_poll = 0.0
            if tuning.reload_if_changed():
                self._reload_tuning(app)

    # ── draw ─────────────────────────────────────────────────────────

    def draw(self, surface: pygame.Surface, app: App):
        surface.fill(_BG)
        sw, sh = surface.get_size()
        engine = app.engine
        result = engine.latest()

        head = (f"gen {result.generation}  rev {result.revision}  "
                f"passes {result.passes}  "
                f"{'converged' if result.converged else 'NOT CONVERGED'}")
        app.draw_text(surface, head, 10, 6,
                      _HEADER if result.converged else _WARN, app.font)
        app.draw_text(surface, "[Esc] quit", sw - 100, 6, _DIM, app.font_sm)
        pygame.draw.line(surface, _BORDER, (0, 26), (sw, 26), 1)

        table_w = sw * 3 // 5
        self._draw_table(surface, app, result, 32, table_w)
        pygame.draw.line(surface, _BORDER, (table_w, 26), (table_w, sh - 40), 1)
        self._draw_log(surface, app, table_w + 8, 32, sw - table_w - 12, sh - 76)
        self._draw_footer(surface, app, sh - 36, sw)

    def _draw_table(self, surface, app: App, result, top: int, width: int):
        nodes = list(app.engine.graph.nodes.values())
        if nodes:
            self.selected = min(self.selected, len(nodes) - 1)
        hdr = f"{'Block':<16} {'Kind':<20} {'Status':<13} {'In':>7} {'Out':>7}"
        app.draw_text(surface, hdr, 10, top, (80, 140, 120), app.font_sm)
        y = top + 14
        pygame.draw.line(surface, _BORDER, (8, y), (width - 4, y), 1)
        y += 3
        for idx, node in enumerate(nodes):
            if idx == self.selected:
                pygame.draw.rect(surface, _HIGHLIGHT_BG, (6, y - 1, width - 10, 14))
            status = node.effective_status.label()
            if node.override is not None:
                status += "*"
            intake = result.intake.get(node.id, 0.0)
            out = result.output.get(node.id, 0.0)
            bp = result.saturated.get(node.id, False)
            line = (f"{node.id[:16]:<16} {node.kind.key[:20]:<20} {status[:13]:<13} "
                    f"{intake:7.2f} {out:7.2f}{' [BP]' if bp else ''}")
            app.draw_text(surface, line, 10, y, _BAD if bp else _TEXT, app.font_sm)
            y += 14

        node = self._selected_node(app)
        if node is not None:
            y += 10
            app.draw_text(surface, node.kind.description, 10, y, _SUBHEADER,
                          app.font_sm)
            y += 16
            for e in app.engine.graph.outgoing(node.id):
                flux = result.edge_flux.get(e.id, 0.0)
                app.draw_text(surface,
                              f"  → {e.target:<16} x{e.fraction:<5g} "
                              f"tier {e.enzyme_tier:<4g} flux {flux:7.3f}",
                              10, y, _DIM, app.font_sm)
                y += 13
            for entry in app.engine.log.for_node(node.id, 4):
                app.draw_text(surface, f"  g{entry['gen']:<4} {entry['msg']}",
                              10, y, _CAT_COLORS["pressure"], app.font_sm)
                y += 13

    def _draw_log(self, surface, app: App, x: int, top: int, w: int, h: int):
        label = self.log_cat_filter or "all"
        app.draw_text(surface, f"DevLog [{label}]  [Tab] filter  [C] clear",
                      x, top, _SUBHEADER, app.font_sm)
        y = top + 16
        rows = max(1, (h - 16) // 13)
        log = app.engine.log
        entries = (log.for_cat(self.log_cat_filter, rows) if self.log_cat_filter
                   else log.recent(rows))
        for entry in entries:
            color = _CAT_COLORS.get(entry["cat"], _TEXT)
            text = f"g{entry['gen']:<4} {entry['cat']:<7} {entry['msg']}"
            max_chars = max(8, w // 7)
            app.draw_text(surface, text[:max_chars], x, y, color, app.font_sm)
            y += 13

    def _draw_footer(self, surface, app: App, y: int, sw: int):
        info = app.engine.debug_info()
        pygame.draw.line(surface, _BORDER, (0, y - 4), (sw, y - 4), 1)
        app.draw_text(surface,
                      f"ticks {info['ticks']}  rebuilds {info['rebuilds']}  "
                      f"tick {info['last_tick_ms']:.2f} ms  "
                      f"stress x{info['stress']:g}  "
                      f"queued genes {info['pending_gene_events']}  "
                      f"fps {app.clock.get_fps():.0f}",
                      10, y, _DIM, app.font_sm)
        if self.message:
            app.draw_text(surface, self.message, 10, y + 14,
                          self.message_color, app.font_sm)
