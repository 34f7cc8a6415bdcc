"""
main.py — Bootstrap

1. Load tuning constants (data/tuning.toml)
2. Build the engine from block definitions (data/blocks.toml)
3. Restore slot 0 if asked
4. Either open the pygame readout, or run headless for N seconds
   with a fixed frame delta and print the final result

    python main.py                      # window
    python main.py --headless 5         # 5 simulated seconds, no window
"""

from __future__ import annotations
import argparse
from pathlib import Path

from core import tuning
from core.constants import RENDER_FPS, SCREEN_H, SCREEN_W
from core.save import restore_engine_state
from metabolism.config import EngineConfig
from metabolism.engine import MetabolicEngine

ROOT = Path(__file__).resolve().parent


def build_engine(blocks: str | Path, tuning_path: str | Path | None = None,
                 load_slot: int | None = None,
                 background: bool | None = None) -> MetabolicEngine:
    """*background* overrides ``async_ticks`` from the tuning file."""
    tuning.load(tuning_path)
    config = EngineConfig.from_tuning()
    if background is not None:
        config = config.with_changes(async_ticks=background)
    engine = MetabolicEngine.from_files(blocks, config)
    if load_slot is not None and not restore_engine_state(engine, load_slot):
        print(f"[MAIN] slot {load_slot} is empty — starting from definitions")
    return engine


def run_headless(engine: MetabolicEngine, seconds: float,
                 fps: int = RENDER_FPS) -> None:
    """Drive ``engine.update`` with a fixed frame delta, no window.

    Meant for an engine built with ``background=False``: every due tick
    then runs inline, so the tick count is exact.
    """
    dt = 1.0 / fps
    frames = int(round(seconds * fps))
    for _ in range(frames):
        engine.update(dt)
        engine.bus.drain()
    engine.scheduler.wait()
    engine.close()

    for line in engine.latest().summary_lines():
        print(line)
    info = engine.debug_info()
    print(f"[MAIN] {frames} frames, {info['ticks']} ticks, "
          f"{info['rebuilds']} rebuilds, {info['failures']} failures")


def run_window(engine: MetabolicEngine) -> None:
    # pygame is only needed for the window
    from core.app import App
    from scenes.flux_scene import FluxScene

    app = App(engine, title="Metabolism", width=SCREEN_W, height=SCREEN_H)
    app.push_scene(FluxScene())
    app.run()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Metabolic flux engine")
    parser.add_argument("--blocks", default=str(ROOT / "data" / "blocks.toml"),
                        help="block definition TOML")
    parser.add_argument("--tuning", default=None,
                        help="tuning TOML (default data/tuning.toml)")
    parser.add_argument("--load", type=int, default=None, metavar="SLOT",
                        help="restore a save slot after building")
    parser.add_argument("--headless", type=float, default=None, metavar="SECONDS",
                        help="run without a window for SECONDS of simulated time")
    args = parser.parse_args(argv)

    # Headless runs tick inline; the window keeps ticks off the frame loop
    engine = build_engine(args.blocks, args.tuning, args.load,
                          background=False if args.headless is not None else None)
    if args.headless is not None:
        run_headless(engine, args.headless)
    else:
        run_window(engine)


if __name__ == "__main__":
    main()
