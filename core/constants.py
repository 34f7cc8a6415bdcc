"""core/constants.py — Shared constants used across the codebase.

Centralises magic numbers so there's exactly one place to change them.

Unit System
-----------
Flux is measured in **units per tick**, where one tick is one solve of
the metabolic graph.  Capacities, thresholds and realized flows all
share that unit.

    Capacity / flux         u/tick  (abstract metabolite units)
    Fractions               —       (0..1, share of a node's supply)
    Multipliers             —       (status, enzyme tier, stress)
    Time (real)             s       (seconds)

Two Cadences
~~~~~~~~~~~~
The engine solves every ``TICK_PERIOD`` seconds.  The presentation
loop runs at ``RENDER_FPS`` and only ever reads the last published
result, so a slow solve never stalls a frame.
"""

# ── Cadence ──────────────────────────────────────────────────────────
TICK_PERIOD: float = 0.25            # seconds between engine ticks
RENDER_FPS: int = 60                 # presentation frames per second
MAX_CATCH_UP_TICKS: int = 4          # ticks run per update() after a stall
TICK_BUDGET: float = 0.05            # seconds; slower ticks log a warning
ASYNC_TICKS: bool = True            # ticks run on a worker, off the frame loop

# ── Graph invariants ─────────────────────────────────────────────────
FRACTION_EPSILON: float = 1e-6       # tolerance on outgoing fraction sum

# ── Solver defaults ──────────────────────────────────────────────────
THRESHOLD_FRACTION: float = 0.8      # back-pressure threshold, × capacity
DAMPING: float = 0.5                 # share of over-threshold excess removed
MAX_PASSES: int = 8
CONVERGENCE_EPSILON: float = 1e-4
MUTATED_FACTOR: float = 0.5          # default Mutated throughput per kind
PARALLEL_EDGE_THRESHOLD: int = 64    # edge count that enables the pool
PARALLEL_WORKERS: int = 4

# ── Status propagation ───────────────────────────────────────────────
GENE_QUEUE_SIZE: int = 256

# ── Unrouted supply policy ───────────────────────────────────────────
UNROUTED_EXPORT = "export"           # remainder counted in node output
UNROUTED_DISCARD = "discard"         # remainder dropped
UNROUTED_POLICIES = (UNROUTED_EXPORT, UNROUTED_DISCARD)

# ── Presentation ─────────────────────────────────────────────────────
SCREEN_W: int = 960
SCREEN_H: int = 640
