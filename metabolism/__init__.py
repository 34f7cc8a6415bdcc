"""metabolism — Graph-structured metabolic flux engine.

Routes metabolite flow between metabolic blocks on its own fixed
cadence, decoupled from the presentation frame rate, and stays
consistent while the topology is edited by the designer, the player
and the gene-expression model at the same time.

Submodules
----------
errors          MetabolismError, InvalidTopology, ConcurrentCommitConflict
edits           Edit commands (AddNode, SetFraction, OverrideStatus, ...)
graph_store     MetabolicGraph, build, apply_commit, apply_status_patch
invalidation    DirtyFlag — generation-counted rebuild trigger
config          EngineConfig — solver and scheduler tunables
solver          FluxSolver — bounded iterative relaxation
status          Gene event queue, StatusCache, StatusPropagator
draft           Draft, DraftGateway, diff_graphs
scheduler       TickScheduler — fixed-period tick driver
engine          MetabolicEngine — owns all of the above, update(dt)
"""
