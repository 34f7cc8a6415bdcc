"""components — Plain data records shared by the engine and its readers.

    from components import BlockKind, BlockStatus, MetabolicNode, FluxResult
"""

from components.blocks import (
    BlockKind, BlockStatus, Activation, GeneState, BLOCK_DESCRIPTIONS,
)
from components.graph import MetabolicNode, MetabolicEdge
from components.flux import FluxResult, EMPTY_RESULT
from components.dev_log import DevLog

__all__ = [
    "BlockKind", "BlockStatus", "Activation", "GeneState",
    "BLOCK_DESCRIPTIONS",
    "MetabolicNode", "MetabolicEdge",
    "FluxResult", "EMPTY_RESULT",
    "DevLog",
]
