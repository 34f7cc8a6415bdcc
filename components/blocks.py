"""components/blocks.py — Metabolic block kinds and activation status.

Every node in the metabolic graph belongs to exactly one ``BlockKind``.
The gene-expression model talks in ``GeneState`` per kind; the engine
turns that into a ``BlockStatus`` whose ``multiplier`` scales the
node's capacity.

    status = BlockStatus.mutated(0.4)
    status.multiplier        # 0.4
    BlockKind.RESPIRATION.description
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto


class BlockKind(Enum):
    LIGHT_CAPTURE = auto()
    SUGAR_CATABOLISM = auto()
    ORGANIC_ACID_OXIDATION = auto()
    RESPIRATION = auto()
    FERMENTATION = auto()
    NITROGEN_SULFUR_ASSIMILATION = auto()
    AMINO_ACID_BIOSYNTHESIS = auto()
    LIPID_METABOLISM = auto()
    NUCLEOTIDE_COFACTOR_SYNTHESIS = auto()
    SECONDARY_METABOLITES = auto()
    AROMATIC_PRECURSOR_SYNTHESIS = auto()
    POLYMERIZATION = auto()

    @property
    def description(self) -> str:
        return BLOCK_DESCRIPTIONS[self]

    @property
    def key(self) -> str:
        """Lower-case name used in TOML files and saves."""
        return self.name.lower()

    @classmethod
    def parse(cls, name: str) -> BlockKind:
        """Accept ``"respiration"``, ``"RESPIRATION"`` or ``"Respiration"``.

        CamelCase names (``"LightCapture"``) are accepted too.
        Raises ``ValueError`` for anything else.
        """
        if isinstance(name, BlockKind):
            return name
        raw = str(name).strip()
        candidates = [raw.upper()]
        # LightCapture -> LIGHT_CAPTURE
        snake = "".join("_" + c if c.isupper() and i else c
                        for i, c in enumerate(raw))
        candidates.append(snake.upper())
        for cand in candidates:
            if cand in cls.__members__:
                return cls[cand]
        raise ValueError(f"unknown block kind {name!r}")


BLOCK_DESCRIPTIONS: dict[BlockKind, str] = {
    BlockKind.LIGHT_CAPTURE:
        "Harvests photons to drive ATP/NADPH generation.",
    BlockKind.SUGAR_CATABOLISM:
        "Glycolysis and related sugar breakdown pathways.",
    BlockKind.ORGANIC_ACID_OXIDATION:
        "TCA cycle and organic acid oxidation.",
    BlockKind.RESPIRATION:
        "Electron transport chain, oxidative phosphorylation.",
    BlockKind.FERMENTATION:
        "Anaerobic energy production pathways.",
    BlockKind.NITROGEN_SULFUR_ASSIMILATION:
        "Incorporation of nitrogen and sulfur into organic molecules.",
    BlockKind.AMINO_ACID_BIOSYNTHESIS:
        "Construction of amino acids from precursors.",
    BlockKind.LIPID_METABOLISM:
        "Fatty acid synthesis and breakdown.",
    BlockKind.NUCLEOTIDE_COFACTOR_SYNTHESIS:
        "Production of nucleotides and enzyme cofactors.",
    BlockKind.SECONDARY_METABOLITES:
        "Specialized compounds for defense and signaling.",
    BlockKind.AROMATIC_PRECURSOR_SYNTHESIS:
        "Shikimate pathway and aromatic amino acid precursors.",
    BlockKind.POLYMERIZATION:
        "Assembly of macromolecules from monomers.",
}

# Every kind-keyed table must cover the whole enum.
_missing = [k.name for k in BlockKind if k not in BLOCK_DESCRIPTIONS]
if _missing:
    raise RuntimeError(f"BLOCK_DESCRIPTIONS missing {_missing}")
del _missing


class GeneState(Enum):
    """Expression state reported by the gene model for one block kind."""
    EXPRESSED = auto()
    MUTATED = auto()
    SILENT = auto()


class Activation(Enum):
    ACTIVE = auto()
    MUTATED = auto()
    SILENT = auto()


@dataclass(frozen=True, slots=True)
class BlockStatus:
    """Activation state of a block, with the Mutated throughput factor.

    Build with the constructors rather than directly::

        BlockStatus.active()
        BlockStatus.mutated(0.5)
        BlockStatus.silent()
    """
    state: Activation = Activation.ACTIVE
    factor: float = 1.0

    def __post_init__(self):
        if self.state is Activation.MUTATED and not (0.0 < self.factor < 1.0):
            raise ValueError(f"mutated factor must be in (0, 1), got {self.factor}")

    @classmethod
    def active(cls) -> BlockStatus:
        return cls(Activation.ACTIVE, 1.0)

    @classmethod
    def mutated(cls, factor: float) -> BlockStatus:
        return cls(Activation.MUTATED, float(factor))

    @classmethod
    def silent(cls) -> BlockStatus:
        return cls(Activation.SILENT, 0.0)

    @property
    def multiplier(self) -> float:
        if self.state is Activation.ACTIVE:
            return 1.0
        if self.state is Activation.MUTATED:
            return self.factor
        return 0.0

    def label(self) -> str:
        if self.state is Activation.MUTATED:
            return f"Mutated({self.factor:g})"
        return self.state.name.capitalize()

    # ── Serialisation ────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {"state": self.state.name.lower(), "factor": self.factor}

    @classmethod
    def from_dict(cls, data: dict | str) -> BlockStatus:
        """Accept ``{"state": "mutated", "factor": 0.3}`` or a bare name."""
        if isinstance(data, str):
            data = {"state": data}
        state = Activation[str(data.get("state", "active")).upper()]
        if state is Activation.MUTATED:
            return cls.mutated(data.get("factor", 0.5))
        if state is Activation.SILENT:
            return cls.silent()
        return cls.active()
