"""
Genome: the pathway registry.

Each pathway kind maps to one gene tile in a tri-state record
(silent / expressed / mutated). Once per tick the genome is diffed against
the snapshot taken at the end of the previous tick; the diff drives block
statuses and graph invalidation.

Transitions:
  silent    -> expressed   express_gene  (requires silent)
  expressed -> silent      silence_gene  (requires expressed)
  any       -> mutated     mutate_gene   (unconditional on a present gene)
  mutated   -> silent      repair_gene   (requires mutated)
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Iterable
import json
import logging

logger = logging.getLogger(__name__)


class PathwayKind(str, Enum):
    LIGHT_CAPTURE = "LightCapture"
    SUGAR_CATABOLISM = "SugarCatabolism"
    ORGANIC_ACID_OXIDATION = "OrganicAcidOxidation"
    RESPIRATION = "Respiration"
    FERMENTATION = "Fermentation"
    NITROGEN_SULFUR_ASSIMILATION = "NitrogenSulfurAssimilation"
    AMINO_ACID_BIOSYNTHESIS = "AminoAcidBiosynthesis"
    LIPID_METABOLISM = "LipidMetabolism"
    NUCLEOTIDE_COFACTOR_SYNTHESIS = "NucleotideCofactorSynthesis"
    SECONDARY_METABOLITES = "SecondaryMetabolites"
    AROMATIC_PRECURSOR_SYNTHESIS = "AromaticPrecursorSynthesis"
    POLYMERIZATION = "Polymerization"

    @property
    def description(self) -> str:
        return PATHWAY_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, name: "str | PathwayKind") -> "PathwayKind":
        if isinstance(name, PathwayKind):
            return name
        try:
            return cls(name)
        except ValueError:
            pass
        try:
            return cls[str(name).upper()]
        except KeyError:
            raise ValueError(f"unknown pathway kind {name!r}") from None


def lookup_kind(name: "str | PathwayKind") -> Optional[PathwayKind]:
    """Like ``PathwayKind.parse`` but returns None for an unknown name."""
    try:
        return PathwayKind.parse(name)
    except ValueError:
        return None


PATHWAY_DESCRIPTIONS: Dict[PathwayKind, str] = {
    PathwayKind.LIGHT_CAPTURE: "Capture light to produce ATP and NADPH",
    PathwayKind.SUGAR_CATABOLISM: "Break down sugars into pyruvate",
    PathwayKind.ORGANIC_ACID_OXIDATION: "Oxidize organic acids via the TCA cycle",
    PathwayKind.RESPIRATION: "Use NADH to generate large amounts of ATP",
    PathwayKind.FERMENTATION: "Anaerobic ATP production with redox balance",
    PathwayKind.NITROGEN_SULFUR_ASSIMILATION: "Assimilate nitrogen and sulfur sources",
    PathwayKind.AMINO_ACID_BIOSYNTHESIS: "Produce amino acids from precursors",
    PathwayKind.LIPID_METABOLISM: "Synthesize and degrade fatty acids",
    PathwayKind.NUCLEOTIDE_COFACTOR_SYNTHESIS: "Generate nucleotides and cofactors",
    PathwayKind.SECONDARY_METABOLITES: "Produce pigments and toxins",
    PathwayKind.AROMATIC_PRECURSOR_SYNTHESIS: "Create aromatic precursors",
    PathwayKind.POLYMERIZATION: "Polymerize lignin and other biopolymers",
}


class GeneState(str, Enum):
    SILENT = "Silent"
    EXPRESSED = "Expressed"
    MUTATED = "Mutated"


class GenomeDecodeError(ValueError):
    """Raised when a persisted genome document cannot be decoded."""


@dataclass
class GenomeDiff:
    enabled: List[PathwayKind] = field(default_factory=list)
    disabled: List[PathwayKind] = field(default_factory=list)
    any_changed: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.enabled and not self.disabled


@dataclass
class GeneRecord:
    kind: PathwayKind
    state: GeneState
    description: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "state": self.state.value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GeneRecord":
        kind = PathwayKind.parse(data["kind"])
        state = GeneState(data["state"])
        return cls(kind=kind, state=state, description=str(data.get("description", kind.description)))


class Genome:
    def __init__(self) -> None:
        self.table: Dict[PathwayKind, GeneState] = {}
        # snapshot of the table at the end of the previous tick, diffing only
        self._previous: Dict[PathwayKind, GeneState] = {}

    # -----------------------------
    # Gene operations
    # -----------------------------
    def add_gene(self, kind: PathwayKind) -> bool:
        """Add a gene tile; always starts silent, replacing any prior record."""
        kind = lookup_kind(kind)
        if kind is None:
            return False
        self.table[kind] = GeneState.SILENT
        return True

    def has_gene(self, kind: PathwayKind) -> bool:
        return lookup_kind(kind) in self.table

    def express_gene(self, kind: PathwayKind) -> bool:
        return self._transition(kind, GeneState.SILENT, GeneState.EXPRESSED)

    def silence_gene(self, kind: PathwayKind) -> bool:
        return self._transition(kind, GeneState.EXPRESSED, GeneState.SILENT)

    def repair_gene(self, kind: PathwayKind) -> bool:
        return self._transition(kind, GeneState.MUTATED, GeneState.SILENT)

    def mutate_gene(self, kind: PathwayKind) -> bool:
        kind = lookup_kind(kind)
        if kind is None or kind not in self.table:
            return False
        self.table[kind] = GeneState.MUTATED
        return True

    def apply_mutation(self, kind: PathwayKind, target: GeneState) -> bool:
        """Force ``target`` onto a present gene, ignoring transition rules."""
        kind = lookup_kind(kind)
        if kind is None or kind not in self.table:
            return False
        self.table[kind] = GeneState(target)
        return True

    def _transition(self, kind: PathwayKind, source: GeneState, target: GeneState) -> bool:
        kind = lookup_kind(kind)
        if kind is None or self.table.get(kind) != source:
            return False
        self.table[kind] = target
        return True

    def get_gene_state(self, kind: PathwayKind) -> Optional[GeneState]:
        return self.table.get(lookup_kind(kind))

    def get_expressed_genes(self) -> List[PathwayKind]:
        return [k for k, s in self.table.items() if s == GeneState.EXPRESSED]

    def genes(self) -> List[PathwayKind]:
        return list(self.table.keys())

    def __len__(self) -> int:
        return len(self.table)

    # -----------------------------
    # Diffing
    # -----------------------------
    def compute_diff(self) -> GenomeDiff:
        diff = GenomeDiff()
        for kind, current in self.table.items():
            previous = self._previous.get(kind)
            if current == GeneState.EXPRESSED and previous != GeneState.EXPRESSED:
                diff.enabled.append(kind)
            elif previous == GeneState.EXPRESSED and current != GeneState.EXPRESSED:
                diff.disabled.append(kind)
        diff.any_changed = self.has_any_changes()
        return diff

    def has_any_changes(self) -> bool:
        for kind, current in self.table.items():
            if self._previous.get(kind) != current:
                return True
        return False

    def update_snapshot(self) -> None:
        self._previous = dict(self.table)

    def poll_diff(self) -> GenomeDiff:
        """Diff against the last snapshot, then take a new snapshot."""
        diff = self.compute_diff()
        self.update_snapshot()
        return diff

    # -----------------------------
    # Persistence
    # -----------------------------
    def to_records(self) -> List[GeneRecord]:
        return [GeneRecord(kind=k, state=s, description=k.description) for k, s in self.table.items()]

    def to_json(self) -> str:
        return json.dumps({"genes": [r.to_dict() for r in self.to_records()]}, indent=2)

    @classmethod
    def from_records(cls, records: Iterable[GeneRecord]) -> "Genome":
        genome = cls()
        for r in records:
            genome.table[r.kind] = r.state
        return genome

    @classmethod
    def from_json(cls, text: str) -> "Genome":
        try:
            doc = json.loads(text)
            records = [GeneRecord.from_dict(item) for item in doc["genes"]]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise GenomeDecodeError(f"malformed genome document: {exc}") from exc
        return cls.from_records(records)

    def load_json(self, text: str) -> None:
        """Replace this genome's table in place. The diff baseline is reset."""
        loaded = Genome.from_json(text)
        self.table = loaded.table
        self._previous = {}
        logger.info("Loaded genome with %d genes", len(self.table))


def create_starter_genome(kinds: Iterable["str | PathwayKind"]) -> Genome:
    genome = Genome()
    for kind in kinds:
        genome.add_gene(PathwayKind.parse(kind))
    return genome
