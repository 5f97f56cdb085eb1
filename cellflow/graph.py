from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, FrozenSet
import logging
import numpy as np

from .core import Currency
from .genome import Genome, GeneState, PathwayKind

logger = logging.getLogger(__name__)

CURRENCIES: List[Currency] = list(Currency)

NodeSignature = Tuple[str, FrozenSet[Currency], FrozenSet[Currency]]


# -----------------------------
# Node status
# -----------------------------
class BlockStatus(str, Enum):
    ACTIVE = "active"
    MUTATED = "mutated"
    SILENT = "silent"


def status_from_gene(state: Optional[GeneState]) -> BlockStatus:
    if state == GeneState.EXPRESSED:
        return BlockStatus.ACTIVE
    if state == GeneState.MUTATED:
        return BlockStatus.MUTATED
    return BlockStatus.SILENT


# -----------------------------
# Flux profiles / nodes
# -----------------------------
class FluxProfile(dict):
    """Currency -> signed rate per tick (negative consumes, positive produces)."""

    def __init__(self, rates=None, **kwargs) -> None:
        super().__init__()
        for name, rate in dict(rates or {}, **kwargs).items():
            self[Currency.parse(name)] = float(rate)

    def consumed(self) -> FrozenSet[Currency]:
        return frozenset(c for c, r in self.items() if r < 0.0)

    def produced(self) -> FrozenSet[Currency]:
        return frozenset(c for c, r in self.items() if r > 0.0)

    def scaled(self, multiplier: float) -> "FluxProfile":
        return FluxProfile({c: r * multiplier for c, r in self.items()})

    def replace(self, rates) -> None:
        self.clear()
        for name, rate in dict(rates).items():
            self[Currency.parse(name)] = float(rate)


@dataclass
class MetabolicNode:
    node_id: str
    kind: PathwayKind
    status: BlockStatus = BlockStatus.SILENT
    profile: FluxProfile = field(default_factory=FluxProfile)

    def multiplier(self, multipliers: Dict[str, float]) -> float:
        return float(multipliers.get(self.status.value, 0.0))

    def signature(self) -> NodeSignature:
        return (self.node_id, self.profile.consumed(), self.profile.produced())


class NodeSet:
    """Live pathway instances in insertion order (the canonical node order)."""

    def __init__(self) -> None:
        self._nodes: Dict[str, MetabolicNode] = {}

    def add(self, node: MetabolicNode) -> None:
        if node.node_id in self._nodes:
            raise ValueError(f"duplicate node id {node.node_id}")
        self._nodes[node.node_id] = node

    def remove(self, node_id: str) -> Optional[MetabolicNode]:
        return self._nodes.pop(node_id, None)

    def get(self, node_id: str) -> Optional[MetabolicNode]:
        return self._nodes.get(node_id)

    def by_kind(self, kind: PathwayKind) -> List[MetabolicNode]:
        kind = PathwayKind.parse(kind)
        return [n for n in self._nodes.values() if n.kind == kind]

    def ids(self) -> List[str]:
        return list(self._nodes.keys())

    def __iter__(self) -> Iterator[MetabolicNode]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def apply_statuses(self, genome: Genome) -> List[str]:
        """Project gene state onto every node. Returns ids whose status changed."""
        changed = []
        for node in self._nodes.values():
            status = status_from_gene(genome.get_gene_state(node.kind))
            if status != node.status:
                node.status = status
                changed.append(node.node_id)
        return changed

    def signature(self) -> Tuple[NodeSignature, ...]:
        return tuple(n.signature() for n in self._nodes.values())


# -----------------------------
# Dirty flag
# -----------------------------
class FlowDirty:
    def __init__(self, dirty: bool = False) -> None:
        self.is_set = dirty
        self.reasons: List[str] = []

    def mark(self, reason: str) -> None:
        self.is_set = True
        self.reasons.append(reason)

    def clear(self) -> None:
        self.is_set = False
        self.reasons = []

    def __bool__(self) -> bool:
        return self.is_set


# -----------------------------
# Dependency graph
# -----------------------------
@dataclass
class DependencyGraph:
    nodes: List[str] = field(default_factory=list)
    # (consumer, producer) pairs
    edges: List[Tuple[str, str]] = field(default_factory=list)
    producers: Dict[str, List[str]] = field(default_factory=dict)
    broken_edges: List[Tuple[str, str]] = field(default_factory=list)
    built_signature: Optional[Tuple[NodeSignature, ...]] = None
    version: int = 0

    def build(self, node_set: NodeSet) -> None:
        """Rebuild from scratch.

        A consumer depends on a producer iff the consumer declares negative
        flux and the producer positive flux for at least one shared currency.
        Self-loops are dropped. Currency identities are not kept on edges.
        """
        nodes = list(node_set)
        ids = [n.node_id for n in nodes]
        n = len(nodes)
        c = len(CURRENCIES)

        neg = np.zeros((n, c), dtype=np.int64)
        pos = np.zeros((n, c), dtype=np.int64)
        for i, node in enumerate(nodes):
            for j, currency in enumerate(CURRENCIES):
                rate = node.profile.get(currency, 0.0)
                if rate < 0.0:
                    neg[i, j] = 1
                elif rate > 0.0:
                    pos[i, j] = 1

        adj = (neg @ pos.T) > 0
        if n:
            np.fill_diagonal(adj, False)

        self.nodes = ids
        self.producers = {}
        self.edges = []
        for i, consumer in enumerate(ids):
            prods = [ids[j] for j in np.flatnonzero(adj[i])]
            self.producers[consumer] = prods
            self.edges.extend((consumer, p) for p in prods)
        self.broken_edges = []
        self.built_signature = node_set.signature()
        self.version += 1
        logger.info("Rebuilt metabolic graph: %d nodes, %d edges", len(self.nodes), len(self.edges))

    def is_stale_for(self, node_set: NodeSet) -> bool:
        return self.built_signature != node_set.signature()

    def producers_of(self, node_id: str) -> List[str]:
        return list(self.producers.get(node_id, []))
