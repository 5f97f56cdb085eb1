from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging
import random

from .config import FlowConfig
from .genome import Genome, GeneState, PathwayKind

logger = logging.getLogger(__name__)


class MutationPolicy:
    """Decides, per gene and per tick, whether a mutation happens."""

    def should_mutate(self, kind: PathwayKind, dt: float) -> bool:
        raise NotImplementedError

    def mutation_target(self, kind: PathwayKind) -> GeneState:
        raise NotImplementedError


class RandomMutationPolicy(MutationPolicy):
    """Uniform hazard: ``rate_per_second * dt`` chance per gene per call."""

    def __init__(self, rate_per_second: float = 0.01, rng: Optional[random.Random] = None) -> None:
        self.rate_per_second = max(0.0, float(rate_per_second))
        self.rng = rng or random.Random()

    def should_mutate(self, kind: PathwayKind, dt: float) -> bool:
        return self.rng.random() < self.rate_per_second * max(0.0, dt)

    def mutation_target(self, kind: PathwayKind) -> GeneState:
        return GeneState.MUTATED


class DeterministicMutationPolicy(MutationPolicy):
    """Never mutates. Used for reproducible runs."""

    def should_mutate(self, kind: PathwayKind, dt: float) -> bool:
        return False

    def mutation_target(self, kind: PathwayKind) -> GeneState:
        return GeneState.MUTATED


class ScriptedMutationPolicy(MutationPolicy):
    """Fires on a fixed schedule of (call index, kind) pairs.

    Calls are counted per kind, starting at 0, so with one call per gene per
    tick the index is the number of ticks the gene has been polled for.
    """

    def __init__(self, schedule: Iterable[Tuple[int, "str | PathwayKind"]],
                 target: GeneState = GeneState.MUTATED) -> None:
        self.schedule: Set[Tuple[int, PathwayKind]] = {(int(i), PathwayKind.parse(k)) for i, k in schedule}
        self.target = target
        self.calls: Dict[PathwayKind, int] = {}

    def should_mutate(self, kind: PathwayKind, dt: float) -> bool:
        idx = self.calls.get(kind, 0)
        self.calls[kind] = idx + 1
        return (idx, kind) in self.schedule

    def mutation_target(self, kind: PathwayKind) -> GeneState:
        return self.target


def policy_from_config(cfg: FlowConfig, seed: Optional[int] = None) -> MutationPolicy:
    if cfg.mutation_mode == "deterministic":
        return DeterministicMutationPolicy()
    return RandomMutationPolicy(cfg.mutation_rate_per_second, rng=random.Random(seed))


def apply_mutations(genome: Genome, policy: MutationPolicy, dt: float) -> List[PathwayKind]:
    """Ask the policy once per present gene and apply positive decisions."""
    mutated: List[PathwayKind] = []
    for kind in genome.genes():
        if not policy.should_mutate(kind, dt):
            continue
        target = policy.mutation_target(kind)
        if genome.apply_mutation(kind, target):
            mutated.append(kind)
            logger.warning("Gene %s -> %s (mutation)", kind.value, GeneState(target).value)
    return mutated
