from __future__ import annotations
from typing import Callable, Dict, List, Optional
import logging
import random

from .blocks import PathwayBlock
from .config import FlowConfig
from .core import Currency, CurrencyPools, EPS, Event, EventLog, format_pools
from .factory import BlockFactory
from .genome import Genome, GenomeDiff, GeneState, PathwayKind, create_starter_genome, lookup_kind
from .graph import DependencyGraph, FlowDirty, MetabolicNode, NodeSet
from .metrics import MetricsStore
from .mutation import MutationPolicy, apply_mutations, policy_from_config
from .solver import FluxResult, commit_flux, solve_flux

logger = logging.getLogger(__name__)

DiffObserver = Callable[[GenomeDiff], None]


class MetabolicEngine:
    """Fixed-interval metabolic flow loop.

    Each tick runs, to completion and in order: genome diff, node status
    propagation, block profile refresh, graph rebuild (only when dirty), flux
    solve, ledger commit, mutation. The ledger is written in the commit phase
    only.
    """

    def __init__(
        self,
        cfg: Optional[FlowConfig] = None,
        seed: int = 1,
        genome: Optional[Genome] = None,
        pools: Optional[CurrencyPools] = None,
        policy: Optional[MutationPolicy] = None,
    ) -> None:
        self.cfg = cfg or FlowConfig()
        self.seed = seed
        self.rng = random.Random(seed)

        self.tick: int = 0
        self.time: float = 0.0
        self._accumulator: float = 0.0
        self.log = EventLog(maxlen=self.cfg.event_log_maxlen)
        self.metrics = MetricsStore()

        self.genome = genome if genome is not None else create_starter_genome(self.cfg.starter_genes)
        self.pools = pools if pools is not None else CurrencyPools.with_defaults(self.cfg)
        self.policy = policy if policy is not None else policy_from_config(self.cfg, seed=self.rng.randrange(2**32))

        self.factory = BlockFactory(self.cfg)
        self.nodes = NodeSet()
        self.graph = DependencyGraph()
        self.dirty = FlowDirty()
        self.result = FluxResult()
        self.last_diff = GenomeDiff()
        self.last_applied: Dict[Currency, float] = {}
        self._pending_charges: Dict[Currency, float] = {}

        self._diff_observers: List[DiffObserver] = []
        self._update_observers: List[DiffObserver] = []
        # node statuses follow the genome through the same signal the UI gets
        self.add_update_observer(self._on_metabolic_update)

    # -----------------------------
    # Observers
    # -----------------------------
    def add_diff_observer(self, fn: DiffObserver) -> None:
        """Called with the diff whenever a gene enters or leaves expression."""
        self._diff_observers.append(fn)

    def add_update_observer(self, fn: DiffObserver) -> None:
        """Called whenever any gene state changed since the previous tick."""
        self._update_observers.append(fn)

    def _on_metabolic_update(self, diff: GenomeDiff) -> None:
        changed = self.nodes.apply_statuses(self.genome)
        for node_id in changed:
            node = self.nodes.get(node_id)
            self.log.add(Event(self.tick, "NODE_STATUS", node_id=node_id, kind=node.kind.value,
                               meta={"status": node.status.value}))
        self.dirty.mark("genome_changed")

    # -----------------------------
    # Node set
    # -----------------------------
    def spawn_block(self, block: PathwayBlock) -> MetabolicNode:
        node = self.factory.create_node(block, self.genome, self.pools)
        self.nodes.add(node)
        self.dirty.mark("node_added")
        self.log.add(Event(self.tick, "NODE_SPAWNED", node_id=node.node_id, kind=node.kind.value,
                           meta={"block": block.name, "status": node.status.value}))
        logger.info("Spawned %s block %s (%s)", block.name, node.node_id, node.status.value)
        return node

    def despawn(self, node_id: str) -> bool:
        node = self.nodes.remove(node_id)
        self.factory.release(node_id)
        if node is None:
            return False
        self.dirty.mark("node_removed")
        self.log.add(Event(self.tick, "NODE_DESPAWNED", node_id=node_id, kind=node.kind.value))
        return True

    # -----------------------------
    # Gene operations
    # -----------------------------
    def _gene_op_failed(self, op: str, kind: "str | PathwayKind", reason: str) -> bool:
        label = kind.value if isinstance(kind, PathwayKind) else str(kind)
        logger.warning("Failed to %s %s gene - %s", op, label, reason)
        self.log.add(Event(self.tick, "GENE_OP_FAILED", kind=label, meta={"op": op, "reason": reason}))
        return False

    def _known_kind(self, op: str, kind: "str | PathwayKind") -> Optional[PathwayKind]:
        known = lookup_kind(kind)
        if known is None:
            self._gene_op_failed(op, kind, "unknown pathway kind")
        return known

    def _can_afford(self, costs: Dict[Currency, float]) -> bool:
        for currency, amount in costs.items():
            available = self.pools.get(currency) - self._pending_charges.get(currency, 0.0)
            if available + EPS < amount:
                return False
        return True

    def _queue_charges(self, costs: Dict[Currency, float]) -> None:
        for currency, amount in costs.items():
            self._pending_charges[currency] = self._pending_charges.get(currency, 0.0) + amount

    def _expression_costs(self) -> Dict[Currency, float]:
        c = self.cfg.gene_costs
        return {Currency.ATP: c.expression_atp_cost, Currency.NUCLEOTIDES: c.expression_nucleotide_cost}

    def _editing_costs(self) -> Dict[Currency, float]:
        c = self.cfg.gene_costs
        return {Currency.ATP: c.editing_atp_cost, Currency.REDUCING_POWER: c.editing_reducing_power_cost}

    def add_gene(self, kind: "str | PathwayKind") -> bool:
        kind = self._known_kind("add", kind)
        if kind is None:
            return False
        self.genome.add_gene(kind)
        self.log.add(Event(self.tick, "GENE_ADDED", kind=kind.value))
        logger.info("Added %s gene to genome", kind.value)
        return True

    def express_gene(self, kind: "str | PathwayKind") -> bool:
        kind = self._known_kind("express", kind)
        if kind is None:
            return False
        if self.genome.get_gene_state(kind) != GeneState.SILENT:
            return self._gene_op_failed("express", kind, "already expressed or not present")
        costs = self._expression_costs() if self.cfg.charge_gene_costs else {}
        if costs and not self._can_afford(costs):
            return self._gene_op_failed("express", kind, "insufficient currency")
        self.genome.express_gene(kind)
        self._queue_charges(costs)
        self.log.add(Event(self.tick, "GENE_EXPRESSED", kind=kind.value))
        return True

    def silence_gene(self, kind: "str | PathwayKind") -> bool:
        kind = self._known_kind("silence", kind)
        if kind is None:
            return False
        if not self.genome.silence_gene(kind):
            return self._gene_op_failed("silence", kind, "not expressed or not present")
        self.log.add(Event(self.tick, "GENE_SILENCED", kind=kind.value))
        return True

    def mutate_gene(self, kind: "str | PathwayKind") -> bool:
        kind = self._known_kind("mutate", kind)
        if kind is None:
            return False
        if not self.genome.mutate_gene(kind):
            return self._gene_op_failed("mutate", kind, "not present")
        self.log.add(Event(self.tick, "GENE_MUTATED", kind=kind.value, meta={"source": "edit"}))
        return True

    def repair_gene(self, kind: "str | PathwayKind") -> bool:
        kind = self._known_kind("repair", kind)
        if kind is None:
            return False
        if self.genome.get_gene_state(kind) != GeneState.MUTATED:
            return self._gene_op_failed("repair", kind, "not mutated or not present")
        costs = self._editing_costs() if self.cfg.charge_gene_costs else {}
        if costs and not self._can_afford(costs):
            return self._gene_op_failed("repair", kind, "insufficient currency")
        self.genome.repair_gene(kind)
        self._queue_charges(costs)
        self.log.add(Event(self.tick, "GENE_REPAIRED", kind=kind.value))
        return True

    def get_gene_state(self, kind: "str | PathwayKind") -> Optional[GeneState]:
        return self.genome.get_gene_state(kind)

    def get_expressed_genes(self) -> List[PathwayKind]:
        return self.genome.get_expressed_genes()

    # -----------------------------
    # Persistence
    # -----------------------------
    def save_genome(self) -> str:
        return self.genome.to_json()

    def load_genome(self, text: str) -> None:
        """Replace the genome from JSON. Decode errors propagate unchanged."""
        self.genome.load_json(text)
        self.nodes.apply_statuses(self.genome)
        self.dirty.mark("genome_loaded")
        self.log.add(Event(self.tick, "GENOME_LOADED", meta={"genes": len(self.genome)}))

    # -----------------------------
    # Tick phases
    # -----------------------------
    def _diff_phase(self) -> GenomeDiff:
        diff = self.genome.poll_diff()
        self.last_diff = diff
        if not diff.is_empty:
            for kind in diff.enabled:
                logger.info("Enabled metabolic block: %s", kind.value)
            for kind in diff.disabled:
                logger.info("Disabled metabolic block: %s", kind.value)
            self.log.add(Event(self.tick, "GENOME_DIFF", meta={
                "enabled": [k.value for k in diff.enabled],
                "disabled": [k.value for k in diff.disabled],
            }))
            for fn in self._diff_observers:
                fn(diff)
        if diff.any_changed:
            self.log.add(Event(self.tick, "METABOLIC_UPDATE"))
            for fn in self._update_observers:
                fn(diff)
        return diff

    def _refresh_profiles(self) -> None:
        for node in self.nodes:
            block = self.factory.block_for(node.node_id)
            if block is None:
                continue
            node.profile.replace(block.declare(self.pools, self.cfg))
        if not self.dirty and self.graph.is_stale_for(self.nodes):
            self.dirty.mark("profile_changed")

    def _rebuild_phase(self) -> None:
        if not self.dirty:
            return
        reasons = list(dict.fromkeys(self.dirty.reasons))
        self.graph.build(self.nodes)
        self.dirty.clear()
        self.log.add(Event(self.tick, "GRAPH_REBUILT", amount=float(len(self.graph.edges)),
                           meta={"reasons": reasons}))

    def _commit_phase(self) -> None:
        self.last_applied = commit_flux(self.result, self.pools, debug=self.cfg.debug_ledger)
        if self.cfg.charge_gene_costs:
            upkeep = self.cfg.gene_costs.maintenance_atp_cost * len(self.genome.get_expressed_genes())
            if upkeep > 0.0:
                self._queue_charges({Currency.ATP: upkeep})
        for currency, amount in self._pending_charges.items():
            self.pools.modify(currency, -amount)
        if self._pending_charges:
            self.log.add(Event(self.tick, "GENE_COSTS_CHARGED", meta={
                c.value: amt for c, amt in self._pending_charges.items()
            }))
        self._pending_charges = {}

        for node in self.nodes:
            block = self.factory.block_for(node.node_id)
            if block is None:
                continue
            if node.node_id in self.result.entity_flux:
                granted = dict(node.profile.scaled(node.multiplier(self.cfg.status_multipliers)))
            else:
                granted = {}
            block.on_result(granted)

    def _mutation_phase(self, dt: float) -> None:
        for kind in apply_mutations(self.genome, self.policy, dt):
            self.log.add(Event(self.tick, "GENE_MUTATED", kind=kind.value, meta={"source": "policy"}))

    def step(self, n_ticks: int = 1) -> None:
        if n_ticks < 0:
            raise ValueError(f"n_ticks must be non-negative, got {n_ticks}")
        dt = self.cfg.tick_seconds
        for _ in range(n_ticks):
            self.tick += 1
            self._diff_phase()
            self._refresh_profiles()
            self._rebuild_phase()

            solve_flux(self.graph, self.nodes, self.pools, self.cfg, self.result)
            if self.graph.broken_edges:
                self.log.add(Event(self.tick, "CYCLE_BROKEN", meta={
                    "edges": [list(e) for e in self.graph.broken_edges],
                }))
            for node_id in self.result.skipped:
                self.log.add(Event(self.tick, "NODE_SKIPPED", node_id=node_id))

            self._commit_phase()
            self._mutation_phase(dt)
            self.time += dt
            self.snapshot_metrics()

    def advance(self, dt: float) -> int:
        """Feed wall/frame time into the fixed flow clock. Returns ticks run."""
        if dt < 0.0:
            raise ValueError(f"dt must be non-negative, got {dt}")
        self._accumulator += dt
        period = self.cfg.tick_seconds
        n = int((self._accumulator + 1e-12) // period)
        cap = self.cfg.max_ticks_per_advance
        if cap is not None and cap > 0 and n > cap:
            logger.debug("Flow clock behind by %d ticks, dropping %d", n, n - cap)
            n = cap
            self._accumulator = 0.0
        else:
            self._accumulator = max(0.0, self._accumulator - n * period)
        self.step(n)
        return n

    # -----------------------------
    # Views
    # -----------------------------
    def snapshot(self) -> dict:
        return {
            "tick": self.tick,
            "time": self.time,
            "pools": self.pools.snapshot(),
            "genome": dict(self.genome.table),
            "nodes": [
                {"node_id": n.node_id, "kind": n.kind.value, "status": n.status.value,
                 "net_flux": self.result.entity_flux.get(n.node_id),
                 "skipped": n.node_id in self.result.skipped}
                for n in self.nodes
            ],
            "edges": list(self.graph.edges),
        }

    def snapshot_metrics(self) -> None:
        stride = int(self.cfg.metrics_stride or 0)
        if stride <= 0 or self.tick % stride != 0:
            return
        row = {"tick": self.tick, "time": self.time}
        for currency, amount in self.pools.snapshot().items():
            row[currency.value] = amount
        self.metrics.add_currency(row)

        skipped = set(self.result.skipped)
        self.metrics.add_node_rows([
            {
                "tick": self.tick,
                "node_id": n.node_id,
                "kind": n.kind.value,
                "status": n.status.value,
                "net_flux": float(self.result.entity_flux.get(n.node_id, 0.0)),
                "skipped": n.node_id in skipped,
            }
            for n in self.nodes
        ])
        if self.cfg.debug_ledger and logger.isEnabledFor(logging.DEBUG):
            logger.debug("[LEDGER] tick=%d pools={ %s }", self.tick, format_pools(self.pools.snapshot()))
