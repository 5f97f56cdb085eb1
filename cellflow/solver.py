"""
Flux solver / scheduler.

One tick:
  1. order nodes so producers run before their consumers (DFS, node order);
  2. walk that order, letting each node claim its declared consumption from
     ledger + deltas already granted this tick, all-or-nothing;
  3. hand the accumulated deltas to ``commit_flux``, the only writer of the
     ledger.

Cycles are broken deterministically: the walk enters nodes in node order, and
an edge pointing back at a node still on the DFS stack is dropped. The node
entered first ends up later in the order than the producers it reached, and
the dropped edges are returned to the caller.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging

from .config import FlowConfig
from .core import Currency, CurrencyPools, EPS, format_pools
from .graph import DependencyGraph, NodeSet

logger = logging.getLogger(__name__)

_VISITING = 1
_DONE = 2


@dataclass
class FluxResult:
    entity_flux: Dict[str, float] = field(default_factory=dict)
    currency_changes: Dict[Currency, float] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    order: List[str] = field(default_factory=list)

    def clear(self) -> None:
        self.entity_flux.clear()
        self.currency_changes.clear()
        self.skipped.clear()
        self.order.clear()


def topological_order(graph: DependencyGraph) -> Tuple[List[str], List[Tuple[str, str]]]:
    """Return (order, broken_edges). Producers precede their consumers."""
    state: Dict[str, int] = {}
    order: List[str] = []
    broken: List[Tuple[str, str]] = []

    for root in graph.nodes:
        if root in state:
            continue
        # iterative DFS; each frame is (node, remaining producers)
        state[root] = _VISITING
        stack = [(root, iter(graph.producers.get(root, [])))]
        while stack:
            node, producers = stack[-1]
            advanced = False
            for prod in producers:
                mark = state.get(prod)
                if mark == _DONE:
                    continue
                if mark == _VISITING:
                    broken.append((node, prod))
                    continue
                state[prod] = _VISITING
                stack.append((prod, iter(graph.producers.get(prod, []))))
                advanced = True
                break
            if not advanced:
                stack.pop()
                state[node] = _DONE
                order.append(node)

    return order, broken


def solve_flux(
    graph: DependencyGraph,
    nodes: NodeSet,
    pools: CurrencyPools,
    cfg: FlowConfig,
    result: Optional[FluxResult] = None,
) -> FluxResult:
    """Compute this tick's deltas. ``pools`` is only read."""
    if result is None:
        result = FluxResult()
    result.clear()

    order, broken = topological_order(graph)
    if broken:
        logger.debug("Dependency cycle(s) broken: %s", broken)
    graph.broken_edges = broken
    result.order = order

    changes = result.currency_changes
    for node_id in order:
        node = nodes.get(node_id)
        if node is None:
            continue
        mult = node.multiplier(cfg.status_multipliers)

        affordable = True
        for currency, rate in node.profile.items():
            if rate >= 0.0:
                continue
            required = -rate * mult
            available = pools.get(currency) + changes.get(currency, 0.0)
            if available + EPS < required:
                affordable = False
                break
        if not affordable:
            result.skipped.append(node_id)
            continue

        net = 0.0
        for currency, rate in node.profile.items():
            delta = rate * mult
            changes[currency] = changes.get(currency, 0.0) + delta
            net += delta
        result.entity_flux[node_id] = net

    return result


def commit_flux(result: FluxResult, pools: CurrencyPools, debug: bool = False) -> Dict[Currency, float]:
    """Apply the tick's non-zero deltas to the ledger (clamped at zero)."""
    debug = debug and logger.isEnabledFor(logging.DEBUG)
    if debug:
        before = pools.snapshot()
    applied: Dict[Currency, float] = {}
    for currency, delta in result.currency_changes.items():
        if delta == 0.0:
            continue
        pools.modify(currency, delta)
        applied[currency] = delta
    if debug:
        logger.debug(
            "[LEDGER] commit deltas={ %s } before={ %s } after={ %s }",
            format_pools(applied),
            format_pools(before),
            format_pools(pools.snapshot()),
        )
    return applied
