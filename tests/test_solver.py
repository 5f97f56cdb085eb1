import pytest

from cellflow.config import FlowConfig
from cellflow.core import Currency, CurrencyPools
from cellflow.genome import PathwayKind
from cellflow.graph import BlockStatus, DependencyGraph, FluxProfile, MetabolicNode, NodeSet
from cellflow.solver import FluxResult, commit_flux, solve_flux, topological_order


def _node(node_id, status=BlockStatus.ACTIVE, **rates):
    return MetabolicNode(node_id=node_id, kind=PathwayKind.SUGAR_CATABOLISM, status=status,
                         profile=FluxProfile(rates))


def _solve(pools, *nodes, cfg=None):
    node_set = NodeSet()
    for n in nodes:
        node_set.add(n)
    graph = DependencyGraph()
    graph.build(node_set)
    return graph, solve_flux(graph, node_set, pools, cfg or FlowConfig())


def test_producer_runs_before_consumer():
    pools = CurrencyPools()
    graph, result = _solve(
        pools,
        _node("consumer", pyruvate=-1.0, atp=1.0),
        _node("producer", pyruvate=2.0),
    )
    assert result.order == ["producer", "consumer"]
    assert result.skipped == []
    assert result.currency_changes[Currency.PYRUVATE] == pytest.approx(1.0)
    assert result.currency_changes[Currency.ATP] == pytest.approx(1.0)
    assert graph.broken_edges == []


def test_solve_does_not_touch_the_ledger():
    pools = CurrencyPools({"atp": 10.0})
    before = pools.snapshot()
    _solve(pools, _node("a", atp=-4.0, pyruvate=1.0))
    assert pools.snapshot() == before


def test_all_or_nothing():
    pools = CurrencyPools({"atp": 10.0, "pyruvate": 2.0})
    _, result = _solve(pools, _node("greedy", atp=-5.0, pyruvate=-5.0, organic_waste=3.0))
    assert result.skipped == ["greedy"]
    assert "greedy" not in result.entity_flux
    assert result.currency_changes == {}


def test_first_claim_wins_in_node_order():
    pools = CurrencyPools({"atp": 10.0})
    _, result = _solve(pools, _node("a", atp=-8.0), _node("b", atp=-8.0))
    assert result.order == ["a", "b"]
    assert result.entity_flux == {"a": -8.0}
    assert result.skipped == ["b"]


def test_exact_fit_is_affordable():
    pools = CurrencyPools({"atp": 0.3})
    _, result = _solve(pools, _node("a", atp=-0.1), _node("b", atp=-0.2))
    assert result.skipped == []


def test_status_multipliers():
    pools = CurrencyPools({"carbon_skeletons": 5.0})
    _, result = _solve(
        pools,
        _node("active", atp=10.0, carbon_skeletons=-5.0),
        _node("mutated", status=BlockStatus.MUTATED, atp=8.0),
        _node("silent", status=BlockStatus.SILENT, reducing_power=2.0),
    )
    assert result.entity_flux["active"] == pytest.approx(5.0)
    assert result.entity_flux["mutated"] == pytest.approx(4.0)
    assert result.entity_flux["silent"] == 0.0
    assert result.currency_changes[Currency.ATP] == pytest.approx(14.0)


def test_mutated_node_needs_only_half_its_inputs():
    pools = CurrencyPools({"pyruvate": 1.0})
    _, result = _solve(pools, _node("m", status=BlockStatus.MUTATED, pyruvate=-2.0, atp=2.0))
    assert result.skipped == []
    assert result.currency_changes[Currency.PYRUVATE] == pytest.approx(-1.0)


def test_custom_multipliers():
    cfg = FlowConfig(status_multipliers={"mutated": 0.25})
    pools = CurrencyPools()
    _, result = _solve(pools, _node("m", status=BlockStatus.MUTATED, atp=8.0), cfg=cfg)
    assert result.entity_flux["m"] == pytest.approx(2.0)


def test_cycle_is_broken_deterministically():
    pools = CurrencyPools({"atp": 5.0})
    graph, result = _solve(
        pools,
        _node("x", atp=-1.0, pyruvate=1.0),
        _node("y", pyruvate=-1.0, atp=1.0),
    )
    assert result.order == ["y", "x"]
    assert graph.broken_edges == [("y", "x")]
    assert result.skipped == ["y"]
    assert result.currency_changes == {Currency.ATP: -1.0, Currency.PYRUVATE: 1.0}


def test_topological_order_covers_every_node_once():
    node_set = NodeSet()
    for n in (
        _node("a", atp=-1.0, pyruvate=1.0),
        _node("b", pyruvate=-1.0, reducing_power=1.0),
        _node("c", reducing_power=-1.0, atp=1.0),
        _node("d", nucleotides=1.0),
    ):
        node_set.add(n)
    graph = DependencyGraph()
    graph.build(node_set)
    order, broken = topological_order(graph)
    assert sorted(order) == ["a", "b", "c", "d"]
    assert len(broken) == 1
    assert order == topological_order(graph)[0]


def test_commit_applies_nonzero_deltas_and_clamps():
    pools = CurrencyPools({"atp": 10.0, "pyruvate": 4.0})
    result = FluxResult(currency_changes={
        Currency.ATP: -50.0,
        Currency.PYRUVATE: 0.0,
        Currency.ORGANIC_WASTE: 2.0,
    })
    applied = commit_flux(result, pools, debug=True)
    assert applied == {Currency.ATP: -50.0, Currency.ORGANIC_WASTE: 2.0}
    assert pools.get(Currency.ATP) == 0.0
    assert pools.get(Currency.PYRUVATE) == 4.0
    assert pools.get(Currency.ORGANIC_WASTE) == 2.0


def test_result_is_reused_between_solves():
    pools = CurrencyPools({"atp": 1.0})
    node_set = NodeSet()
    node_set.add(_node("a", atp=-1.0))
    graph = DependencyGraph()
    graph.build(node_set)
    result = FluxResult()
    solve_flux(graph, node_set, pools, FlowConfig(), result)
    pools.set(Currency.ATP, 0.0)
    solve_flux(graph, node_set, pools, FlowConfig(), result)
    assert result.entity_flux == {}
    assert result.skipped == ["a"]
