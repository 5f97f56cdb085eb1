import math
import pytest

from cellflow.core import Currency, CurrencyPools, Event, EventLog, format_pools


def test_pools_start_at_zero_for_every_currency():
    pools = CurrencyPools()
    for currency in Currency:
        assert pools.get(currency) == 0.0
    assert pools.total() == 0.0


def test_pools_accept_string_keys():
    pools = CurrencyPools({"atp": 3.0, "ORGANIC_WASTE": 1.5})
    assert pools.get(Currency.ATP) == 3.0
    assert pools.get("organic_waste") == 1.5


def test_set_and_modify_clamp_at_zero():
    pools = CurrencyPools({"atp": 10.0})
    pools.set(Currency.PYRUVATE, -4.0)
    assert pools.get(Currency.PYRUVATE) == 0.0

    assert pools.modify(Currency.ATP, -3.0) == 7.0
    assert pools.modify(Currency.ATP, -50.0) == 0.0
    assert pools.all_non_negative()


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
def test_non_finite_amounts_are_rejected(bad):
    pools = CurrencyPools({"atp": 1.0})
    with pytest.raises(ValueError):
        pools.set(Currency.ATP, bad)
    assert pools.get(Currency.ATP) == 1.0


def test_can_consume_uses_tolerance():
    pools = CurrencyPools({"reducing_power": 5.0})
    assert pools.can_consume(Currency.REDUCING_POWER, 5.0)
    assert pools.can_consume(Currency.REDUCING_POWER, 5.0 + 1e-12)
    assert not pools.can_consume(Currency.REDUCING_POWER, 5.1)


def test_unknown_currency():
    with pytest.raises(ValueError):
        Currency.parse("glucose")


def test_snapshot_is_a_copy():
    pools = CurrencyPools({"atp": 2.0})
    snap = pools.snapshot()
    pools.modify(Currency.ATP, 1.0)
    assert snap[Currency.ATP] == 2.0


def test_format_pools():
    assert format_pools({}) == "(empty)"
    assert format_pools({Currency.PYRUVATE: 1.0, Currency.ATP: 2.5}) == "atp:2.50, pyruvate:1.00"


def test_event_log_tail_and_maxlen():
    log = EventLog(maxlen=3)
    for t in range(5):
        log.add(Event(t, "TICK" if t % 2 else "OTHER"))
    assert [e.tick for e in log.tail(10)] == [2, 3, 4]
    assert [e.tick for e in log.tail(2)] == [3, 4]
    assert log.tail(0) == []
    assert [e.tick for e in log.of_type("TICK")] == [3]
