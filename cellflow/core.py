from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, List, Mapping
from collections import deque
import logging
import math

logger = logging.getLogger(__name__)

EPS = 1e-9


# -----------------------------
# Currencies
# -----------------------------
class Currency(str, Enum):
    ATP = "atp"
    REDUCING_POWER = "reducing_power"
    ACETYL_COA = "acetyl_coa"
    CARBON_SKELETONS = "carbon_skeletons"
    FREE_FATTY_ACIDS = "free_fatty_acids"
    STORAGE_BEADS = "storage_beads"
    PYRUVATE = "pyruvate"
    ORGANIC_WASTE = "organic_waste"
    NUCLEOTIDES = "nucleotides"

    @classmethod
    def parse(cls, name: "str | Currency") -> "Currency":
        if isinstance(name, Currency):
            return name
        try:
            return cls(name)
        except ValueError:
            pass
        try:
            return cls[str(name).upper()]
        except KeyError:
            raise ValueError(f"unknown currency {name!r}") from None


def format_pools(pools: Mapping[Currency, float]) -> str:
    if not pools:
        return "(empty)"
    items = sorted(pools.items(), key=lambda kv: kv[0].value)
    return ", ".join(f"{c.value}:{amount:.2f}" for c, amount in items)


# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    tick: int
    event_type: str
    node_id: Optional[str] = None
    kind: Optional[str] = None
    currency: Optional[str] = None
    amount: Optional[float] = None
    meta: dict = field(default_factory=dict)

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def add(self, e: Event) -> None:
        self.events.append(e)

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]


# -----------------------------
# Ledger
# -----------------------------
class CurrencyPools:
    """Flat registry of named, non-negative resource pools.

    Every write goes through ``set``, which clamps at zero, so no sequence of
    calls can leave a pool below zero.
    """

    def __init__(self, initial: Optional[Mapping["str | Currency", float]] = None) -> None:
        self.pools: Dict[Currency, float] = {c: 0.0 for c in Currency}
        for name, amount in (initial or {}).items():
            self.set(Currency.parse(name), amount)

    @classmethod
    def with_defaults(cls, cfg) -> "CurrencyPools":
        return cls(cfg.initial_pools)

    def get(self, currency: Currency) -> float:
        return float(self.pools.get(Currency.parse(currency), 0.0))

    def set(self, currency: Currency, amount: float) -> None:
        currency = Currency.parse(currency)
        amt = float(amount)
        if not math.isfinite(amt):
            raise ValueError(f"non-finite amount {amount!r} for {currency}")
        if amt < 0.0:
            logger.debug("Clamped %s at zero (requested %.4f)", currency.value, amt)
        self.pools[currency] = max(0.0, amt)

    def modify(self, currency: Currency, delta: float) -> float:
        """Add ``delta`` and clamp at zero. Returns the new amount."""
        currency = Currency.parse(currency)
        self.set(currency, self.get(currency) + float(delta))
        return self.pools[currency]

    def can_consume(self, currency: Currency, amount: float) -> bool:
        return self.get(currency) + EPS >= float(amount)

    def total(self) -> float:
        return float(sum(self.pools.values()))

    def all_non_negative(self) -> bool:
        return all(v >= 0.0 for v in self.pools.values())

    def snapshot(self) -> Dict[Currency, float]:
        return dict(self.pools)

    def __repr__(self) -> str:
        return f"CurrencyPools({format_pools(self.pools)})"
