"""
Concrete pathway blocks.

A block owns its private logic and, once per tick before the solver runs,
declares a flux profile for its node. Pre-scaling by availability happens
here; the solver only ever grants or skips a declared profile as a whole.
"""
from __future__ import annotations
from typing import Dict, List, Optional
import logging

from .config import FlowConfig
from .core import Currency, CurrencyPools
from .genome import PathwayKind

logger = logging.getLogger(__name__)

Rates = Dict[Currency, float]


class PathwayBlock:
    kind: PathwayKind = PathwayKind.SUGAR_CATABOLISM
    name: str = "block"

    def declare(self, pools: CurrencyPools, cfg: FlowConfig) -> Rates:
        raise NotImplementedError

    def on_result(self, granted: Rates) -> None:
        """Called after commit with the scaled profile actually applied ({} if skipped)."""
        return None


class StaticBlock(PathwayBlock):
    def __init__(self, kind: "str | PathwayKind", rates: Dict["str | Currency", float],
                 name: Optional[str] = None) -> None:
        self.kind = PathwayKind.parse(kind)
        self.rates: Rates = {Currency.parse(c): float(r) for c, r in rates.items()}
        self.name = name or self.kind.value

    def declare(self, pools: CurrencyPools, cfg: FlowConfig) -> Rates:
        return dict(self.rates)


class FermentationBlock(PathwayBlock):
    kind = PathwayKind.FERMENTATION
    name = "fermentation"

    def declare(self, pools: CurrencyPools, cfg: FlowConfig) -> Rates:
        return {
            Currency.PYRUVATE: -cfg.fermentation_pyruvate_in,
            Currency.REDUCING_POWER: -cfg.fermentation_reducing_power_in,
            Currency.ATP: cfg.fermentation_atp_out,
            Currency.ORGANIC_WASTE: cfg.fermentation_waste_out,
        }


class FatStorageBlock(PathwayBlock):
    """Buffers free fatty acids into storage beads and back.

    Above the lipid toxicity threshold it polymerizes up to
    ``polymerization_rate`` FFA per tick; at or below it, it mobilizes up to
    ``lipolysis_rate`` beads per tick with a small ATP yield. Either way the
    FFA + bead total is conserved.
    """

    kind = PathwayKind.LIPID_METABOLISM
    name = "fat_storage"

    def __init__(self, base_mass: float = 1.0) -> None:
        self.base_mass = float(base_mass)
        self.cell_mass_extra = 0.0
        self.mode = "idle"

    @property
    def cell_mass(self) -> float:
        return self.base_mass + self.cell_mass_extra

    def _set_mode(self, mode: str) -> None:
        if mode != self.mode:
            logger.debug("Fat storage: %s -> %s", self.mode, mode)
        self.mode = mode

    def declare(self, pools: CurrencyPools, cfg: FlowConfig) -> Rates:
        ffa = pools.get(Currency.FREE_FATTY_ACIDS)
        if ffa > cfg.lipid_toxicity_threshold:
            amount = min(cfg.polymerization_rate, ffa)
            self._set_mode("polymerize")
            return {
                Currency.FREE_FATTY_ACIDS: -amount,
                Currency.STORAGE_BEADS: amount,
            }
        beads = pools.get(Currency.STORAGE_BEADS)
        amount = min(cfg.lipolysis_rate, beads)
        if amount <= 0.0:
            self._set_mode("idle")
            return {}
        self._set_mode("lipolysis")
        return {
            Currency.STORAGE_BEADS: -amount,
            Currency.FREE_FATTY_ACIDS: amount,
            Currency.ATP: amount * cfg.lipolysis_atp_yield,
        }

    def on_result(self, granted: Rates) -> None:
        # stored beads add to cell mass, mobilized beads remove it
        self.cell_mass_extra += granted.get(Currency.STORAGE_BEADS, 0.0)
        if self.cell_mass_extra < 0.0:
            self.cell_mass_extra = 0.0


class VesicleExportBlock(PathwayBlock):
    kind = PathwayKind.SECONDARY_METABOLITES
    name = "vesicle_export"

    def __init__(self, kind: "str | PathwayKind | None" = None) -> None:
        if kind is not None:
            self.kind = PathwayKind.parse(kind)
        self.exported_total = 0.0

    def declare(self, pools: CurrencyPools, cfg: FlowConfig) -> Rates:
        amount = min(cfg.vesicle_export_rate, pools.get(Currency.ORGANIC_WASTE))
        if amount <= 0.0:
            return {}
        return {Currency.ORGANIC_WASTE: -amount}

    def on_result(self, granted: Rates) -> None:
        self.exported_total += -granted.get(Currency.ORGANIC_WASTE, 0.0)


def demo_blocks() -> List[PathwayBlock]:
    """Starter cell used by the dashboard: glycolysis feeding fermentation,
    amino acid synthesis drawing on the same pools, plus fat storage and
    waste export."""
    return [
        StaticBlock(PathwayKind.SUGAR_CATABOLISM, {
            Currency.CARBON_SKELETONS: -1.0,
            Currency.PYRUVATE: 2.0,
            Currency.ATP: 2.0,
            Currency.REDUCING_POWER: 2.0,
        }, name="glycolysis"),
        FermentationBlock(),
        StaticBlock(PathwayKind.AMINO_ACID_BIOSYNTHESIS, {
            Currency.PYRUVATE: -1.0,
            Currency.ATP: -3.0,
            Currency.REDUCING_POWER: -1.0,
        }, name="amino_acids"),
        StaticBlock(PathwayKind.LIPID_METABOLISM, {
            Currency.ACETYL_COA: -2.0,
            Currency.ATP: -1.0,
            Currency.FREE_FATTY_ACIDS: 1.0,
        }, name="fatty_acid_synthesis"),
        FatStorageBlock(),
        VesicleExportBlock(),
    ]
