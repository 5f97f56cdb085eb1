from __future__ import annotations
from typing import Dict, Optional

from .blocks import PathwayBlock
from .config import FlowConfig
from .core import CurrencyPools
from .genome import Genome
from .graph import FluxProfile, MetabolicNode, status_from_gene


class BlockFactory:
    """Turns pathway blocks into live metabolic nodes with stable ids."""

    def __init__(self, cfg: FlowConfig) -> None:
        self.cfg = cfg
        self.blocks: Dict[str, PathwayBlock] = {}
        self.node_counter = 0

    def _new_node_id(self) -> str:
        self.node_counter += 1
        return f"node_{self.node_counter:04d}"

    def create_node(self, block: PathwayBlock, genome: Genome,
                    pools: Optional[CurrencyPools] = None) -> MetabolicNode:
        node_id = self._new_node_id()
        status = status_from_gene(genome.get_gene_state(block.kind))
        profile = FluxProfile(block.declare(pools, self.cfg)) if pools is not None else FluxProfile()
        self.blocks[node_id] = block
        return MetabolicNode(node_id=node_id, kind=block.kind, status=status, profile=profile)

    def block_for(self, node_id: str) -> Optional[PathwayBlock]:
        return self.blocks.get(node_id)

    def release(self, node_id: str) -> Optional[PathwayBlock]:
        return self.blocks.pop(node_id, None)
