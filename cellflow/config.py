from dataclasses import dataclass, field

MUTATION_MODES = ("random", "deterministic")

DEFAULT_STATUS_MULTIPLIERS = {
    "active": 1.0,
    "mutated": 0.5,   # defective enzyme runs at half rate
    "silent": 0.0,
}


@dataclass
class GeneOperationCosts:
    # Charged only when FlowConfig.charge_gene_costs is on
    expression_atp_cost: float = 10.0
    expression_nucleotide_cost: float = 5.0
    maintenance_atp_cost: float = 1.0     # per expressed gene per tick
    editing_atp_cost: float = 20.0
    editing_reducing_power_cost: float = 5.0


@dataclass
class FlowConfig:
    # Flow clock
    tick_seconds: float = 0.25
    max_ticks_per_advance: int | None = 8

    # Solver
    status_multipliers: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_STATUS_MULTIPLIERS))

    # Genome
    starter_genes: list[str] = field(default_factory=lambda: [
        "SugarCatabolism",
        "Fermentation",
        "AminoAcidBiosynthesis",
    ])
    mutation_mode: str = "random"  # "random" or "deterministic"
    mutation_rate_per_second: float = 0.01  # per gene
    gene_costs: GeneOperationCosts = field(default_factory=GeneOperationCosts)
    charge_gene_costs: bool = False

    # Ledger seeds (keys are Currency values)
    initial_pools: dict[str, float] = field(default_factory=lambda: {
        "atp": 100.0,
        "reducing_power": 50.0,
        "acetyl_coa": 20.0,
        "carbon_skeletons": 20.0,
        "free_fatty_acids": 0.0,
        "storage_beads": 0.0,
        "pyruvate": 50.0,
        "organic_waste": 0.0,
        "nucleotides": 20.0,
    })

    # Fat storage
    lipid_toxicity_threshold: float = 50.0
    polymerization_rate: float = 20.0
    lipolysis_rate: float = 5.0
    lipolysis_atp_yield: float = 0.05  # ATP per bead mobilized

    # Fermentation (per tick: pyruvate + reducing power -> ATP + waste)
    fermentation_pyruvate_in: float = 1.0
    fermentation_reducing_power_in: float = 1.0
    fermentation_atp_out: float = 1.0
    fermentation_waste_out: float = 1.0

    # Vesicle export
    vesicle_export_rate: float = 0.1

    # Observability
    metrics_stride: int = 1
    event_log_maxlen: int | None = 5000

    # Debug
    debug_ledger: bool = False

    def __post_init__(self) -> None:
        if self.tick_seconds <= 0.0:
            raise ValueError(f"tick_seconds must be positive, got {self.tick_seconds}")
        if self.mutation_mode not in MUTATION_MODES:
            raise ValueError(f"unknown mutation_mode {self.mutation_mode!r}")
        self.status_multipliers = {**DEFAULT_STATUS_MULTIPLIERS, **self.status_multipliers}
        if self.mutation_rate_per_second < 0.0:
            self.mutation_rate_per_second = 0.0
