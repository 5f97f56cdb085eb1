import json
import time
import streamlit as st
import pandas as pd

from cellflow.blocks import demo_blocks
from cellflow.config import FlowConfig
from cellflow.core import Currency
from cellflow.engine import MetabolicEngine
from cellflow.genome import GeneState, GenomeDecodeError, PathwayKind

st.set_page_config(page_title="Cell Metabolic Flow", layout="wide")


def _new_engine(cfg: FlowConfig, seed: int) -> MetabolicEngine:
    engine = MetabolicEngine(cfg=cfg, seed=seed)
    for kind in (PathwayKind.LIPID_METABOLISM, PathwayKind.SECONDARY_METABOLITES):
        engine.add_gene(kind)
    for kind in list(engine.genome.genes()):
        engine.express_gene(kind)
    for block in demo_blocks():
        engine.spawn_block(block)
    return engine


def get_engine() -> MetabolicEngine:
    if "engine" not in st.session_state:
        cfg = FlowConfig()
        st.session_state.cfg = cfg
        st.session_state.seed = 1
        st.session_state.engine = _new_engine(cfg, st.session_state.seed)
    return st.session_state.engine


def reset_engine(reset_config: bool = False) -> None:
    if reset_config:
        cfg = FlowConfig()
        st.session_state.cfg = cfg
    else:
        cfg = st.session_state.get("cfg", FlowConfig())
    seed = int(st.session_state.get("seed", 1))
    st.session_state.engine = _new_engine(cfg, seed)


engine = get_engine()

st.title("Cell Metabolic Flow")
st.caption(f"Time model: 1 tick = {engine.cfg.tick_seconds:g} s of flow clock.")

def _fmt_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    mins = int(seconds // 60)
    secs = seconds - (mins * 60)
    return f"{mins}m {secs:0.1f}s"

def _fmt(value: float) -> str:
    return f"{float(value):,.2f}"

def _render_kpi_grid(kpis, columns: int = 5) -> None:
    for idx in range(0, len(kpis), columns):
        row = kpis[idx: idx + columns]
        cols = st.columns(columns)
        for col, (label, value) in zip(cols, row):
            col.metric(label, value)

def _format_event_meta(meta) -> str:
    if meta is None:
        return ""
    if isinstance(meta, str):
        return meta
    try:
        return json.dumps(meta, sort_keys=True)
    except TypeError:
        return str(meta)

def _gene_table(engine: MetabolicEngine) -> pd.DataFrame:
    rows = []
    for kind in PathwayKind:
        state = engine.get_gene_state(kind)
        rows.append({
            "kind": kind.value,
            "state": state.value if state is not None else "(absent)",
            "nodes": len(engine.nodes.by_kind(kind)),
            "description": kind.description,
        })
    return pd.DataFrame(rows)


with st.sidebar:
    st.header("Flow Controls")

    st.subheader("Run")
    r1, r2 = st.columns(2)
    if r1.button("Restart simulation"):
        reset_engine()
        engine = st.session_state.engine
    if r2.button("Reset settings"):
        reset_engine(reset_config=True)
        engine = st.session_state.engine
    st.caption("Restart resets the cell to tick 0 and keeps the settings below.")
    if "seed" not in st.session_state:
        st.session_state.seed = 1
    st.number_input("Random seed", min_value=1, max_value=100000, key="seed")

    run_ticks = st.slider("Ticks to run", min_value=1, max_value=500, value=20)
    c1, c2 = st.columns(2)
    run_one = c1.button("Step 1 tick")
    run_many = c2.button("Run N ticks")
    progress_bar = st.progress(0.0, text="Idle")
    if run_one:
        engine.step(1)
        progress_bar.progress(1.0, text="Run progress: 100%")
    if run_many:
        total = int(run_ticks)
        start_ts = time.time()
        for idx in range(total):
            engine.step(1)
            progress_bar.progress((idx + 1) / total, text=f"Run progress: {(idx + 1) / total:.0%}")
        progress_bar.progress(1.0, text=f"Run progress: 100% ({_fmt_duration(time.time() - start_ts)})")
    st.caption(f"Current tick: {engine.tick}")

    st.subheader("Mutation")
    engine.cfg.mutation_rate_per_second = st.number_input(
        "Mutation rate (per gene per second)",
        min_value=0.0,
        max_value=1.0,
        value=float(engine.cfg.mutation_rate_per_second),
        step=0.005,
        format="%.3f",
        help="Takes effect on restart.",
    )
    deterministic = st.checkbox("Deterministic (no mutations)", value=engine.cfg.mutation_mode == "deterministic",
                                help="Takes effect on restart.")
    engine.cfg.mutation_mode = "deterministic" if deterministic else "random"

    st.subheader("Gene costs")
    engine.cfg.charge_gene_costs = st.checkbox(
        "Charge expression / repair / upkeep costs",
        value=bool(engine.cfg.charge_gene_costs),
    )

    st.subheader("Fat storage")
    engine.cfg.lipid_toxicity_threshold = st.number_input(
        "Lipid toxicity threshold", min_value=0.0, value=float(engine.cfg.lipid_toxicity_threshold), step=5.0,
    )
    engine.cfg.polymerization_rate = st.number_input(
        "Polymerization rate (per tick)", min_value=0.0, value=float(engine.cfg.polymerization_rate), step=1.0,
    )
    engine.cfg.lipolysis_rate = st.number_input(
        "Lipolysis rate (per tick)", min_value=0.0, value=float(engine.cfg.lipolysis_rate), step=1.0,
    )


tab_overview, tab_genome, tab_graph, tab_events = st.tabs(["Overview", "Genome", "Flow graph", "Events"])

with tab_overview:
    pools = engine.pools.snapshot()
    _render_kpi_grid([(c.value, _fmt(pools[c])) for c in Currency], columns=5)

    series = engine.metrics.currency_series()
    if not series.empty:
        currencies = [c.value for c in Currency]
        selected = st.multiselect("Currencies", currencies, default=currencies[:5])
        if selected:
            st.line_chart(series[selected])

    node_df = engine.metrics.node_df()
    if not node_df.empty:
        last = node_df[node_df["tick"] == node_df["tick"].max()]
        st.subheader("Nodes (last tick)")
        st.dataframe(last, use_container_width=True, hide_index=True)

with tab_genome:
    st.dataframe(_gene_table(engine), use_container_width=True, hide_index=True)

    kind_label = st.selectbox("Pathway", [k.value for k in PathwayKind])
    kind = PathwayKind.parse(kind_label)
    b1, b2, b3, b4, b5 = st.columns(5)
    if b1.button("Add"):
        engine.add_gene(kind)
    if b2.button("Express"):
        if not engine.express_gene(kind):
            st.warning(f"Cannot express {kind.value}")
    if b3.button("Silence"):
        if not engine.silence_gene(kind):
            st.warning(f"Cannot silence {kind.value}")
    if b4.button("Mutate"):
        if not engine.mutate_gene(kind):
            st.warning(f"Cannot mutate {kind.value}")
    if b5.button("Repair"):
        if not engine.repair_gene(kind):
            st.warning(f"Cannot repair {kind.value}")

    expressed = engine.get_expressed_genes()
    st.caption("Expressed: " + (", ".join(k.value for k in expressed) if expressed else "(none)"))
    mutated = [k.value for k, s in engine.genome.table.items() if s == GeneState.MUTATED]
    if mutated:
        st.caption("Mutated: " + ", ".join(mutated))

    st.subheader("Save / load")
    st.download_button("Download genome JSON", engine.save_genome(), file_name="genome.json",
                       mime="application/json")
    uploaded = st.file_uploader("Load genome JSON", type=["json"])
    if uploaded is not None and st.button("Load uploaded genome"):
        try:
            engine.load_genome(uploaded.getvalue().decode("utf-8"))
            st.success(f"Loaded {len(engine.genome)} genes")
        except (GenomeDecodeError, UnicodeDecodeError) as exc:
            st.error(f"Could not load genome: {exc}")

with tab_graph:
    snap = engine.snapshot()
    st.caption(f"Graph version {engine.graph.version}: {len(engine.graph.nodes)} nodes, {len(engine.graph.edges)} edges")
    node_kinds = {n["node_id"]: n["kind"] for n in snap["nodes"]}
    edges = pd.DataFrame(
        [{"consumer": c, "consumer_kind": node_kinds.get(c), "producer": p, "producer_kind": node_kinds.get(p)}
         for c, p in snap["edges"]]
    )
    if not edges.empty:
        st.dataframe(edges, use_container_width=True, hide_index=True)
    if engine.result.order:
        st.caption("Execution order: " + " -> ".join(engine.result.order))
    if engine.graph.broken_edges:
        st.warning(f"Cycle edges dropped this tick: {engine.graph.broken_edges}")

with tab_events:
    n_events = st.number_input("Events to show", min_value=10, max_value=2000, value=200, step=10)
    events = engine.log.tail(int(n_events))
    if events:
        st.dataframe(pd.DataFrame([
            {
                "tick": e.tick,
                "event": e.event_type,
                "node_id": e.node_id,
                "kind": e.kind,
                "amount": e.amount,
                "meta": _format_event_meta(e.meta),
            }
            for e in reversed(events)
        ]), use_container_width=True, hide_index=True)
