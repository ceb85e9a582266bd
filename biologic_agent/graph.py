"""
Graph Assembly — wires the decision nodes into a LangGraph StateGraph.

Canonical pipeline (one pass per assessment):
    validate → load_formulary → screen_candidates → classify
    → assess_dosing → retrieve_evidence → rank → sanitize → price → END

When no drug is eligible, retrieve_evidence routes straight to price and the
run returns no recommendations.

Safety is decided before the oracle runs: screen_candidates applies the Safe
Gate and the oracle only sees what survives it. The oracle's answer is then
re-checked by sanitize before anything is priced.
"""

import logging
from functools import partial
from typing import Optional

from langgraph.graph import END, StateGraph

from biologic_agent.config import EngineConfig
from biologic_agent.formulary_store import FormularyStore
from biologic_agent.nodes import (
    candidate_gen,
    classifier,
    dosing,
    evidence,
    formulary,
    pricing,
    ranker,
    sanitizer,
    validator,
)
from biologic_agent.oracle import RankingOracle
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def route_after_evidence(state: DecisionState) -> str:
    """
    Routes to the oracle unless there is nothing it could recommend: no safe
    candidate and no current drug that may be kept. Such a run ends with an
    empty recommendation list.
    """
    has_candidates = bool(state.get("oracle_candidates"))
    can_keep_current = state["patient"].current_therapy is not None and not state.get("current_blocked")
    if has_candidates or can_keep_current:
        return "rank"
    logger.warning("No eligible drug for this patient; skipping the oracle")
    return "price"


def build_graph(
    oracle: RankingOracle,
    formulary_store: FormularyStore,
    evidence_retriever=None,
    engine_config: Optional[EngineConfig] = None,
):
    """
    Constructs and compiles the decision graph.

    Collaborators are bound into the nodes here, so one compiled graph can
    serve any number of independent runs.
    """
    engine_config = engine_config or EngineConfig()
    g = StateGraph(DecisionState)

    # ── Register nodes ──────────────────────────────────────────────────────
    g.add_node("validate", validator.run)
    g.add_node("load_formulary", partial(formulary.run, formulary_store=formulary_store))
    g.add_node("screen_candidates", partial(candidate_gen.run, engine_config=engine_config))
    g.add_node("classify", partial(classifier.run, engine_config=engine_config))
    g.add_node("assess_dosing", dosing.run)
    g.add_node(
        "retrieve_evidence",
        partial(evidence.run, retriever=evidence_retriever, engine_config=engine_config),
    )
    g.add_node("rank", partial(ranker.run, oracle=oracle, engine_config=engine_config))  # Untrusted
    g.add_node("sanitize", partial(sanitizer.run, engine_config=engine_config))
    g.add_node("price", partial(pricing.run, engine_config=engine_config))

    # ── Linear edges ────────────────────────────────────────────────────────
    g.set_entry_point("validate")
    g.add_edge("validate", "load_formulary")
    g.add_edge("load_formulary", "screen_candidates")
    g.add_edge("screen_candidates", "classify")
    g.add_edge("classify", "assess_dosing")
    g.add_edge("assess_dosing", "retrieve_evidence")

    # ── Conditional: skip the oracle when nothing is eligible ──────────────
    g.add_conditional_edges(
        "retrieve_evidence",
        route_after_evidence,
        {"rank": "rank", "price": "price"},
    )

    # ── Oracle path ─────────────────────────────────────────────────────────
    g.add_edge("rank", "sanitize")
    g.add_edge("sanitize", "price")
    g.add_edge("price", END)

    logger.info("Decision graph compiled successfully")
    return g.compile()
