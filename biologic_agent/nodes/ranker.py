"""
Ranker Node — asks the advisory ranking oracle for a ranked proposal list.

The oracle sees only the safety-screened candidate view built by the
candidate generation node. Its failures (OracleError) are not caught here:
a run without an oracle answer fails and the caller may retry it.
"""

import logging

from biologic_agent.config import EngineConfig
from biologic_agent.oracle import DecisionContext
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def build_context(state: DecisionState, engine_config: EngineConfig) -> DecisionContext:
    classification = state["classification"]
    return DecisionContext(
        patient=state["patient"],
        quadrant=classification.quadrant,
        current_drug=state.get("current_drug"),
        dose_assessment=state["dose_assessment"],
        candidates=list(state.get("oracle_candidates") or []),
        evidence=list(state.get("evidence") or []),
        contraindications=list(state.get("contraindications") or []),
        available_tiers=list(state.get("available_tiers") or []),
        lowest_tier=classification.lowest_tier,
        months_until_actionable=classification.months_until_actionable,
        max_recommendations=engine_config.max_recommendations,
        current_blocked=bool(state.get("current_blocked")),
    )


def run(state: DecisionState, oracle, engine_config: EngineConfig) -> dict:
    context = build_context(state, engine_config)
    logger.info(
        "Ranking: quadrant=%s, dose_level=%d, %d candidate(s), %d evidence item(s)",
        context.quadrant.value,
        context.dose_assessment.level,
        len(context.candidates),
        len(context.evidence),
    )
    proposals = oracle.rank(context)
    return {"proposals": list(proposals or [])}
