"""
Pricing Node — turns validated proposals into priced Recommendations.

Tier and PA come from the recommended drug's formulary row (the current
drug's row for continue / optimize / dose reduction). Evidence citations are
attached to current-drug recommendations only.
"""

import logging

from biologic_agent.config import EngineConfig
from biologic_agent.costing import compute_cost_delta
from biologic_agent.models import CURRENT_DRUG_TYPES, PARequirement, Recommendation
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def run(state: DecisionState, engine_config: EngineConfig) -> dict:
    current_drug = state.get("current_drug")
    therapy = state["patient"].current_therapy
    evidence = list(state.get("evidence") or [])

    recommendations = []
    for validated in state.get("validated") or []:
        proposal = validated.proposal
        drug = validated.target
        is_current = proposal.type in CURRENT_DRUG_TYPES

        cost = compute_cost_delta(
            proposal.type,
            current_drug,
            None if is_current else drug,
            engine_config,
        )

        if drug is not None:
            generic_name = drug.generic_name
        else:
            generic_name = therapy.generic_name if therapy is not None else None

        recommendations.append(
            Recommendation(
                rank=proposal.rank,
                type=proposal.type,
                drug_name=proposal.drug_name,
                generic_name=generic_name,
                dose=proposal.new_dose,
                frequency=proposal.new_frequency,
                rationale=proposal.rationale or "",
                monitoring_plan=proposal.monitoring_plan,
                tier=drug.tier if drug is not None else None,
                requires_pa=drug.requires_pa if drug is not None else PARequirement.UNKNOWN,
                cost=cost,
                evidence=evidence if is_current else [],
            )
        )

    logger.info(
        "Priced %d recommendation(s): %s",
        len(recommendations),
        [(r.rank, r.type.value, r.drug_name, r.cost.annual_savings) for r in recommendations],
    )
    return {"recommendations": recommendations}
