"""
Formulary Node — loads the latest formulary snapshot for the plan, locates the
current drug in it and applies the indication filter.
"""

import logging

from biologic_agent.formulary_store import FormularyStore, find_current_drug
from biologic_agent.indications import filter_by_indication
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def run(state: DecisionState, formulary_store: FormularyStore) -> dict:
    patient = state["patient"]
    formulary = formulary_store.latest_snapshot(state["plan_id"])

    current_drug = find_current_drug(formulary, patient.current_therapy)
    if patient.current_therapy is not None and current_drug is None:
        logger.warning(
            "Current drug %s is not on plan %s formulary — treated as off-formulary",
            patient.current_therapy.drug_name,
            state["plan_id"],
        )

    indicated = filter_by_indication(formulary, patient.diagnosis)
    available_tiers = sorted({d.tier for d in indicated})

    logger.info(
        "Formulary: %d drugs, %d indicated, tiers=%s, current=%s",
        len(formulary),
        len(indicated),
        available_tiers,
        f"{current_drug.drug_name} (tier {current_drug.tier})" if current_drug else "none",
    )

    return {
        "formulary": formulary,
        "current_drug": current_drug,
        "indicated_drugs": indicated,
        "available_tiers": available_tiers,
    }
