"""
Candidate Generation Node — applies the Safe Gate to the indicated drugs.

Produces the safe and contraindicated views and the oracle's candidate list.
Contraindications are enforced deterministically; the LLM has no input here
and never sees a contraindicated drug.

The current drug is screened on its own as well, since it may be off the
formulary or outside the indicated set and so never reach the gate. An
ABSOLUTE finding on it sets current_blocked.

An empty safe set is a valid outcome (no eligible drug), not an error.
"""

import logging

from biologic_agent.candidates import is_same_drug, oracle_candidates
from biologic_agent.config import EngineConfig
from biologic_agent.models import ContraindicatedDrug, Severity, formulary_sort_key
from biologic_agent.safe_gate import apply_safe_gate, screen_current_therapy
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def run(state: DecisionState, engine_config: EngineConfig) -> dict:
    patient = state["patient"]
    contraindications = state.get("contraindications") or []
    gate_result = apply_safe_gate(state["indicated_drugs"], contraindications)

    safe = gate_result["safe"]
    therapy = patient.current_therapy
    current_drug = state.get("current_drug")
    candidates = oracle_candidates(
        safe,
        current_drug,
        therapy.drug_name if therapy else None,
        engine_config.max_oracle_candidates,
    )

    if not safe:
        logger.warning("Safe Gate excluded ALL indicated drugs — no eligible candidates")

    current_findings = screen_current_therapy(therapy, current_drug, contraindications)
    current_blocked = any(f.severity is Severity.ABSOLUTE for f in current_findings)
    if current_blocked:
        logger.warning("Current drug %s has an ABSOLUTE contraindication", therapy.drug_name)

    contraindicated = _with_current_drug(gate_result["contraindicated"], current_drug, current_findings)

    logger.info(
        "Candidate pool: %d safe, %d shown to oracle — %s",
        len(safe),
        len(candidates),
        [d.drug_name for d in candidates],
    )

    return {
        "safe_drugs": safe,
        "contraindicated_drugs": contraindicated,
        "oracle_candidates": candidates,
        "current_blocked": current_blocked,
    }


def _with_current_drug(contraindicated, current_drug, findings) -> list[ContraindicatedDrug]:
    """Adds a non-indicated current drug's formulary row to the contraindicated view."""
    if current_drug is None or not findings:
        return contraindicated
    if any(is_same_drug(entry.drug, current_drug) for entry in contraindicated):
        return contraindicated
    merged = contraindicated + [ContraindicatedDrug(drug=current_drug, findings=findings)]
    merged.sort(key=lambda c: formulary_sort_key(c.drug))
    return merged
