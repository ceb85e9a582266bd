"""
Validator Node — validates and normalizes the decision request.

This is the entry point of the graph. Raw dicts (from the CLI or tests) are
coerced into the typed models; anything that cannot be is an InputError.
A missing patient or plan is fatal. Contraindication types are normalized to
UPPER_SNAKE tokens by the model.
"""

import logging

from pydantic import ValidationError

from biologic_agent.errors import InputError
from biologic_agent.models import Contraindication, PatientTherapyState
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def run(state: DecisionState) -> dict:
    """Validates patient, contraindications and plan id."""
    patient = state.get("patient")
    if not patient:
        raise InputError("patient is required")

    plan_id = str(state.get("plan_id") or "").strip()
    if not plan_id:
        raise InputError("plan_id is required")

    try:
        if not isinstance(patient, PatientTherapyState):
            patient = PatientTherapyState.model_validate(patient)
        contraindications = [
            c if isinstance(c, Contraindication) else Contraindication.model_validate(c)
            for c in state.get("contraindications") or []
        ]
    except ValidationError as exc:
        raise InputError(f"Invalid decision request: {exc}") from exc

    therapy = patient.current_therapy
    logger.info(
        "Validated request: patient=%s, diagnosis=%s, therapy=%s %s, severity=%s, months_stable=%d, "
        "contraindications=%s, plan=%s",
        patient.patient_id or "anonymous",
        patient.diagnosis,
        therapy.drug_name if therapy else "none",
        therapy.frequency if therapy and therapy.frequency else "",
        patient.severity_score,
        patient.months_stable,
        [c.type for c in contraindications],
        plan_id,
    )

    return {
        "patient": patient,
        "contraindications": contraindications,
        "plan_id": plan_id,
        "evidence": [],
        "proposals": [],
        "validated": [],
        "recommendations": [],
    }
