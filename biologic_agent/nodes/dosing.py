"""
Dosing Node — runs the dose-reduction stepper for the current therapy.

The assessment is context for the oracle and the sanitizer; it does not by
itself produce a recommendation.
"""

from biologic_agent.dose_stepper import NO_ASSESSMENT, assess
from biologic_agent.state import DecisionState


def run(state: DecisionState) -> dict:
    therapy = state["patient"].current_therapy
    if therapy is None:
        return {"dose_assessment": NO_ASSESSMENT}

    current_drug = state.get("current_drug")
    generic = therapy.generic_name or (current_drug.generic_name if current_drug else None)
    return {"dose_assessment": assess(therapy.drug_name, therapy.frequency, generic)}
