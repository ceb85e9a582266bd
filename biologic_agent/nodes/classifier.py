"""
Classifier Node — computes the quadrant once per run.
"""

from biologic_agent.config import EngineConfig
from biologic_agent.quadrant import classify
from biologic_agent.state import DecisionState


def run(state: DecisionState, engine_config: EngineConfig) -> dict:
    classification = classify(
        state["patient"],
        state.get("current_drug"),
        state.get("indicated_drugs") or [],
        engine_config,
    )
    return {"classification": classification}
