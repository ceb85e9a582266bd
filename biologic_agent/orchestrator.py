"""
Decision Orchestrator — the single exposed operation of the engine.

    decide(patient, contraindications, plan_id) → DecisionResult

Each call runs the compiled graph on a fresh state; the returned result is a
value and shares nothing with other runs.
"""

import logging
from typing import Optional

from biologic_agent.config import EngineConfig
from biologic_agent.formulary_store import FormularyStore, get_default_store
from biologic_agent.graph import build_graph
from biologic_agent.models import DecisionResult
from biologic_agent.oracle import RankingOracle, get_oracle
from biologic_agent.tools.evidence_api import get_evidence_retriever

logger = logging.getLogger(__name__)


class DecisionOrchestrator:
    def __init__(
        self,
        oracle: RankingOracle,
        formulary_store: FormularyStore,
        evidence_retriever=None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        self.formulary_store = formulary_store
        self.graph = build_graph(oracle, formulary_store, evidence_retriever, self.config)

    @classmethod
    def from_env(cls) -> "DecisionOrchestrator":
        """Orchestrator wired from ORACLE_PROVIDER, EVIDENCE_API_URL, FORMULARY_CSV and engine settings."""
        return cls(
            oracle=get_oracle(),
            formulary_store=get_default_store(),
            evidence_retriever=get_evidence_retriever(),
            config=EngineConfig.from_env(),
        )

    def decide(self, patient, contraindications, plan_id: str) -> DecisionResult:
        final_state = self.graph.invoke(self._initial_state(patient, contraindications, plan_id))
        return self._build_result(final_state)

    async def adecide(self, patient, contraindications, plan_id: str) -> DecisionResult:
        final_state = await self.graph.ainvoke(self._initial_state(patient, contraindications, plan_id))
        return self._build_result(final_state)

    @staticmethod
    def _initial_state(patient, contraindications, plan_id) -> dict:
        return {
            "patient": patient,
            "contraindications": list(contraindications or []),
            "plan_id": plan_id,
        }

    @staticmethod
    def _build_result(state: dict) -> DecisionResult:
        classification = state["classification"]
        result = DecisionResult(
            patient_id=state["patient"].patient_id,
            quadrant=classification.quadrant,
            is_stable=classification.is_stable,
            is_formulary_optimal=classification.is_formulary_optimal,
            months_until_actionable=classification.months_until_actionable,
            dose_reduction_level=state["dose_assessment"].level,
            current_tier=classification.current_tier,
            lowest_tier=classification.lowest_tier,
            recommendations=state.get("recommendations", []),
            formulary_reference=state.get("safe_drugs", []),
            contraindicated_drugs=state.get("contraindicated_drugs", []),
        )
        logger.info(
            "Decision for %s: %s, %d recommendation(s), %d safe, %d contraindicated",
            result.patient_id or "anonymous",
            result.quadrant.value,
            len(result.recommendations),
            len(result.formulary_reference),
            len(result.contraindicated_drugs),
        )
        return result
