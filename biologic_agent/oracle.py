"""
Advisory Ranking Oracle — proposes a ranked recommendation list for a
decision context.

Two implementations share the `rank(context) -> list[Proposal]` interface:
  - LLMRankingOracle   the production path; an LLM ranks the screened options
  - RuleBasedOracle    deterministic tier cascade, no LLM (ORACLE_PROVIDER=rules)

Oracle output is UNTRUSTED. Whatever comes back here is parsed into Proposal
records and then checked by the sanitizer node before anything reaches the
caller. An oracle that fails, or returns nothing parseable, raises OracleError.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from biologic_agent.candidates import current_tier_or_worst, switch_type_for
from biologic_agent.dose_stepper import DoseAssessment
from biologic_agent.errors import OracleError
from biologic_agent.llm import get_llm
from biologic_agent.models import (
    Contraindication,
    EvidenceFinding,
    FormularyDrug,
    PatientTherapyState,
    Proposal,
    Quadrant,
    RecommendationType,
)

logger = logging.getLogger(__name__)

_PROMPT_PATH = Path(__file__).resolve().parent / "prompts" / "recommendation.txt"

SYSTEM_PROMPT = (
    "You are a clinical decision support assistant for dermatology biologic "
    "optimization. You answer with JSON only."
)

QUADRANT_GUIDANCE = {
    Quadrant.NOT_ON_BIOLOGIC: (
        "Patient is not on a biologic. Recommend INITIATE_BIOLOGIC options only, lowest tier first."
    ),
    Quadrant.STABLE_SHORT_DURATION: (
        "Stable but not yet for long enough to optimize. CONTINUE_CURRENT must be first; "
        "mention future options once stability is established."
    ),
    Quadrant.STABLE_OPTIMAL: (
        "Stable and already on the lowest tier. Offer the next dose reduction step, "
        "otherwise CONTINUE_CURRENT."
    ),
    Quadrant.STABLE_SUBOPTIMAL: (
        "Stable but above the lowest tier. Recommend switches to lower tiers first, "
        "then dose reduction of the current drug."
    ),
    Quadrant.UNSTABLE_OPTIMAL: (
        "Not controlled, already on the lowest tier. Recommend a mechanism change within "
        "the lowest tier or OPTIMIZE_CURRENT. No dose reduction."
    ),
    Quadrant.UNSTABLE_SUBOPTIMAL: (
        "Not controlled and above the lowest tier. Recommend switches to lower tiers, "
        "preferring a different mechanism. No dose reduction."
    ),
}


@dataclass(frozen=True)
class DecisionContext:
    """Everything an oracle may see. Candidates are already safety-screened."""

    patient: PatientTherapyState
    quadrant: Quadrant
    current_drug: Optional[FormularyDrug]
    dose_assessment: DoseAssessment
    candidates: list
    evidence: list = field(default_factory=list)
    contraindications: list = field(default_factory=list)
    available_tiers: list = field(default_factory=list)
    lowest_tier: Optional[int] = None
    months_until_actionable: Optional[int] = None
    max_recommendations: int = 3
    current_blocked: bool = False

    @property
    def current_brand(self) -> Optional[str]:
        therapy = self.patient.current_therapy
        return therapy.drug_name if therapy is not None else None


class RankingOracle(Protocol):
    def rank(self, context: DecisionContext) -> list[Proposal]:
        ...


# ── Response parsing ───────────────────────────────────────────────────────


def _strip_markdown_json(text: str) -> str:
    """Extract the first JSON object/array from an LLM response.

    Handles bare JSON, JSON inside ``` fences of any language (with or without
    preamble text), and JSON embedded in surrounding prose.
    """
    text = text.strip()

    fence_match = re.search(r"```(?:[\w+\-]*)\s*\n([\s\S]*?)\n?```", text)
    if fence_match:
        return fence_match.group(1).strip()

    json_match = re.search(r"(\{[\s\S]*\}|\[[\s\S]*\])", text)
    if json_match:
        return json_match.group(1).strip()

    return text


def _response_text(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Anthropic content blocks
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return content or ""


def parse_proposals(text: str) -> list[Proposal]:
    """
    Parse an oracle response into proposals. Accepts a bare list or
    {"recommendations": [...]}. Malformed entries are dropped with a warning;
    a response with no usable entry raises OracleError.
    """
    try:
        payload = json.loads(_strip_markdown_json(text))
    except json.JSONDecodeError as exc:
        raise OracleError(f"Oracle response is not valid JSON: {exc}") from exc

    items = payload.get("recommendations") if isinstance(payload, dict) else payload
    if not isinstance(items, list) or not items:
        raise OracleError("Oracle response contains no recommendations")

    proposals = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Dropping oracle entry %d: not an object (%r)", index, item)
            continue
        try:
            proposals.append(Proposal.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropping malformed oracle entry %d: %s", index, exc.errors()[0]["msg"])

    if not proposals:
        raise OracleError("Oracle response contains no well-formed recommendations")
    return proposals


# ── Prompt rendering ───────────────────────────────────────────────────────


def _load_prompt_template() -> str:
    return _PROMPT_PATH.read_text()


def _format_candidate(drug: FormularyDrug) -> str:
    cost = f"${drug.annual_cost:,.0f}/yr" if drug.annual_cost is not None else "cost unknown"
    indications = ", ".join(drug.approved_indications) or "not listed"
    return (
        f"  - {drug.drug_name} ({drug.generic_name or 'generic n/a'}) | {drug.drug_class or 'class n/a'} "
        f"| Tier {drug.tier} | PA: {drug.requires_pa.value} | {cost} | Indications: {indications}"
    )


def _format_evidence(evidence: list[EvidenceFinding]) -> str:
    if not evidence:
        return "No reviewed evidence available."
    return "\n".join(
        f"  [{i}] {e.title} ({e.citation})\n      {e.excerpt}" for i, e in enumerate(evidence, start=1)
    )


def render_prompt(context: DecisionContext) -> str:
    patient = context.patient
    therapy = patient.current_therapy
    dose = context.dose_assessment

    if therapy is None:
        current_medication = "None (not on a biologic)"
        current_dosing = "n/a"
    else:
        current_medication = therapy.drug_name
        if therapy.generic_name:
            current_medication += f" (generic: {therapy.generic_name})"
        current_dosing = " ".join(p for p in (therapy.dose, therapy.frequency) if p) or "not recorded"

    if dose.next_interval is not None:
        next_step = f"{dose.next_level}% → {dose.next_interval}"
    else:
        next_step = "none (no further reduction permitted)"

    guidance = QUADRANT_GUIDANCE[context.quadrant]
    if context.months_until_actionable:
        guidance += f" {context.months_until_actionable} more month(s) of stability needed."

    return _load_prompt_template().format(
        current_medication=current_medication,
        current_dosing=current_dosing,
        diagnosis=patient.diagnosis,
        severity_score=patient.severity_score,
        months_stable=patient.months_stable,
        psoriatic_arthritis="YES, prefer drugs indicated for PsA" if patient.has_psoriatic_arthritis else "no",
        comorbidities=", ".join(patient.comorbidities) or "none",
        notes=patient.notes or "none",
        contraindications=", ".join(c.type for c in context.contraindications) or "none",
        current_contraindicated=(
            "YES (absolute), switch away from it" if context.current_blocked else "no"
        ),
        quadrant=context.quadrant.value,
        quadrant_guidance=guidance,
        available_tiers=", ".join(str(t) for t in context.available_tiers) or "none",
        lowest_tier=context.lowest_tier if context.lowest_tier is not None else "n/a",
        current_tier=context.current_drug.tier if context.current_drug is not None else "not on formulary",
        dose_level=dose.level,
        next_step=next_step,
        candidates="\n".join(_format_candidate(d) for d in context.candidates) or "  (none)",
        evidence=_format_evidence(context.evidence),
        max_recommendations=context.max_recommendations,
    )


# ── Oracles ────────────────────────────────────────────────────────────────


class LLMRankingOracle:
    """Ranks with the chat model from get_llm(), or an injected one."""

    def __init__(self, llm=None):
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    def rank(self, context: DecisionContext) -> list[Proposal]:
        prompt = render_prompt(context)
        try:
            response = self.llm.invoke([SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)])
        except Exception as exc:
            logger.error("Ranking oracle call failed: %s", exc)
            raise OracleError(f"Ranking oracle call failed: {exc}") from exc

        proposals = parse_proposals(_response_text(response))
        logger.info(
            "🧠 Oracle proposed %d recommendation(s): %s",
            len(proposals),
            [(p.type.value, p.drug_name) for p in proposals],
        )
        return proposals


class RuleBasedOracle:
    """Deterministic tier cascade. Same contract as the LLM oracle."""

    def rank(self, context: DecisionContext) -> list[Proposal]:
        quadrant = context.quadrant
        current_tier = current_tier_or_worst(context.current_drug)
        proposals: list[Proposal] = []

        if quadrant is Quadrant.NOT_ON_BIOLOGIC:
            for drug in context.candidates:
                proposals.append(self._targeted(RecommendationType.INITIATE_BIOLOGIC, drug,
                                                f"Lowest-cost indicated option (tier {drug.tier})."))

        elif context.current_blocked:
            for drug in context.candidates:
                rec_type = switch_type_for(context.current_drug, context.current_brand, drug)
                proposals.append(self._targeted(rec_type, drug,
                                                f"Current drug is contraindicated; tier {drug.tier} alternative."))

        elif quadrant is Quadrant.STABLE_SHORT_DURATION:
            proposals.append(self._current(context, RecommendationType.CONTINUE_CURRENT,
                                           f"Stable for {context.patient.months_stable} month(s); "
                                           f"reassess after {context.months_until_actionable} more month(s)."))

        elif quadrant in (Quadrant.STABLE_SUBOPTIMAL, Quadrant.UNSTABLE_SUBOPTIMAL):
            lower = [d for d in context.candidates if d.tier < current_tier]
            current_label = f"tier {context.current_drug.tier}" if context.current_drug else "off-formulary"
            for drug in lower:
                rec_type = switch_type_for(context.current_drug, context.current_brand, drug)
                proposals.append(self._targeted(rec_type, drug,
                                                f"Tier {drug.tier} alternative to current {current_label} drug."))
            if quadrant is Quadrant.STABLE_SUBOPTIMAL and context.dose_assessment.can_reduce:
                proposals.append(self._dose_reduction(context))
            if not proposals:
                fallback = (RecommendationType.CONTINUE_CURRENT if quadrant is Quadrant.STABLE_SUBOPTIMAL
                            else RecommendationType.OPTIMIZE_CURRENT)
                proposals.append(self._current(context, fallback, "No lower-tier indicated alternative is available."))

        elif quadrant is Quadrant.STABLE_OPTIMAL:
            if context.dose_assessment.can_reduce:
                proposals.append(self._dose_reduction(context))
            proposals.append(self._current(context, RecommendationType.CONTINUE_CURRENT,
                                           "Stable on the lowest formulary tier."))

        elif quadrant is Quadrant.UNSTABLE_OPTIMAL:
            current_class = context.current_drug.drug_class if context.current_drug else None
            for drug in context.candidates:
                if drug.tier <= current_tier and drug.drug_class != current_class:
                    proposals.append(self._targeted(RecommendationType.THERAPEUTIC_SWITCH, drug,
                                                    f"Different mechanism ({drug.drug_class}) on tier {drug.tier}."))
            proposals.append(self._current(context, RecommendationType.OPTIMIZE_CURRENT,
                                           "Optimize adherence and technique on the current drug."))

        ranked = proposals[: context.max_recommendations]
        for rank, proposal in enumerate(ranked, start=1):
            proposal.rank = rank
        logger.info("Rule-based oracle proposed %d recommendation(s) for %s", len(ranked), quadrant.value)
        return ranked

    @staticmethod
    def _targeted(rec_type: RecommendationType, drug: FormularyDrug, rationale: str) -> Proposal:
        return Proposal(type=rec_type, drug_name=drug.drug_name, rationale=rationale,
                        monitoring_plan="Reassess severity score at 3 and 6 months.")

    @staticmethod
    def _current(context: DecisionContext, rec_type: RecommendationType, rationale: str) -> Proposal:
        therapy = context.patient.current_therapy
        return Proposal(
            type=rec_type,
            drug_name=context.current_brand,
            new_dose=therapy.dose if therapy else None,
            new_frequency=therapy.frequency if therapy else None,
            rationale=rationale,
            monitoring_plan="Routine follow-up at next scheduled visit.",
        )

    @staticmethod
    def _dose_reduction(context: DecisionContext) -> Proposal:
        therapy = context.patient.current_therapy
        dose = context.dose_assessment
        citations = "; ".join(e.title for e in context.evidence[:3])
        rationale = f"Stable patient: extend interval to {dose.next_interval} ({dose.next_level}% reduction)."
        if citations:
            rationale += f" Supporting evidence: {citations}."
        return Proposal(
            type=RecommendationType.DOSE_REDUCTION,
            drug_name=context.current_brand,
            new_dose=therapy.dose if therapy else None,
            new_frequency=str(dose.next_interval),
            rationale=rationale,
            monitoring_plan="Reassess severity score 3 months after interval extension; revert on flare.",
        )


def get_oracle() -> RankingOracle:
    """Oracle selected by ORACLE_PROVIDER ('llm' default, or 'rules')."""
    provider = os.getenv("ORACLE_PROVIDER", "llm")
    if provider == "llm":
        return LLMRankingOracle()
    if provider == "rules":
        return RuleBasedOracle()
    raise ValueError(f"Unknown ORACLE_PROVIDER: {provider}")
