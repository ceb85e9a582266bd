"""
Sanitizer Node — turns untrusted oracle proposals into a policy-conformant,
ranked list.

Checks, in order, for each proposal (walked in the oracle's rank order):
  1. Placeholder drug names ("no tier available", "N/A", ...)       → reject
  2. The current drug proposed as a switch or initiation, or kept
     (continue / optimize / reduce) while it is contraindicated      → reject
  3. Switch/initiate target not in the safe candidate set           → reject
  4. Type normalization
       - not_on_biologic: targeted types become INITIATE_BIOLOGIC,
         current-drug types are rejected
       - on therapy: INITIATE_BIOLOGIC becomes the matching switch type;
         current-drug types are pinned to the current brand
  5. Dose reduction
       - quadrant does not permit it, or no next step exists         → reject
       - proposed interval does not lengthen the current one         → reject
       - unparseable or wrongly stepped interval                     → replaced
         with the stepper's next-step interval
  6. Duplicate drug identity (first occurrence wins)                 → reject

Zero survivors is an OracleError. Survivors are then reordered to meet the
quadrant policy (a tier-improving switch first when suboptimal, continue-
current first when stable for too short a time), synthesizing the required
entry if the oracle left it out. Missing doses are filled from the label
reference, and the list is capped and renumbered from 1.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from biologic_agent.candidates import current_tier_or_worst, drug_key, switch_type_for
from biologic_agent.config import EngineConfig
from biologic_agent.dose_stepper import DoseAssessment
from biologic_agent.dosing_reference import label_dosing
from biologic_agent.errors import OracleError
from biologic_agent.frequency import parse_frequency
from biologic_agent.models import (
    CURRENT_DRUG_TYPES,
    DOSE_REDUCTION_QUADRANTS,
    SUBOPTIMAL_QUADRANTS,
    TARGETED_TYPES,
    FormularyDrug,
    PatientTherapyState,
    Proposal,
    Quadrant,
    RecommendationType,
)
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(
    r"\bno\s+tier\b|\bnot\s+available\b|\bnone\s+available\b|\bno\s+(?:other\s+)?(?:options?|alternatives?)\b"
    r"|^\s*(?:n/?a|none|null|tbd|unknown|-+)\s*$",
    re.IGNORECASE,
)

PER_LABEL_PATTERN = re.compile(r"\bper\s+label\b|\bas\s+labell?ed\b", re.IGNORECASE)


@dataclass(frozen=True)
class ValidatedProposal:
    """A proposal that passed every check, with its formulary row resolved."""

    proposal: Proposal
    target: Optional[FormularyDrug]  # switch/initiate target, or the current drug's row

    @property
    def type(self) -> RecommendationType:
        return self.proposal.type


def is_placeholder(name: Optional[str]) -> bool:
    return bool(name) and bool(PLACEHOLDER_PATTERN.search(name))


class Sanitizer:
    """Sanitizes one run's proposals. Holds only that run's decision data."""

    def __init__(
        self,
        quadrant: Quadrant,
        patient: PatientTherapyState,
        current_drug: Optional[FormularyDrug],
        safe_drugs: list[FormularyDrug],
        dose_assessment: DoseAssessment,
        max_recommendations: int,
        current_blocked: bool = False,
    ):
        self.quadrant = quadrant
        self.patient = patient
        self.current_drug = current_drug
        self.dose = dose_assessment
        self.max_recommendations = max_recommendations
        self.current_blocked = current_blocked

        therapy = patient.current_therapy
        self.current_brand = therapy.drug_name if therapy is not None else None
        self.current_keys = {
            key
            for key in (
                drug_key(self.current_brand),
                drug_key(therapy.generic_name) if therapy is not None else "",
                drug_key(current_drug.drug_name) if current_drug is not None else "",
                drug_key(current_drug.generic_name) if current_drug is not None else "",
            )
            if key
        }
        self.candidates = [d for d in safe_drugs if not self._refers_to_current(d.drug_name)]

    # ── Entry point ─────────────────────────────────────────────────────────

    def sanitize(self, proposals: list[Proposal]) -> list[ValidatedProposal]:
        ordered = [
            p for _, p in sorted(
                enumerate(proposals),
                key=lambda item: (item[1].rank if item[1].rank is not None else float("inf"), item[0]),
            )
        ]

        kept: list[ValidatedProposal] = []
        seen = set()
        for proposal in ordered:
            validated = self._check(proposal)
            if validated is None:
                continue
            key = self._identity(validated)
            if key in seen:
                logger.warning("Rejected duplicate proposal for %s", proposal.drug_name)
                continue
            seen.add(key)
            kept.append(validated)

        if not kept:
            raise OracleError(
                f"Oracle returned no valid recommendations ({len(proposals)} proposal(s) rejected)"
            )

        kept = self._enforce_policy(kept)
        kept = [self._fill_dosing(v) for v in kept[: self.max_recommendations]]
        ranked = [
            ValidatedProposal(proposal=v.proposal.model_copy(update={"rank": rank}), target=v.target)
            for rank, v in enumerate(kept, start=1)
        ]

        logger.info(
            "Sanitizer kept %d of %d proposal(s): %s",
            len(ranked),
            len(proposals),
            [(v.type.value, v.proposal.drug_name) for v in ranked],
        )
        return ranked

    # ── Per-proposal checks ─────────────────────────────────────────────────

    def _check(self, proposal: Proposal) -> Optional[ValidatedProposal]:
        name = (proposal.drug_name or "").strip()
        rec_type = proposal.type

        if is_placeholder(name):
            logger.warning("Rejected placeholder proposal: %r", name)
            return None

        if rec_type in TARGETED_TYPES:
            return self._check_targeted(proposal, name)
        return self._check_current(proposal, name)

    def _check_targeted(self, proposal: Proposal, name: str) -> Optional[ValidatedProposal]:
        if not name:
            logger.warning("Rejected %s proposal without a drug name", proposal.type.value)
            return None

        if self.current_brand is not None and self._refers_to_current(name):
            logger.warning("Rejected %s to the current drug %s", proposal.type.value, name)
            return None

        target = self._resolve(name)
        if target is None:
            logger.warning("Rejected %s to %s: not a safe formulary candidate", proposal.type.value, name)
            return None

        if self.quadrant is Quadrant.NOT_ON_BIOLOGIC:
            rec_type = RecommendationType.INITIATE_BIOLOGIC
        else:
            rec_type = self._switch_type(proposal.type, target)

        if rec_type is not proposal.type:
            logger.warning("Relabelled %s → %s for %s", proposal.type.value, rec_type.value, target.drug_name)

        return ValidatedProposal(
            proposal=proposal.model_copy(update={"type": rec_type, "drug_name": target.drug_name}),
            target=target,
        )

    def _check_current(self, proposal: Proposal, name: str) -> Optional[ValidatedProposal]:
        if self.current_brand is None:
            logger.warning("Rejected %s: patient has no current therapy", proposal.type.value)
            return None
        if self.current_blocked:
            logger.warning("Rejected %s: current drug %s is contraindicated", proposal.type.value, self.current_brand)
            return None

        if name and not self._refers_to_current(name):
            logger.warning(
                "%s named %s; pinned to current drug %s", proposal.type.value, name, self.current_brand
            )

        updates = {"drug_name": self.current_brand}
        if proposal.type is RecommendationType.DOSE_REDUCTION:
            frequency = self._checked_reduction_frequency(proposal)
            if frequency is None:
                return None
            updates["new_frequency"] = frequency

        return ValidatedProposal(proposal=proposal.model_copy(update=updates), target=self.current_drug)

    def _checked_reduction_frequency(self, proposal: Proposal) -> Optional[str]:
        """Frequency to keep for a dose reduction, or None when it must be rejected."""
        if self.quadrant not in DOSE_REDUCTION_QUADRANTS:
            logger.warning("Rejected dose reduction: not permitted for %s", self.quadrant.value)
            return None
        if not self.dose.can_reduce:
            logger.warning("Rejected dose reduction: no further reduction step from level %d%%", self.dose.level)
            return None

        proposed = parse_frequency(proposal.new_frequency)
        current = self.dose.current_interval
        if proposed is not None and current is not None and proposed.days <= current.days:
            logger.warning(
                "Rejected dose reduction to %r: does not lengthen current interval %s",
                proposal.new_frequency,
                current,
            )
            return None

        target = self.dose.next_interval
        if proposed is None or proposed.days != target.days:
            logger.warning(
                "Dose reduction interval %r replaced with next step %s", proposal.new_frequency, target
            )
            return str(target)
        return proposal.new_frequency

    # ── Quadrant policy ─────────────────────────────────────────────────────

    def _enforce_policy(self, kept: list[ValidatedProposal]) -> list[ValidatedProposal]:
        if self.quadrant in SUBOPTIMAL_QUADRANTS:
            return self._tier_improving_first(kept)
        if self.quadrant is Quadrant.STABLE_SHORT_DURATION and not self.current_blocked:
            return self._continue_first(kept)
        return kept

    def _tier_improving_first(self, kept: list[ValidatedProposal]) -> list[ValidatedProposal]:
        current_tier = current_tier_or_worst(self.current_drug)
        lower = [d for d in self.candidates if d.tier < current_tier]
        if not lower:
            return kept

        for index, validated in enumerate(kept):
            if validated.type in TARGETED_TYPES and validated.target.tier < current_tier:
                if index:
                    logger.warning("Moved tier-improving %s to the top", validated.proposal.drug_name)
                return [validated] + kept[:index] + kept[index + 1:]

        best = lower[0]
        logger.warning("Oracle proposed no tier-improving switch; adding %s (tier %d)", best.drug_name, best.tier)
        current_label = f"tier {self.current_drug.tier}" if self.current_drug is not None else "off-formulary"
        synthesized = ValidatedProposal(
            proposal=Proposal(
                type=switch_type_for(self.current_drug, self.current_brand, best),
                drug_name=best.drug_name,
                rationale=f"Lower-tier formulary alternative (tier {best.tier} vs current {current_label}).",
                monitoring_plan="Reassess severity score at 3 and 6 months after switching.",
            ),
            target=best,
        )
        kept = [v for v in kept if self._identity(v) != drug_key(best.drug_name)]
        return [synthesized] + kept

    def _continue_first(self, kept: list[ValidatedProposal]) -> list[ValidatedProposal]:
        for index, validated in enumerate(kept):
            if validated.type is RecommendationType.CONTINUE_CURRENT:
                if index:
                    logger.warning("Moved CONTINUE_CURRENT to the top")
                return [validated] + kept[:index] + kept[index + 1:]

        logger.warning("Oracle proposed no CONTINUE_CURRENT; adding it")
        therapy = self.patient.current_therapy
        synthesized = ValidatedProposal(
            proposal=Proposal(
                type=RecommendationType.CONTINUE_CURRENT,
                drug_name=self.current_brand,
                new_dose=therapy.dose,
                new_frequency=therapy.frequency,
                rationale=(
                    f"Stable for {self.patient.months_stable} month(s); "
                    "continue current therapy until stability is established."
                ),
                monitoring_plan="Routine follow-up at next scheduled visit.",
            ),
            target=self.current_drug,
        )
        # Continue and any other current-drug entry share one identity
        kept = [v for v in kept if v.type not in CURRENT_DRUG_TYPES]
        return [synthesized] + kept

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _switch_type(self, claimed: RecommendationType, target: FormularyDrug) -> RecommendationType:
        computed = switch_type_for(self.current_drug, self.current_brand, target)
        # A lower-tier drug with a new mechanism may stay a therapeutic switch
        if claimed is RecommendationType.THERAPEUTIC_SWITCH and computed is RecommendationType.SWITCH_TO_PREFERRED:
            return claimed
        return computed

    def _fill_dosing(self, validated: ValidatedProposal) -> ValidatedProposal:
        proposal = validated.proposal
        if proposal.type in TARGETED_TYPES:
            label = label_dosing(validated.target.drug_name, validated.target.generic_name)
            fallback_dose = label.dose if label else None
            fallback_frequency = label.frequency if label else None
        else:
            therapy = self.patient.current_therapy
            fallback_dose = therapy.dose
            fallback_frequency = therapy.frequency

        updates = {}
        if _needs_fill(proposal.new_dose) and fallback_dose:
            updates["new_dose"] = fallback_dose
        if _needs_fill(proposal.new_frequency) and fallback_frequency:
            updates["new_frequency"] = fallback_frequency
        if not updates:
            return validated
        return ValidatedProposal(proposal=proposal.model_copy(update=updates), target=validated.target)

    def _refers_to_current(self, name: Optional[str]) -> bool:
        return drug_key(name) in self.current_keys

    def _resolve(self, name: str) -> Optional[FormularyDrug]:
        key = drug_key(name)
        for drug in self.candidates:
            if drug_key(drug.drug_name) == key:
                return drug
        for drug in self.candidates:
            if drug.generic_name and drug_key(drug.generic_name) == key:
                return drug
        return None

    def _identity(self, validated: ValidatedProposal) -> str:
        if validated.type in CURRENT_DRUG_TYPES:
            return drug_key(self.current_brand)
        return drug_key(validated.target.drug_name)


def _needs_fill(value: Optional[str]) -> bool:
    return not (value or "").strip() or bool(PER_LABEL_PATTERN.search(value))


def run(state: DecisionState, engine_config: EngineConfig) -> dict:
    sanitizer = Sanitizer(
        quadrant=state["classification"].quadrant,
        patient=state["patient"],
        current_drug=state.get("current_drug"),
        safe_drugs=state.get("safe_drugs") or [],
        dose_assessment=state["dose_assessment"],
        max_recommendations=engine_config.max_recommendations,
        current_blocked=bool(state.get("current_blocked")),
    )
    return {"validated": sanitizer.sanitize(state.get("proposals") or [])}
