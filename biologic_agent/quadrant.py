"""
Stability/Tier Classifier — assigns the patient's therapy to one of six quadrants.

    no current therapy                              → not_on_biologic
    severity qualifies, stable < minimum months     → stable_short_duration
    otherwise  stable × formulary-optimal           → stable_optimal | stable_suboptimal
                                                      unstable_optimal | unstable_suboptimal

Tier optimality is relative to this formulary: the current drug is optimal
when its tier equals the lowest tier among indication-appropriate drugs of
the plan. A current drug missing from the formulary is never optimal.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from biologic_agent.config import EngineConfig
from biologic_agent.models import FormularyDrug, PatientTherapyState, Quadrant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    quadrant: Quadrant
    is_stable: bool
    is_formulary_optimal: bool
    current_tier: Optional[int] = None
    lowest_tier: Optional[int] = None
    months_until_actionable: Optional[int] = None


def lowest_tier(drugs: list[FormularyDrug]) -> Optional[int]:
    return min((d.tier for d in drugs), default=None)


def classify(
    patient: PatientTherapyState,
    current_drug: Optional[FormularyDrug],
    indicated_drugs: list[FormularyDrug],
    config: EngineConfig,
) -> Classification:
    lowest = lowest_tier(indicated_drugs)

    if patient.current_therapy is None:
        logger.info("Quadrant: %s", Quadrant.NOT_ON_BIOLOGIC.value)
        return Classification(
            quadrant=Quadrant.NOT_ON_BIOLOGIC,
            is_stable=False,
            is_formulary_optimal=False,
            lowest_tier=lowest,
        )

    severity_ok = patient.severity_score <= config.stable_severity_max
    duration_ok = patient.months_stable >= config.min_stable_months
    current_tier = current_drug.tier if current_drug is not None else None
    is_optimal = current_tier is not None and lowest is not None and current_tier == lowest

    if severity_ok and not duration_ok:
        remaining = config.min_stable_months - patient.months_stable
        logger.info(
            "Quadrant: %s (severity=%s, %d month(s) until actionable)",
            Quadrant.STABLE_SHORT_DURATION.value,
            patient.severity_score,
            remaining,
        )
        return Classification(
            quadrant=Quadrant.STABLE_SHORT_DURATION,
            is_stable=True,
            is_formulary_optimal=is_optimal,
            current_tier=current_tier,
            lowest_tier=lowest,
            months_until_actionable=remaining,
        )

    is_stable = severity_ok and duration_ok
    if is_stable:
        quadrant = Quadrant.STABLE_OPTIMAL if is_optimal else Quadrant.STABLE_SUBOPTIMAL
    else:
        quadrant = Quadrant.UNSTABLE_OPTIMAL if is_optimal else Quadrant.UNSTABLE_SUBOPTIMAL

    logger.info(
        "Quadrant: %s (severity=%s, months_stable=%d, current_tier=%s, lowest_tier=%s)",
        quadrant.value,
        patient.severity_score,
        patient.months_stable,
        current_tier,
        lowest,
    )
    return Classification(
        quadrant=quadrant,
        is_stable=is_stable,
        is_formulary_optimal=is_optimal,
        current_tier=current_tier,
        lowest_tier=lowest,
    )
