"""
Cost Calculator — annual and monthly cost deltas for a recommendation.

    dose reduction      recommended = current × (1 − DOSE_REDUCTION_COST_FRACTION)
    switch / initiate   recommended = target drug's annual cost
    continue / optimize recommended = current

DOSE_REDUCTION_COST_FRACTION is a flat, documented approximation. It is not
derived from the interval-extension level of the recommendation.

Savings percent is undefined (None), not zero, when the current cost is
unknown or zero. Monthly out-of-pocket is the drug's tier copay / 12.
"""

from typing import Optional

from biologic_agent.config import EngineConfig
from biologic_agent.models import CostDelta, FormularyDrug, RecommendationType, TARGETED_TYPES


def _round(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def monthly_oop(drug: Optional[FormularyDrug]) -> Optional[float]:
    if drug is None:
        return None
    copay = drug.copay_for_tier()
    if copay is None:
        return None
    return copay / 12


def savings_percent(current: Optional[float], recommended: Optional[float]) -> Optional[float]:
    if current is None or recommended is None or current == 0:
        return None
    return (current - recommended) / current * 100


def compute_cost_delta(
    rec_type: RecommendationType,
    current: Optional[FormularyDrug],
    target: Optional[FormularyDrug],
    config: EngineConfig,
) -> CostDelta:
    current_cost = current.annual_cost if current is not None else None
    current_monthly = monthly_oop(current)

    if rec_type is RecommendationType.DOSE_REDUCTION:
        keep = 1 - config.dose_reduction_cost_fraction
        recommended_cost = current_cost * keep if current_cost is not None else None
        recommended_monthly = current_monthly * keep if current_monthly is not None else None
    elif rec_type in TARGETED_TYPES:
        recommended_cost = target.annual_cost if target is not None else None
        recommended_monthly = monthly_oop(target)
    else:
        recommended_cost = current_cost
        recommended_monthly = current_monthly

    annual_savings = (
        current_cost - recommended_cost
        if current_cost is not None and recommended_cost is not None
        else None
    )
    monthly_savings = (
        current_monthly - recommended_monthly
        if current_monthly is not None and recommended_monthly is not None
        else None
    )

    return CostDelta(
        current_annual_cost=_round(current_cost),
        recommended_annual_cost=_round(recommended_cost),
        annual_savings=_round(annual_savings),
        savings_percent=_round(savings_percent(current_cost, recommended_cost)),
        current_monthly_oop=_round(current_monthly),
        recommended_monthly_oop=_round(recommended_monthly),
        monthly_oop_savings=_round(monthly_savings),
    )
