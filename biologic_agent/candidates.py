"""
Candidate helpers shared by the ranking oracles and the sanitizer: the view of
the formulary the oracle is allowed to see, drug identity checks, and switch
type classification.
"""

import math
from typing import Optional

from biologic_agent.drug_normalizer import equivalence_class
from biologic_agent.models import FormularyDrug, RecommendationType


def drug_key(name: Optional[str]) -> str:
    """Identity key for a drug name: case and whitespace insensitive."""
    return " ".join((name or "").lower().split())


def is_same_drug(drug: FormularyDrug, other: Optional[FormularyDrug]) -> bool:
    return other is not None and drug_key(drug.drug_name) == drug_key(other.drug_name)


def oracle_candidates(
    safe_drugs: list[FormularyDrug],
    current_drug: Optional[FormularyDrug],
    current_brand: Optional[str],
    limit: int,
) -> list[FormularyDrug]:
    """
    Safe drugs minus the current drug, deduplicated by generic name, first
    `limit` in the incoming (tier, PA, cost) order.
    """
    excluded = {drug_key(current_brand)} if current_brand else set()
    if current_drug is not None:
        excluded.add(drug_key(current_drug.drug_name))

    seen_generics = set()
    view = []
    for drug in safe_drugs:
        if drug_key(drug.drug_name) in excluded:
            continue
        generic = drug_key(drug.generic_name) or drug_key(drug.drug_name)
        if generic in seen_generics:
            continue
        seen_generics.add(generic)
        view.append(drug)
        if len(view) >= limit:
            break
    return view


def current_tier_or_worst(current_drug: Optional[FormularyDrug]) -> float:
    """Tier of the current drug; a drug missing from the formulary ranks worst."""
    return current_drug.tier if current_drug is not None else math.inf


def switch_type_for(current_drug: Optional[FormularyDrug], current_brand: Optional[str], target: FormularyDrug) -> RecommendationType:
    """
    SWITCH_TO_BIOSIMILAR  target shares the current drug's generic stem, or is
                          listed as a biosimilar of the current brand
    SWITCH_TO_PREFERRED   target sits on a lower tier
    THERAPEUTIC_SWITCH    anything else
    """
    current_class = (
        equivalence_class(current_drug.drug_name, current_drug.generic_name)
        if current_drug is not None
        else equivalence_class(current_brand)
    )
    if current_class and equivalence_class(target.drug_name, target.generic_name) == current_class:
        return RecommendationType.SWITCH_TO_BIOSIMILAR
    current_names = {drug_key(current_brand), drug_key(current_drug.drug_name if current_drug else None)} - {""}
    if target.biosimilar_of and drug_key(target.biosimilar_of) in current_names:
        return RecommendationType.SWITCH_TO_BIOSIMILAR
    if target.tier < current_tier_or_worst(current_drug):
        return RecommendationType.SWITCH_TO_PREFERRED
    return RecommendationType.THERAPEUTIC_SWITCH
