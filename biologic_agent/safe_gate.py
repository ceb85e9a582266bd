"""
Safe Gate Engine — deterministic contraindication filtering.

Partitions the indication-filtered formulary into:
  safe             drugs with zero contraindication findings
  contraindicated  drugs with one or more findings, each with its reason list
                   and worst severity (ABSOLUTE / RELATIVE)

This partition is the ONLY authority on what the ranking oracle may see. The
oracle is never shown a contraindicated drug, and rules here are never
influenced by LLM reasoning.

Rules live in contraindication_rules.py; this module only applies them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from biologic_agent.contraindication_rules import rules_for_condition
from biologic_agent.drug_normalizer import drug_class_for, normalize_to_generic
from biologic_agent.models import (
    Contraindication,
    ContraindicatedDrug,
    ContraindicationFinding,
    CurrentTherapy,
    FormularyDrug,
    Severity,
    formulary_sort_key,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TherapyProfile:
    """The names a rule can match on, for a drug that may have no formulary row."""

    drug_name: str
    generic_name: Optional[str]
    drug_class: Optional[str]


def find_contraindications(
    drug: FormularyDrug | TherapyProfile, contraindications: list[Contraindication]
) -> list[ContraindicationFinding]:
    """Every finding for one drug against the patient's contraindication set."""
    findings = []
    seen = set()
    for ci in contraindications:
        for rule in rules_for_condition(ci.type, drug):
            key = (ci.type, rule.reason)
            if key in seen:
                continue
            seen.add(key)
            findings.append(
                ContraindicationFinding(
                    drug_name=drug.drug_name,
                    reason_type=ci.type,
                    severity=rule.severity,
                    explanation=rule.reason,
                    details=ci.details,
                )
            )
    return findings


def apply_safe_gate(drugs: list[FormularyDrug], contraindications: list[Contraindication]) -> dict:
    """
    Split drugs into safe and contraindicated views.

    Returns:
        {
            "safe": [FormularyDrug, ...],              # sorted by tier, PA, cost
            "contraindicated": [ContraindicatedDrug, ...]
        }
    """
    safe = []
    contraindicated = []

    for drug in drugs:
        findings = find_contraindications(drug, contraindications)
        if not findings:
            safe.append(drug)
            continue

        entry = ContraindicatedDrug(drug=drug, findings=findings)
        contraindicated.append(entry)
        logger.info(
            "%s contraindication: %s — %s",
            entry.severity.value,
            drug.drug_name,
            sorted({f.reason_type for f in findings}),
        )

    safe.sort(key=formulary_sort_key)
    contraindicated.sort(key=lambda c: formulary_sort_key(c.drug))

    absolute = sum(1 for c in contraindicated if c.severity is Severity.ABSOLUTE)
    logger.info(
        "Safe Gate: %d/%d drugs safe, %d contraindicated (absolute=%d, relative=%d)",
        len(safe),
        len(drugs),
        len(contraindicated),
        absolute,
        len(contraindicated) - absolute,
    )

    return {"safe": safe, "contraindicated": contraindicated}


def screen_current_therapy(
    therapy: Optional[CurrentTherapy],
    current_drug: Optional[FormularyDrug],
    contraindications: list[Contraindication],
) -> list[ContraindicationFinding]:
    """
    Findings for the drug the patient is on today, whether or not it is on
    the formulary or indicated. Names missing from the formulary row (or the
    whole row) are filled in from the intake record and the class lookup.
    """
    if therapy is None and current_drug is None:
        return []

    drug_name = current_drug.drug_name if current_drug is not None else therapy.drug_name
    generic_name = (
        (current_drug.generic_name if current_drug is not None else None)
        or (therapy.generic_name if therapy is not None else None)
        or normalize_to_generic(drug_name)
    )
    drug_class = (current_drug.drug_class if current_drug is not None else None) or drug_class_for(
        drug_name, generic_name
    )

    findings = find_contraindications(TherapyProfile(drug_name, generic_name, drug_class), contraindications)
    if findings:
        logger.info(
            "Current drug %s screened: %s",
            drug_name,
            sorted({f"{f.reason_type}:{f.severity.value}" for f in findings}),
        )
    return findings
