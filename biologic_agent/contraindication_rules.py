"""
Contraindication Rules — the clinical rule table consulted by the Safe Gate.

Each rule maps a set of patient condition types to a fixed severity for a
drug-class family, a specific drug, or every drug. Condition types are the
normalized UPPER_SNAKE tokens carried by Contraindication.type.

CONFIGURATION:
Edit CONTRAINDICATION_RULES below. Control flow in safe_gate.py never
mentions a specific condition or class; it only walks this table.

Class families are matched against the drug class with every non-alphanumeric
character removed, so "IL-17 inhibitor", "IL17_INHIBITOR" and "il 17a" all
belong to the IL17 family.
"""

import re
from dataclasses import dataclass
from typing import Optional

from biologic_agent.drug_normalizer import equivalence_class
from biologic_agent.models import FormularyDrug, Severity

TNF = ("TNF",)
JAK = ("JAK", "TYK2")
IL17 = ("IL17",)


def normalize_drug_class(drug_class: Optional[str]) -> str:
    return re.sub(r"[^A-Z0-9]", "", (drug_class or "").upper())


@dataclass(frozen=True)
class ContraindicationRule:
    conditions: frozenset
    severity: Severity
    reason: str
    drug_classes: tuple = ()  # Class-family tokens, matched as substrings
    drugs: tuple = ()         # Generic names (equivalence classes)

    @property
    def is_general(self) -> bool:
        """True for rules that apply to every biologic."""
        return not self.drug_classes and not self.drugs

    def applies_to(self, drug: FormularyDrug) -> bool:
        if self.is_general:
            return True
        if self.drugs and equivalence_class(drug.drug_name, drug.generic_name) in self.drugs:
            return True
        drug_class = normalize_drug_class(drug.drug_class)
        return any(token in drug_class for token in self.drug_classes)


def _rule(conditions, severity, reason, drug_classes=(), drugs=()) -> ContraindicationRule:
    return ContraindicationRule(frozenset(conditions), severity, reason, drug_classes, drugs)


ABSOLUTE = Severity.ABSOLUTE
RELATIVE = Severity.RELATIVE

CONTRAINDICATION_RULES: tuple = (
    # ── TNF inhibitors ──────────────────────────────────────────────────────
    _rule({"HEART_FAILURE"}, ABSOLUTE,
          "TNF inhibitors can worsen heart failure and increase mortality", TNF),
    _rule({"MULTIPLE_SCLEROSIS", "DEMYELINATING_DISEASE"}, ABSOLUTE,
          "TNF inhibitors can exacerbate demyelinating disease", TNF),
    _rule({"LYMPHOMA"}, RELATIVE,
          "History of lymphoma: TNF inhibitors may increase recurrence risk. "
          "Weigh risk/benefit with oncology.", TNF),
    _rule({"MALIGNANCY"}, RELATIVE,
          "Active or recent malignancy: TNF inhibitors may affect tumor surveillance. "
          "Discuss with oncology.", TNF),
    _rule({"HEPATITIS_B"}, RELATIVE,
          "Hepatitis B can reactivate on TNF inhibitors. Requires antiviral prophylaxis and monitoring.", TNF),
    _rule({"LATENT_TUBERCULOSIS"}, RELATIVE,
          "Latent TB requires prophylactic treatment before starting a TNF inhibitor.", TNF),
    _rule({"ACTIVE_TUBERCULOSIS"}, ABSOLUTE,
          "Active TB must be treated before starting any biologic, especially TNF inhibitors.", TNF),

    # ── JAK / TYK2 inhibitors ───────────────────────────────────────────────
    _rule({"THROMBOSIS", "VENOUS_THROMBOEMBOLISM"}, ABSOLUTE,
          "JAK inhibitors significantly increase VTE risk in patients with a thrombosis history.", JAK),
    _rule({"CARDIOVASCULAR_DISEASE"}, RELATIVE,
          "JAK inhibitors increase MACE risk. Monitor closely in patients with CV risk factors.", JAK),
    _rule({"MALIGNANCY"}, RELATIVE,
          "JAK inhibitors may increase cancer risk. Discuss risk/benefit given cancer history.", JAK),
    _rule({"CYTOPENIAS"}, RELATIVE,
          "JAK inhibitors can worsen cytopenias. Requires baseline labs and monitoring.", JAK),

    # ── IL-17 inhibitors ────────────────────────────────────────────────────
    _rule({"INFLAMMATORY_BOWEL_DISEASE"}, RELATIVE,
          "IL-17 inhibitors can worsen or trigger IBD. Use with caution and GI consultation.", IL17),
    _rule({"DIVERTICULITIS"}, RELATIVE,
          "IL-17 inhibitors may increase intestinal perforation risk. Monitor for GI symptoms.", IL17),

    # ── Drug-specific label restrictions ────────────────────────────────────
    _rule({"SUICIDAL_IDEATION"}, ABSOLUTE,
          "Brodalumab carries a boxed warning for suicidal ideation and behavior.",
          drugs=("brodalumab",)),
    _rule({"DEPRESSION"}, RELATIVE,
          "Brodalumab boxed warning: assess depression history and monitor mood closely.",
          drugs=("brodalumab",)),

    # ── All biologics ───────────────────────────────────────────────────────
    _rule({"ACTIVE_INFECTION"}, ABSOLUTE,
          "Active infection must be treated before starting any biologic therapy."),
    _rule({"OPPORTUNISTIC_INFECTION"}, ABSOLUTE,
          "History of opportunistic infection requires ID consultation before biologics."),
    _rule({"MALIGNANCY"}, RELATIVE,
          "Active or recent malignancy: biologics may affect tumor surveillance. Requires oncology clearance."),
    _rule({"IMMUNOCOMPROMISED"}, RELATIVE,
          "Immunocompromised state increases infection risk with biologics. Monitor closely."),
    _rule({"PREGNANCY"}, RELATIVE,
          "Pregnancy requires careful risk/benefit assessment. Consult maternal-fetal medicine."),
    _rule({"LIVE_VACCINE_RECENT"}, RELATIVE,
          "Wait 4+ weeks after a live vaccine before starting biologics."),
    _rule({"SURGERY_PLANNED"}, RELATIVE,
          "Hold biologics peri-operatively to reduce infection risk."),
)


def rules_for_condition(condition: str, drug: FormularyDrug) -> list[ContraindicationRule]:
    """
    Rules that fire for one condition on one drug. A general rule is skipped
    when a class- or drug-specific rule already covers the same condition.
    """
    matching = [r for r in CONTRAINDICATION_RULES if condition in r.conditions and r.applies_to(drug)]
    specific = [r for r in matching if not r.is_general]
    return specific or matching
