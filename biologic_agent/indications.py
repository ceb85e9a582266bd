"""
Indication Filter — keeps formulary drugs approved for the patient's diagnosis.

A drug passes when it lists no approved indications (older formulary uploads
carry none) or when any listed indication and the diagnosis overlap as
normalized substrings, in either direction. Common abbreviations are expanded
before comparing.
"""

import logging
import re

from biologic_agent.models import FormularyDrug

logger = logging.getLogger(__name__)

ABBREVIATIONS = {
    "psa": "psoriatic arthritis",
    "pso": "psoriasis",
    "ad": "atopic dermatitis",
    "hs": "hidradenitis suppurativa",
    "ra": "rheumatoid arthritis",
    "as": "ankylosing spondylitis",
    "cd": "crohn's disease",
    "uc": "ulcerative colitis",
}


def normalize_indication(text: str) -> str:
    """Lowercase, underscores to spaces, collapsed whitespace, abbreviations expanded."""
    normalized = re.sub(r"\s+", " ", text.replace("_", " ").strip().lower())
    return ABBREVIATIONS.get(normalized, normalized)


def matches_diagnosis(indication: str, diagnosis: str) -> bool:
    a = normalize_indication(indication)
    b = normalize_indication(diagnosis)
    if not a or not b:
        return False
    return a in b or b in a


def is_indicated(drug: FormularyDrug, diagnosis: str) -> bool:
    if not drug.approved_indications:
        return True
    return any(matches_diagnosis(ind, diagnosis) for ind in drug.approved_indications)


def filter_by_indication(drugs: list[FormularyDrug], diagnosis: str) -> list[FormularyDrug]:
    """Drugs whose approved indications match the diagnosis (input order preserved)."""
    kept = [d for d in drugs if is_indicated(d, diagnosis)]
    logger.info(
        "Indication filter '%s': %d/%d drugs indicated",
        diagnosis,
        len(kept),
        len(drugs),
    )
    return kept
