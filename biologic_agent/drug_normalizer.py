"""
Brand → generic name normalization for dermatology biologics.

Used to place a drug in its equivalence class when intake only carries the
brand name, and to recognise biosimilars ("adalimumab-adbm") as members of
the originator's class.
"""

import re
from typing import Optional

BRAND_TO_GENERIC = {
    # TNF inhibitors
    "humira": "adalimumab",
    "amjevita": "adalimumab",
    "cyltezo": "adalimumab",
    "hyrimoz": "adalimumab",
    "hadlima": "adalimumab",
    "abrilada": "adalimumab",
    "yusimry": "adalimumab",
    "hulio": "adalimumab",
    "idacio": "adalimumab",
    "yuflyma": "adalimumab",
    "simlandi": "adalimumab",
    "enbrel": "etanercept",
    "erelzi": "etanercept",
    "eticovo": "etanercept",
    "cimzia": "certolizumab",
    "simponi": "golimumab",
    "remicade": "infliximab",
    "inflectra": "infliximab",
    "renflexis": "infliximab",
    "avsola": "infliximab",
    # IL-17
    "cosentyx": "secukinumab",
    "taltz": "ixekizumab",
    "siliq": "brodalumab",
    "bimzelx": "bimekizumab",
    # IL-23 / IL-12/23
    "skyrizi": "risankizumab",
    "tremfya": "guselkumab",
    "ilumya": "tildrakizumab",
    "stelara": "ustekinumab",
    "wezlana": "ustekinumab",
    "selarsdi": "ustekinumab",
    "pyzchiva": "ustekinumab",
    "otulfi": "ustekinumab",
    # IL-4/13
    "dupixent": "dupilumab",
    "adbry": "tralokinumab",
    # Oral small molecules
    "otezla": "apremilast",
    "rinvoq": "upadacitinib",
    "cibinqo": "abrocitinib",
    "sotyktu": "deucravacitinib",
    # Other
    "actemra": "tocilizumab",
    "orencia": "abatacept",
}


def normalize_to_generic(drug_name: Optional[str]) -> Optional[str]:
    """Lowercased generic name for a brand, or the lowercased input if unknown."""
    if not drug_name:
        return None
    normalized = drug_name.strip().lower()
    return BRAND_TO_GENERIC.get(normalized, normalized)


def generic_stem(generic_name: Optional[str]) -> Optional[str]:
    """Strip a biosimilar suffix: 'adalimumab-adbm' → 'adalimumab'."""
    if not generic_name or not generic_name.strip():
        return None
    return re.split(r"[\s\-]+", generic_name.strip().lower(), maxsplit=1)[0]


def equivalence_class(drug_name: Optional[str], generic_name: Optional[str] = None) -> Optional[str]:
    """Best-effort equivalence class for a drug given whatever names are known."""
    return generic_stem(generic_name) or generic_stem(normalize_to_generic(drug_name))


# Mechanism class per generic; class-level contraindication rules match on it
GENERIC_CLASSES = {
    "adalimumab": "TNF inhibitor",
    "etanercept": "TNF inhibitor",
    "certolizumab": "TNF inhibitor",
    "golimumab": "TNF inhibitor",
    "infliximab": "TNF inhibitor",
    "secukinumab": "IL-17A inhibitor",
    "ixekizumab": "IL-17A inhibitor",
    "brodalumab": "IL-17 receptor inhibitor",
    "bimekizumab": "IL-17A/F inhibitor",
    "risankizumab": "IL-23 inhibitor",
    "guselkumab": "IL-23 inhibitor",
    "tildrakizumab": "IL-23 inhibitor",
    "ustekinumab": "IL-12/23 inhibitor",
    "dupilumab": "IL-4/IL-13 inhibitor",
    "tralokinumab": "IL-13 inhibitor",
    "apremilast": "PDE4 inhibitor",
    "upadacitinib": "JAK inhibitor",
    "abrocitinib": "JAK inhibitor",
    "deucravacitinib": "TYK2 inhibitor",
    "tocilizumab": "IL-6 inhibitor",
    "abatacept": "T-cell costimulation modulator",
}


def drug_class_for(drug_name: Optional[str], generic_name: Optional[str] = None) -> Optional[str]:
    """Mechanism class for a drug known only by name, or None if unrecognised."""
    return GENERIC_CLASSES.get(equivalence_class(drug_name, generic_name))
