"""
Dosing Reference — FDA label maintenance dosing for the supported biologics.

Two static tables keyed by generic name:
  STANDARD_INTERVALS  maintenance interval used as the dose-reduction baseline
  LABEL_DOSING        label dose / frequency text used for switch and initiate
                      recommendations

Lookups accept brand names, generic names and suffixed biosimilar names.
"""

from typing import NamedTuple, Optional

from biologic_agent.drug_normalizer import equivalence_class
from biologic_agent.frequency import DAY, WEEK, DosingInterval


class LabelDosing(NamedTuple):
    dose: str
    frequency: str


STANDARD_INTERVALS: dict[str, DosingInterval] = {
    # IL-23
    "risankizumab": DosingInterval(12, WEEK),
    "guselkumab": DosingInterval(8, WEEK),
    "tildrakizumab": DosingInterval(12, WEEK),
    # IL-17
    "secukinumab": DosingInterval(4, WEEK),
    "ixekizumab": DosingInterval(4, WEEK),
    "brodalumab": DosingInterval(2, WEEK),
    "bimekizumab": DosingInterval(8, WEEK),
    # TNF
    "adalimumab": DosingInterval(2, WEEK),
    "etanercept": DosingInterval(1, WEEK),
    "certolizumab": DosingInterval(2, WEEK),
    "golimumab": DosingInterval(4, WEEK),
    "infliximab": DosingInterval(8, WEEK),
    # IL-12/23
    "ustekinumab": DosingInterval(12, WEEK),
    # IL-4/13
    "dupilumab": DosingInterval(2, WEEK),
    "tralokinumab": DosingInterval(2, WEEK),
    # Oral JAK / TYK2
    "upadacitinib": DosingInterval(1, DAY),
    "abrocitinib": DosingInterval(1, DAY),
    "deucravacitinib": DosingInterval(1, DAY),
}

LABEL_DOSING: dict[str, LabelDosing] = {
    "adalimumab": LabelDosing("80 mg initial dose, then 40 mg", "every 2 weeks starting 1 week after initial dose"),
    "etanercept": LabelDosing("50 mg", "twice weekly for 3 months, then once weekly"),
    "certolizumab": LabelDosing("400 mg (two 200 mg injections)", "every 2 weeks"),
    "golimumab": LabelDosing("50 mg", "every 4 weeks"),
    "infliximab": LabelDosing("5 mg/kg IV", "at weeks 0, 2, 6, then every 8 weeks"),
    "secukinumab": LabelDosing("300 mg", "at weeks 0, 1, 2, 3, 4, then every 4 weeks"),
    "ixekizumab": LabelDosing(
        "160 mg initial dose (two 80 mg injections), then 80 mg",
        "every 2 weeks for weeks 2 to 12, then every 4 weeks",
    ),
    "brodalumab": LabelDosing("210 mg", "at weeks 0, 1, 2, then every 2 weeks"),
    "bimekizumab": LabelDosing("320 mg (two 160 mg injections)", "every 4 weeks to week 16, then every 8 weeks"),
    "guselkumab": LabelDosing("100 mg", "at weeks 0, 4, then every 8 weeks"),
    "risankizumab": LabelDosing("150 mg", "at weeks 0, 4, then every 12 weeks"),
    "tildrakizumab": LabelDosing("100 mg", "at weeks 0, 4, then every 12 weeks"),
    "ustekinumab": LabelDosing(
        "45 mg (≤100 kg) or 90 mg (>100 kg)",
        "at weeks 0, 4, then every 12 weeks",
    ),
    "dupilumab": LabelDosing("600 mg loading dose, then 300 mg", "every 2 weeks"),
    "tralokinumab": LabelDosing("600 mg loading dose, then 300 mg", "every 2 weeks"),
    "upadacitinib": LabelDosing("15 mg orally", "daily"),
    "abrocitinib": LabelDosing("100 mg orally", "daily"),
    "deucravacitinib": LabelDosing("6 mg orally", "daily"),
    "apremilast": LabelDosing("30 mg orally after 5-day titration", "twice daily"),
}


def standard_interval(drug_name: Optional[str], generic_name: Optional[str] = None) -> Optional[DosingInterval]:
    """Standard maintenance interval, or None for drugs without a reference."""
    for key in _lookup_keys(drug_name, generic_name):
        if key in STANDARD_INTERVALS:
            return STANDARD_INTERVALS[key]
    return None


def label_dosing(drug_name: Optional[str], generic_name: Optional[str] = None) -> Optional[LabelDosing]:
    """Label dose and frequency text, or None when the drug is not in the table."""
    for key in _lookup_keys(drug_name, generic_name):
        if key in LABEL_DOSING:
            return LABEL_DOSING[key]
    return None


def _lookup_keys(drug_name: Optional[str], generic_name: Optional[str]) -> list[str]:
    keys = [equivalence_class(None, generic_name), equivalence_class(drug_name)]
    return [k for k in keys if k]
