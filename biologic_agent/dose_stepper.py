"""
Dose-Reduction Stepper — where is the patient on the interval-extension ladder,
and what is the next permitted step?

Levels are measured against the FDA standard maintenance interval:
    ratio = current_interval / standard_interval     (in days)
    ratio ≤ 1.15          → 0   (standard dosing)
    1.15 < ratio ≤ 1.6    → 25
    ratio > 1.6           → 50  (ceiling, no further reduction)

Steps go 0 → 25 → 50 and are always computed from the standard interval,
never cumulatively from an already-extended one. An unknown drug or an
unparseable frequency is treated as standard dosing.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from biologic_agent.dosing_reference import standard_interval
from biologic_agent.frequency import DosingInterval, parse_frequency

logger = logging.getLogger(__name__)

LEVEL_STANDARD = 0
LEVEL_25 = 25
LEVEL_50 = 50
REDUCTION_LEVELS = (LEVEL_STANDARD, LEVEL_25, LEVEL_50)

RATIO_STANDARD_MAX = 1.15
RATIO_LEVEL_25_MAX = 1.6

# Target interval for each step, as a multiple of the standard interval
STEP_MULTIPLIERS = {LEVEL_25: 1.5, LEVEL_50: 2.0}


def classify_ratio(ratio: float) -> int:
    if ratio <= RATIO_STANDARD_MAX:
        return LEVEL_STANDARD
    if ratio <= RATIO_LEVEL_25_MAX:
        return LEVEL_25
    return LEVEL_50


@dataclass(frozen=True)
class DoseAssessment:
    level: int
    current_interval: Optional[DosingInterval] = None
    standard_interval: Optional[DosingInterval] = None
    next_level: Optional[int] = None
    next_interval: Optional[DosingInterval] = None

    @property
    def can_reduce(self) -> bool:
        return self.next_interval is not None


NO_ASSESSMENT = DoseAssessment(level=LEVEL_STANDARD)


def step_interval(standard: DosingInterval, level: int) -> DosingInterval:
    """Target interval for a reduction level, rounded half-up to whole days."""
    days = math.floor(standard.days * STEP_MULTIPLIERS[level] + 0.5)
    return DosingInterval.from_days(days)


def assess(drug_name: Optional[str], frequency: Optional[str], generic_name: Optional[str] = None) -> DoseAssessment:
    """Classify the current dosing and compute the next permitted reduction step."""
    standard = standard_interval(drug_name, generic_name)
    if standard is None:
        logger.info("No standard dosing reference for %s — treating as standard dosing", drug_name)
        return DoseAssessment(level=LEVEL_STANDARD, current_interval=parse_frequency(frequency))

    current = parse_frequency(frequency)
    if current is None:
        logger.warning(
            "Unparseable frequency %r for %s — treating as standard dosing", frequency, drug_name
        )
        current = standard

    level = classify_ratio(current.days / standard.days)
    next_level, next_interval = _next_step(level, current, standard)

    logger.info(
        "Dose assessment for %s: current=%s standard=%s level=%d%% next=%s",
        drug_name,
        current,
        standard,
        level,
        next_interval if next_interval else "none",
    )
    return DoseAssessment(
        level=level,
        current_interval=current,
        standard_interval=standard,
        next_level=next_level,
        next_interval=next_interval,
    )


def _next_step(
    level: int, current: DosingInterval, standard: DosingInterval
) -> tuple[Optional[int], Optional[DosingInterval]]:
    position = REDUCTION_LEVELS.index(level)
    if position + 1 >= len(REDUCTION_LEVELS):
        return None, None  # 50% is the ceiling

    target_level = REDUCTION_LEVELS[position + 1]
    target = step_interval(standard, target_level)

    # Rounding can land a step outside its own band (e.g. daily → every 2 days)
    if classify_ratio(target.days / standard.days) != target_level:
        return None, None
    if target.days <= current.days:
        return None, None
    return target_level, target
