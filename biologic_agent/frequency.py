"""
Dosing frequency parsing.

Frequencies arrive as free text ("every 2 weeks", "Q4W", "weekly"). They are
parsed exactly once, here, into a DosingInterval; everything downstream
compares intervals in days and never looks at the original string again.
"""

import re
from dataclasses import dataclass
from typing import Optional

WEEK = "week"
DAY = "day"

_EVERY_N = re.compile(r"every\s+(\d+)\s*(weeks?|wks?|days?)\b")
_SHORTHAND = re.compile(r"\bq\s*(\d+)\s*(w|wk|wks|week|weeks|d|day|days)\b")
_EVERY_OTHER_WEEK = re.compile(r"\bevery\s+other\s+week\b")
_WEEKLY = re.compile(r"\b(?:once\s+)?weekly\b|\bevery\s+week\b")
_DAILY = re.compile(r"\b(?:once\s+)?daily\b|\bevery\s+day\b")
_MULTIPLE_PER_PERIOD = re.compile(r"\btwice\b|\bbid\b|\bbiw\b")


@dataclass(frozen=True)
class DosingInterval:
    """A maintenance interval: `count` weeks or days between doses."""

    count: int
    unit: str  # WEEK or DAY

    @property
    def days(self) -> int:
        return self.count * 7 if self.unit == WEEK else self.count

    @classmethod
    def from_days(cls, days: int) -> "DosingInterval":
        """Express a day count in weeks when it divides evenly, else in days."""
        if days % 7 == 0:
            return cls(days // 7, WEEK)
        return cls(days, DAY)

    def __str__(self) -> str:
        if self.count == 1:
            return "weekly" if self.unit == WEEK else "daily"
        return f"every {self.count} {self.unit}s"


def _unit_of(token: str) -> str:
    return WEEK if token.startswith("w") else DAY


def parse_frequency(text: Optional[str]) -> Optional[DosingInterval]:
    """
    Parse a free-text frequency. Returns None when the text does not describe
    a single fixed interval.

        >>> parse_frequency("every 3 weeks")
        DosingInterval(count=3, unit='week')
        >>> parse_frequency("Q12W")
        DosingInterval(count=12, unit='week')
    """
    if not text:
        return None
    lowered = text.strip().lower()

    match = _EVERY_N.search(lowered) or _SHORTHAND.search(lowered)
    if match:
        count = int(match.group(1))
        return DosingInterval(count, _unit_of(match.group(2))) if count > 0 else None

    if _MULTIPLE_PER_PERIOD.search(lowered):
        return None
    if _EVERY_OTHER_WEEK.search(lowered):
        return DosingInterval(2, WEEK)
    if _WEEKLY.search(lowered):
        return DosingInterval(1, WEEK)
    if _DAILY.search(lowered):
        return DosingInterval(1, DAY)
    return None
