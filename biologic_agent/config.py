"""
Engine configuration — every policy threshold of the decision engine lives here.

Values default to the clinical policy in production and can be overridden
through environment variables (loaded from .env by the entry points).
"""

import os
from dataclasses import dataclass

MAX_RECOMMENDATIONS_CEILING = 3


@dataclass(frozen=True)
class EngineConfig:
    stable_severity_max: float = 4.0        # Severity score at or below this is "stable"
    min_stable_months: int = 6              # Stable this long before optimizing
    dose_reduction_cost_fraction: float = 0.25  # Flat cost approximation for dose reduction
    max_recommendations: int = 3
    max_oracle_candidates: int = 10
    evidence_limit: int = 15

    def __post_init__(self):
        if not (1 <= self.max_recommendations <= MAX_RECOMMENDATIONS_CEILING):
            raise ValueError(
                f"max_recommendations must be between 1 and {MAX_RECOMMENDATIONS_CEILING}, "
                f"got: {self.max_recommendations}"
            )
        if not (0.0 <= self.dose_reduction_cost_fraction < 1.0):
            raise ValueError(
                f"dose_reduction_cost_fraction must be in [0, 1), got: {self.dose_reduction_cost_fraction}"
            )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from environment variables, falling back to the defaults."""
        defaults = cls()
        return cls(
            stable_severity_max=float(os.getenv("STABLE_SEVERITY_MAX", defaults.stable_severity_max)),
            min_stable_months=int(os.getenv("MIN_STABLE_MONTHS", defaults.min_stable_months)),
            dose_reduction_cost_fraction=float(
                os.getenv("DOSE_REDUCTION_COST_FRACTION", defaults.dose_reduction_cost_fraction)
            ),
            max_recommendations=int(os.getenv("MAX_RECOMMENDATIONS", defaults.max_recommendations)),
            max_oracle_candidates=int(os.getenv("MAX_ORACLE_CANDIDATES", defaults.max_oracle_candidates)),
            evidence_limit=int(os.getenv("EVIDENCE_LIMIT", defaults.evidence_limit)),
        )
