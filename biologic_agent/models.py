"""
Domain model — typed records that flow between the stages of a decision run.

Everything that enters the engine (patient state, contraindications, formulary
rows) is validated and normalized here once, at ingestion. Downstream code
works only with these types and never re-parses raw strings or "Yes"/"No"
flags.
"""

import math
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


# ── Enumerations ────────────────────────────────────────────────────────────


class Quadrant(str, Enum):
    """Stability × formulary-optimality classification of the current therapy."""

    NOT_ON_BIOLOGIC = "not_on_biologic"
    STABLE_SHORT_DURATION = "stable_short_duration"
    STABLE_OPTIMAL = "stable_optimal"
    STABLE_SUBOPTIMAL = "stable_suboptimal"
    UNSTABLE_OPTIMAL = "unstable_optimal"
    UNSTABLE_SUBOPTIMAL = "unstable_suboptimal"


DOSE_REDUCTION_QUADRANTS = frozenset({Quadrant.STABLE_OPTIMAL, Quadrant.STABLE_SUBOPTIMAL})
SUBOPTIMAL_QUADRANTS = frozenset({Quadrant.STABLE_SUBOPTIMAL, Quadrant.UNSTABLE_SUBOPTIMAL})


class Severity(str, Enum):
    ABSOLUTE = "ABSOLUTE"
    RELATIVE = "RELATIVE"


class PARequirement(str, Enum):
    """Tri-state prior-authorization flag."""

    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, value) -> "PARequirement":
        """Normalize booleans, "Yes"/"No" strings, NaN and None."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNKNOWN
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        if isinstance(value, float) and math.isnan(value):
            return cls.UNKNOWN
        text = str(value).strip().lower()
        if text in ("yes", "y", "true", "1", "required"):
            return cls.YES
        if text in ("no", "n", "false", "0", "not required"):
            return cls.NO
        return cls.UNKNOWN

    @property
    def sort_key(self) -> int:
        return _PA_ORDER[self]


_PA_ORDER = {PARequirement.NO: 0, PARequirement.UNKNOWN: 1, PARequirement.YES: 2}


class RecommendationType(str, Enum):
    SWITCH_TO_BIOSIMILAR = "SWITCH_TO_BIOSIMILAR"
    SWITCH_TO_PREFERRED = "SWITCH_TO_PREFERRED"
    THERAPEUTIC_SWITCH = "THERAPEUTIC_SWITCH"
    DOSE_REDUCTION = "DOSE_REDUCTION"
    INITIATE_BIOLOGIC = "INITIATE_BIOLOGIC"
    OPTIMIZE_CURRENT = "OPTIMIZE_CURRENT"
    CONTINUE_CURRENT = "CONTINUE_CURRENT"


# Recommendation types that keep the patient on the drug they already take
CURRENT_DRUG_TYPES = frozenset({
    RecommendationType.DOSE_REDUCTION,
    RecommendationType.OPTIMIZE_CURRENT,
    RecommendationType.CONTINUE_CURRENT,
})

SWITCH_TYPES = frozenset({
    RecommendationType.SWITCH_TO_BIOSIMILAR,
    RecommendationType.SWITCH_TO_PREFERRED,
    RecommendationType.THERAPEUTIC_SWITCH,
})

# Recommendation types that name a different drug from the formulary
TARGETED_TYPES = SWITCH_TYPES | {RecommendationType.INITIATE_BIOLOGIC}


def normalize_token(value: str) -> str:
    """'heart failure' / 'Heart-Failure' → 'HEART_FAILURE'."""
    return re.sub(r"[\s\-]+", "_", value.strip()).upper()


# ── Patient input ───────────────────────────────────────────────────────────


class CurrentTherapy(BaseModel):
    """The biologic the patient is on today."""

    drug_name: str = Field(..., min_length=1, description="Brand name as prescribed")
    generic_name: Optional[str] = Field(None, description="Generic / equivalence-class name")
    dose: Optional[str] = None
    frequency: Optional[str] = Field(None, description="e.g. 'every 2 weeks', 'Q4W'")


class PatientTherapyState(BaseModel):
    """Assessment snapshot for one patient. Immutable during a decision run."""

    model_config = ConfigDict(frozen=True)

    patient_id: Optional[str] = None
    diagnosis: str = Field(..., min_length=1, description="Diagnosis, e.g. 'psoriasis'")
    current_therapy: Optional[CurrentTherapy] = None
    severity_score: float = Field(..., ge=0, le=30, description="DLQI-style score, lower is better")
    months_stable: int = Field(0, ge=0)
    has_psoriatic_arthritis: bool = False
    comorbidities: list[str] = Field(default_factory=list)
    notes: Optional[str] = None


class Contraindication(BaseModel):
    """A (condition type, optional detail) pair attached to a patient."""

    type: str = Field(..., min_length=1)
    details: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        token = normalize_token(value)
        if not token:
            raise ValueError("contraindication type must not be blank")
        return token


# ── Formulary ───────────────────────────────────────────────────────────────


class FormularyDrug(BaseModel):
    """One drug row from the latest formulary snapshot of a plan."""

    model_config = ConfigDict(frozen=True)

    drug_name: str
    generic_name: Optional[str] = None
    drug_class: Optional[str] = None
    tier: int = Field(..., ge=1)
    requires_pa: PARequirement = PARequirement.UNKNOWN
    annual_cost: Optional[float] = Field(None, ge=0)
    copays: dict[int, float] = Field(default_factory=dict, description="Copay by tier number")
    approved_indications: tuple[str, ...] = ()
    biosimilar_of: Optional[str] = None

    @field_validator("requires_pa", mode="before")
    @classmethod
    def _normalize_pa(cls, value):
        return PARequirement.from_raw(value)

    def copay_for_tier(self) -> Optional[float]:
        return self.copays.get(self.tier)


def formulary_sort_key(drug: FormularyDrug) -> tuple:
    """Tier ascending, then PA (no < unknown < yes), then cost with unknown cost last."""
    cost = drug.annual_cost if drug.annual_cost is not None else math.inf
    return (drug.tier, drug.requires_pa.sort_key, cost, drug.drug_name.lower())


# ── Contraindication findings ───────────────────────────────────────────────


class ContraindicationFinding(BaseModel):
    drug_name: str
    reason_type: str
    severity: Severity
    explanation: str
    details: Optional[str] = None


class ContraindicatedDrug(BaseModel):
    """A formulary drug withheld from the safe view, with every reason found."""

    drug: FormularyDrug
    findings: list[ContraindicationFinding]

    @computed_field
    @property
    def severity(self) -> Severity:
        if any(f.severity is Severity.ABSOLUTE for f in self.findings):
            return Severity.ABSOLUTE
        return Severity.RELATIVE


# ── Evidence ────────────────────────────────────────────────────────────────


class EvidenceFinding(BaseModel):
    """A human-reviewed clinical finding returned by the evidence service."""

    title: str
    citation: str
    excerpt: str = ""
    finding_type: Optional[str] = None


# ── Oracle proposals ────────────────────────────────────────────────────────


class Proposal(BaseModel):
    """
    One recommendation as proposed by the ranking oracle. Untrusted: nothing
    here reaches the caller until the sanitizer has checked it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rank: Optional[int] = None
    type: RecommendationType
    drug_name: Optional[str] = Field(None, alias="drugName")
    new_dose: Optional[str] = Field(None, alias="newDose")
    new_frequency: Optional[str] = Field(None, alias="newFrequency")
    rationale: Optional[str] = None
    monitoring_plan: Optional[str] = Field(None, alias="monitoringPlan")

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        if isinstance(value, str):
            return normalize_token(value)
        return value


# ── Output ──────────────────────────────────────────────────────────────────


class CostDelta(BaseModel):
    current_annual_cost: Optional[float] = None
    recommended_annual_cost: Optional[float] = None
    annual_savings: Optional[float] = None
    savings_percent: Optional[float] = None
    current_monthly_oop: Optional[float] = None
    recommended_monthly_oop: Optional[float] = None
    monthly_oop_savings: Optional[float] = None


class Recommendation(BaseModel):
    rank: int = Field(..., ge=1)
    type: RecommendationType
    drug_name: Optional[str] = None
    generic_name: Optional[str] = None
    dose: Optional[str] = None
    frequency: Optional[str] = None
    rationale: str = ""
    monitoring_plan: Optional[str] = None
    tier: Optional[int] = None
    requires_pa: PARequirement = PARequirement.UNKNOWN
    cost: CostDelta = Field(default_factory=CostDelta)
    evidence: list[EvidenceFinding] = Field(default_factory=list)


class DecisionResult(BaseModel):
    """Value returned by one decision run."""

    patient_id: Optional[str] = None
    quadrant: Quadrant
    is_stable: bool
    is_formulary_optimal: bool
    months_until_actionable: Optional[int] = None
    dose_reduction_level: int = 0
    current_tier: Optional[int] = None
    lowest_tier: Optional[int] = None
    recommendations: list[Recommendation] = Field(..., max_length=3)
    formulary_reference: list[FormularyDrug]
    contraindicated_drugs: list[ContraindicatedDrug]
