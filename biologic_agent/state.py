"""
DecisionState — the typed state object that flows through the LangGraph graph.

Every node reads from and writes to this state. One state object per decision
run; nothing in it is shared across runs.

IMPORTANT: the oracle only ever sees `oracle_candidates`, which is derived
from `safe_drugs`. Contraindicated drugs are kept in their own key for the
caller's contraindicated view and are never passed to the oracle.
"""

from typing import Optional, TypedDict

from biologic_agent.dose_stepper import DoseAssessment
from biologic_agent.models import FormularyDrug, PatientTherapyState
from biologic_agent.quadrant import Classification


class DecisionState(TypedDict, total=False):
    """State flowing through the decision graph."""

    # ── Input ───────────────────────────────────────────────────────────────
    patient: PatientTherapyState
    contraindications: list  # [Contraindication]
    plan_id: str

    # ── Formulary snapshot ──────────────────────────────────────────────────
    formulary: list                       # [FormularyDrug] latest upload for the plan
    current_drug: Optional[FormularyDrug]  # Current therapy's formulary row, if listed
    indicated_drugs: list                 # [FormularyDrug] approved for the diagnosis
    available_tiers: list                 # Sorted distinct tiers of indicated drugs

    # ── Safety layer outputs ────────────────────────────────────────────────
    safe_drugs: list              # [FormularyDrug] zero findings, tier/PA/cost order
    contraindicated_drugs: list   # [ContraindicatedDrug]
    oracle_candidates: list       # [FormularyDrug] what the oracle may recommend
    current_blocked: bool         # Current drug has an ABSOLUTE finding; no continue/reduce

    # ── Classification ──────────────────────────────────────────────────────
    classification: Classification
    dose_assessment: DoseAssessment

    # ── Evidence ────────────────────────────────────────────────────────────
    evidence: list  # [EvidenceFinding]

    # ── Oracle ──────────────────────────────────────────────────────────────
    proposals: list  # [Proposal] raw, untrusted
    validated: list  # [ValidatedProposal] after the sanitizer

    # ── Output ──────────────────────────────────────────────────────────────
    recommendations: list  # [Recommendation] ranked, priced
