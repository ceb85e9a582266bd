"""
Formulary Store — plan formulary uploads held in a Pandas DataFrame.

One CSV row per (plan, upload, drug). A plan may have many uploads over time;
a decision run always reads the single most recent upload for the plan and
never merges rows across uploads.

Source: FORMULARY_CSV env var, or the packaged data/formulary.csv
Key columns: plan_id, upload_id, uploaded_at, drug_name, generic_name,
             drug_class, tier, requires_pa, annual_cost, copay_t1 … copay_t5,
             approved_indications (pipe-separated), biosimilar_of
"""

import logging
import math
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

import pandas as pd

from biologic_agent.drug_normalizer import normalize_to_generic
from biologic_agent.errors import PlanNotFoundError
from biologic_agent.models import CurrentTherapy, FormularyDrug, formulary_sort_key

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_FORMULARY_CSV = _DATA_DIR / "formulary.csv"

REQUIRED_COLUMNS = ["plan_id", "upload_id", "uploaded_at", "drug_name", "tier"]
COPAY_COLUMNS = {tier: f"copay_t{tier}" for tier in range(1, 6)}
INDICATION_SEPARATOR = "|"


def _clean(value):
    """Pandas NaN → None."""
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _row_to_drug(row: dict) -> FormularyDrug:
    indications = _clean(row.get("approved_indications"))
    copays = {}
    for tier, column in COPAY_COLUMNS.items():
        amount = _clean(row.get(column))
        if amount is not None:
            copays[tier] = float(amount)
    annual_cost = _clean(row.get("annual_cost"))

    return FormularyDrug(
        drug_name=str(row["drug_name"]).strip(),
        generic_name=_clean(row.get("generic_name")),
        drug_class=_clean(row.get("drug_class")),
        tier=int(row["tier"]),
        requires_pa=_clean(row.get("requires_pa")),
        annual_cost=float(annual_cost) if annual_cost is not None else None,
        copays=copays,
        approved_indications=tuple(
            part.strip()
            for part in str(indications or "").split(INDICATION_SEPARATOR)
            if part.strip()
        ),
        biosimilar_of=_clean(row.get("biosimilar_of")),
    )


class FormularyStore:
    """Read-only access to formulary snapshots by plan."""

    def __init__(self, df: pd.DataFrame):
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Formulary data is missing required columns: {missing}")

        df = df.copy()
        df["plan_id"] = df["plan_id"].astype(str)
        df["upload_id"] = df["upload_id"].astype(str)
        df["uploaded_at"] = pd.to_datetime(df["uploaded_at"], utc=True)
        df = df[df["tier"].notna() & df["drug_name"].notna()]
        self._df = df

    @classmethod
    def from_csv(cls, path) -> "FormularyStore":
        df = pd.read_csv(path, dtype={"plan_id": str, "upload_id": str})
        logger.info("Loaded formulary CSV %s (%d rows)", path, len(df))
        return cls(df)

    def latest_snapshot(self, plan_id: str) -> list[FormularyDrug]:
        """
        Drugs from the most recent upload for plan_id, sorted by tier, PA, cost.
        Raises PlanNotFoundError when the plan has no uploads.
        """
        rows = self._df[self._df["plan_id"] == str(plan_id)]
        if rows.empty:
            raise PlanNotFoundError(plan_id)

        latest_upload = rows.loc[rows["uploaded_at"].idxmax(), "upload_id"]
        snapshot = rows[rows["upload_id"] == latest_upload]
        drugs = sorted(
            (_row_to_drug(r) for r in snapshot.to_dict(orient="records")),
            key=formulary_sort_key,
        )
        logger.info(
            "Formulary for plan %s: upload %s, %d drugs",
            plan_id,
            latest_upload,
            len(drugs),
        )
        return drugs


def find_current_drug(drugs: list[FormularyDrug], therapy: Optional[CurrentTherapy]) -> Optional[FormularyDrug]:
    """
    Locate the patient's current drug in a formulary snapshot.
    Exact brand match first, then generic match (equal, or a suffixed
    biosimilar of the same generic).
    """
    if therapy is None:
        return None

    brand = therapy.drug_name.strip().lower()
    for drug in drugs:
        if drug.drug_name.strip().lower() == brand:
            return drug

    generic = (therapy.generic_name or normalize_to_generic(therapy.drug_name) or "").strip().lower()
    if not generic:
        return None
    generics = [(drug, (drug.generic_name or "").strip().lower()) for drug in drugs]
    for drug, candidate in generics:
        if candidate == generic:
            return drug
    for drug, candidate in generics:
        if candidate.startswith(f"{generic}-"):
            return drug
    return None


@lru_cache(maxsize=1)
def get_default_store() -> FormularyStore:
    """Store backed by FORMULARY_CSV, or the packaged sample formulary."""
    path = os.getenv("FORMULARY_CSV") or DEFAULT_FORMULARY_CSV
    return FormularyStore.from_csv(path)
