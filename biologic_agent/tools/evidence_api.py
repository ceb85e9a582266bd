"""
HTTP client for the clinical evidence service.

This is the only file that touches the evidence service boundary. If its
request/response schema changes, update ONLY this file.

Endpoint:
    POST {EVIDENCE_API_URL}

Request payload:
    {
        "drug":          "adalimumab",
        "diagnosis":     "psoriasis",
        "finding_types": ["DOSE_REDUCTION", "EFFICACY", "INTERVAL_EXTENSION", "SAFETY"],
        "reviewed_only": true,
        "limit":         15
    }

Response:
    {
        "findings": [
            {
                "title":        "CONDOR trial ...",
                "citation":     "Atalay S, et al. JAMA Dermatol. 2020",
                "excerpt":      "Extending adalimumab to every 3 weeks ...",
                "finding_type": "DOSE_REDUCTION",
                "reviewed":     true
            },
            ...
        ]
    }

Only human-reviewed findings are returned to the engine.
"""

import asyncio
import logging
import os
from typing import Optional

import httpx
from pydantic import ValidationError

from biologic_agent.models import EvidenceFinding

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 15.0
RETRY_DELAY_503 = 2.0
DEFAULT_LIMIT = 15

DOSE_REDUCTION_FINDING_TYPES = frozenset({"DOSE_REDUCTION", "INTERVAL_EXTENSION", "SAFETY", "EFFICACY"})


class HttpEvidenceRetriever:
    """Async client for the evidence service at EVIDENCE_API_URL."""

    def __init__(self, url: Optional[str] = None, timeout: float = TIMEOUT_SECONDS):
        self.url = url or os.getenv("EVIDENCE_API_URL")
        self.timeout = timeout

    async def search(
        self,
        drug_name: str,
        diagnosis: str,
        finding_types=DOSE_REDUCTION_FINDING_TYPES,
        limit: int = DEFAULT_LIMIT,
    ) -> list[EvidenceFinding]:
        """
        Reviewed findings for (drug, diagnosis), at most `limit`.

        Error handling:
            - 503       → retries once after 2 s
            - other 4xx/5xx, network errors → raised to the caller
        """
        if not self.url:
            raise ValueError("EVIDENCE_API_URL environment variable not set")

        payload = {
            "drug": drug_name,
            "diagnosis": diagnosis,
            "finding_types": sorted(finding_types),
            "reviewed_only": True,
            "limit": limit,
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.url, json=payload)
            except httpx.RequestError as exc:
                logger.error("Evidence request failed for %s: %s", drug_name, exc)
                raise

            # Retry once on 503 (index warming up)
            if response.status_code == 503:
                logger.warning(
                    "Evidence service returned 503 for %s — retrying in %.1fs",
                    drug_name,
                    RETRY_DELAY_503,
                )
                await asyncio.sleep(RETRY_DELAY_503)
                response = await client.post(self.url, json=payload)

            if response.status_code != 200:
                logger.error(
                    "Evidence service error %d for %s: %s",
                    response.status_code,
                    drug_name,
                    response.text,
                )
                response.raise_for_status()

            data = response.json()

        items = data.get("findings", []) if isinstance(data, dict) else data
        findings = []
        for item in items or []:
            if not isinstance(item, dict) or item.get("reviewed") is False:
                continue
            try:
                findings.append(EvidenceFinding.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed evidence item for %s: %s", drug_name, item)

        logger.info("Evidence for %s / %s: %d finding(s)", drug_name, diagnosis, len(findings))
        return findings[:limit]


def get_evidence_retriever() -> Optional[HttpEvidenceRetriever]:
    """Retriever for EVIDENCE_API_URL, or None when the service is not configured."""
    if not os.getenv("EVIDENCE_API_URL"):
        logger.warning("EVIDENCE_API_URL not set — decisions will run without clinical evidence")
        return None
    return HttpEvidenceRetriever()
