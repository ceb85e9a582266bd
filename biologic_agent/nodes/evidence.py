"""
Evidence Node — retrieves reviewed clinical findings for the current drug.

Evidence only supports dose-reduction decisions, so it is fetched only for a
patient on therapy in a quadrant that permits dose reduction. The brand and
generic queries are independent and run concurrently; their results are
concatenated, deduplicated by citation and capped.

A failed query is logged and contributes nothing. No evidence is a valid
outcome.
"""

import asyncio
import logging

from biologic_agent.config import EngineConfig
from biologic_agent.models import DOSE_REDUCTION_QUADRANTS
from biologic_agent.state import DecisionState

logger = logging.getLogger(__name__)


def _query_names(therapy, current_drug) -> list[str]:
    names = [therapy.drug_name]
    generic = therapy.generic_name or (current_drug.generic_name if current_drug else None)
    if generic and generic.lower() != therapy.drug_name.lower():
        names.append(generic)
    return names


def run(state: DecisionState, retriever, engine_config: EngineConfig) -> dict:
    patient = state["patient"]
    therapy = patient.current_therapy
    quadrant = state["classification"].quadrant

    if retriever is None or therapy is None or quadrant not in DOSE_REDUCTION_QUADRANTS:
        logger.info("Evidence retrieval skipped (quadrant=%s)", quadrant.value)
        return {"evidence": []}

    names = _query_names(therapy, state.get("current_drug"))
    limit = engine_config.evidence_limit

    async def run_all():
        tasks = [retriever.search(name, patient.diagnosis, limit=limit) for name in names]
        return await asyncio.gather(*tasks, return_exceptions=True)

    # LangGraph may already be running an event loop (ainvoke / FastAPI)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            results_list = pool.submit(lambda: asyncio.run(run_all())).result()
    else:
        results_list = asyncio.run(run_all())

    evidence = []
    seen_citations = set()
    for name, result in zip(names, results_list):
        if isinstance(result, Exception):
            logger.error("Evidence query failed for %s: %s", name, result)
            continue
        for finding in result or []:
            key = (finding.citation or finding.title).strip().lower()
            if key in seen_citations:
                continue
            seen_citations.add(key)
            evidence.append(finding)

    evidence = evidence[:limit]
    logger.info("Evidence: %d finding(s) for %s", len(evidence), names)
    return {"evidence": evidence}
