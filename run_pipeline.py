"""
Quick script to run the decision pipeline on a test assessment.

Usage:
    python run_pipeline.py [assessment]            # from tests/fixtures/assessments.json
    python run_pipeline.py --json path/to/file.json # from a JSON file directly

Examples:
    python run_pipeline.py stable_suboptimal
    python run_pipeline.py not_on_biologic
    ORACLE_PROVIDER=rules python run_pipeline.py stable_optimal

An assessment file holds {"patient": {...}, "contraindications": [...], "plan_id": "..."}.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from biologic_agent.orchestrator import DecisionOrchestrator

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-30s | %(levelname)-7s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def load_assessment_fixture(name: str = "stable_suboptimal") -> dict:
    """Load an assessment fixture from tests/fixtures/assessments.json"""
    fixtures_file = Path(__file__).parent / "tests" / "fixtures" / "assessments.json"
    with open(fixtures_file) as f:
        fixtures = json.load(f)

    if name not in fixtures:
        available = [k for k in fixtures.keys() if not k.startswith("_")]
        logger.error("Assessment '%s' not found. Available: %s", name, available)
        sys.exit(1)

    assessment = fixtures[name]
    if "description" in assessment:
        logger.info("Assessment: %s", assessment["description"])
        assessment = {k: v for k, v in assessment.items() if k != "description"}

    return assessment


def load_assessment_json(json_path: str) -> dict:
    """Load an assessment directly from a JSON file."""
    path = Path(json_path)
    if not path.exists():
        logger.error("JSON file not found: %s", json_path)
        sys.exit(1)
    with open(path) as f:
        data = json.load(f)
    # Strip meta-only keys
    return {k: v for k, v in data.items() if not k.startswith("_")}


async def run_pipeline(assessment: dict):
    """Run the decision pipeline for one assessment."""

    logger.info("=" * 80)
    logger.info("STARTING PIPELINE RUN")
    logger.info("=" * 80)
    logger.info("ORACLE_PROVIDER: %s", os.getenv("ORACLE_PROVIDER", "llm"))
    logger.info("EVIDENCE_API_URL: %s", os.getenv("EVIDENCE_API_URL", "NOT SET"))
    logger.info("LANGCHAIN_TRACING_V2: %s", os.getenv("LANGCHAIN_TRACING_V2", "false"))
    logger.info("=" * 80)

    orchestrator = DecisionOrchestrator.from_env()

    try:
        result = await orchestrator.adecide(
            assessment.get("patient"),
            assessment.get("contraindications", []),
            assessment.get("plan_id"),
        )
    except Exception:
        logger.exception("Pipeline failed with error")
        raise

    logger.info("=" * 80)
    logger.info("PIPELINE COMPLETED")
    logger.info("=" * 80)
    logger.info("Quadrant: %s (current tier %s, lowest tier %s)",
                result.quadrant.value, result.current_tier, result.lowest_tier)
    logger.info("Dose reduction level: %d%%", result.dose_reduction_level)
    for rec in result.recommendations:
        logger.info("  #%d %-22s %-12s %s %s | savings/yr: %s",
                    rec.rank, rec.type.value, rec.drug_name, rec.dose or "", rec.frequency or "",
                    rec.cost.annual_savings)
    logger.info("Safe formulary: %s", [d.drug_name for d in result.formulary_reference])
    logger.info("Contraindicated: %s",
                [(c.drug.drug_name, c.severity.value) for c in result.contraindicated_drugs])
    logger.info("=" * 80)

    return result


def main():
    """Main entry point"""
    args = sys.argv[1:]

    if args and args[0] == "--json":
        if len(args) < 2:
            logger.error("Usage: python run_pipeline.py --json path/to/file.json")
            sys.exit(1)
        assessment = load_assessment_json(args[1])
        logger.info("Loaded assessment from %s", args[1])
    else:
        name = args[0] if args else "stable_suboptimal"
        logger.info("Loading assessment fixture: %s", name)
        assessment = load_assessment_fixture(name)

    result = asyncio.run(run_pipeline(assessment))
    print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
