"""
FastAPI Backend — Biologic Therapy Decision Engine.

This is the main entry point for the backend. It exposes the /recommend
endpoint that accepts a patient assessment, runs the LangGraph decision
pipeline, and returns the quadrant, up to three ranked recommendations, the
safe formulary reference and the contraindicated-drugs view.

The Safe Gate runs inside the pipeline before the ranking oracle sees any
data — the oracle only operates on the screened candidate view.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

from biologic_agent.errors import InputError, OracleError, PlanNotFoundError
from biologic_agent.llm import describe_llm
from biologic_agent.models import Contraindication, DecisionResult, FormularyDrug, PatientTherapyState
from biologic_agent.orchestrator import DecisionOrchestrator

# ── Logging ─────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-30s | %(levelname)-7s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

ORACLE_RETRY_AFTER_SECONDS = "30"


# ── Lifespan ────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Biologic Decision Engine starting up")
    logger.info("ORACLE_PROVIDER=%s", os.getenv("ORACLE_PROVIDER", "llm"))
    logger.info("LLM=%s", describe_llm())
    logger.info("EVIDENCE_API_URL=%s", os.getenv("EVIDENCE_API_URL", "NOT SET"))
    app.state.orchestrator = DecisionOrchestrator.from_env()
    yield
    logger.info("Biologic Decision Engine shutting down")


# ── App ─────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Biologic Decision Engine",
    version="0.1.0",
    description="LangGraph-based decision engine for biologic therapy optimization",
    lifespan=lifespan,
)

# CORS: open for local front-ends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request Models ──────────────────────────────────────────────────────────
class RecommendRequest(BaseModel):
    """One patient assessment submitted for a decision."""

    patient: PatientTherapyState
    contraindications: list[Contraindication] = Field(
        default_factory=list, description="Active contraindication conditions"
    )
    plan_id: str = Field(..., min_length=1, description="Insurance plan whose formulary applies")


# ── Endpoints ───────────────────────────────────────────────────────────────
@app.post("/recommend", response_model=DecisionResult)
async def recommend(body: RecommendRequest, request: Request):
    """
    Run the decision pipeline for one assessment.

    Error mapping:
        unknown plan            → 404
        invalid input           → 422
        oracle failure          → 503 with Retry-After (the run may be retried)
        anything else           → 500
    """
    logger.info(
        "Received recommendation request for patient=%s plan=%s",
        body.patient.patient_id or "anonymous",
        body.plan_id,
    )
    orchestrator: DecisionOrchestrator = request.app.state.orchestrator

    try:
        return await orchestrator.adecide(body.patient, body.contraindications, body.plan_id)
    except PlanNotFoundError as exc:
        logger.error("Plan error: %s", exc)
        raise HTTPException(status_code=404, detail=str(exc))
    except InputError as exc:
        logger.error("Input error: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc))
    except OracleError as exc:
        logger.error("Oracle error: %s", exc)
        raise HTTPException(
            status_code=503,
            detail=f"Ranking oracle unavailable: {exc}",
            headers={"Retry-After": ORACLE_RETRY_AFTER_SECONDS},
        )
    except Exception:
        logger.exception("Unexpected decision error")
        raise HTTPException(status_code=500, detail="Internal decision engine error")


@app.get("/formulary/{plan_id}", response_model=list[FormularyDrug])
async def formulary(plan_id: str, request: Request):
    """Latest formulary snapshot for a plan, in tier/PA/cost order."""
    orchestrator: DecisionOrchestrator = request.app.state.orchestrator
    try:
        return orchestrator.formulary_store.latest_snapshot(plan_id)
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "biologic-decision-engine",
        "oracle_provider": os.getenv("ORACLE_PROVIDER", "llm"),
        "llm": describe_llm(),
    }
