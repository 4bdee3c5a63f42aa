import logging
from collections import Counter, deque
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from climate_credit.core.config import Settings, settings
from climate_credit.core.errors import AccessDenied, ClimateCreditError, ErrorKind
from climate_credit.core.logging_config import configure_logging
from climate_credit.core.policy import get_risk_policy
from climate_credit.schemas.ai import GatewayFailure
from climate_credit.schemas.assessment import (
    AssessmentStatus,
    ClientInput,
    LoanInput,
    LocationInput,
    Officer,
    SupplementalContext,
)
from climate_credit.schemas.risk import RecommendationType
from climate_credit.services.ai_gateway import AIGateway
from climate_credit.services.climate_fetcher import ClimateFetcher
from climate_credit.services.orchestrator import AssessmentOrchestrator
from climate_credit.services.repository import InMemoryAssessmentRepository

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

STATUS_BY_KIND = {
    ErrorKind.INVALID_LOCATION: 400,
    ErrorKind.UNKNOWN_LOAN_PURPOSE: 400,
    ErrorKind.INVALID_DECISION: 400,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.ASSESSMENT_NOT_FOUND: 404,
    ErrorKind.DECISION_CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM_TIMEOUT: 502,
    ErrorKind.UPSTREAM_ERROR: 502,
    ErrorKind.MALFORMED_RESPONSE: 502,
    ErrorKind.NOT_CONFIGURED: 503,
    ErrorKind.INVALID_KEY: 503,
    ErrorKind.INVALID_POLICY: 503,
}


# --- METRICS COLLECTOR ---
class MetricsCollector:
    """In-memory record of recent operations"""
    def __init__(self, max_size=1000):
        self.events = deque(maxlen=max_size)

    def record(self, operation: str, success: bool, **details):
        self.events.append({
            "operation": operation,
            "success": success,
            **details,
            "timestamp": datetime.now().isoformat(),
        })

    def get_stats(self) -> dict:
        if not self.events:
            return {
                "message": "No data yet.",
                "total_operations": 0,
            }

        total = len(self.events)
        successful = sum(1 for e in self.events if e["success"])
        ai_events = [e for e in self.events if e.get("provider") or e.get("reason")]

        return {
            "total_operations": total,
            "successful_operations": successful,
            "success_rate": f"{(successful/total)*100:.1f}%",
            "by_operation": dict(Counter(e["operation"] for e in self.events)),
            "recommendations": dict(Counter(e["recommendation"] for e in self.events if e.get("recommendation"))),
            "providers": dict(Counter(e["provider"] for e in ai_events if e.get("provider"))),
            "ai_failures": dict(Counter(e["reason"] for e in ai_events if e.get("reason"))),
            "recent_operations": list(self.events)[-10:],
        }


# --- REQUEST MODELS ---
class CreateAssessmentRequest(BaseModel):
    location: LocationInput
    loan: LoanInput
    client: ClientInput = Field(default_factory=ClientInput)


class DecisionRequest(BaseModel):
    decision: str = Field(..., description="approved, rejected or deferred")
    notes: Optional[str] = None


class ExtractRequest(BaseModel):
    transcript: str = Field(..., description="Loan officer / client conversation")


def build_orchestrator(config: Optional[Settings] = None) -> AssessmentOrchestrator:
    config = config or settings
    policy = get_risk_policy(config.RISK_POLICY_PATH)
    return AssessmentOrchestrator(
        policy=policy,
        fetcher=ClimateFetcher(policy, config),
        repository=InMemoryAssessmentRepository(),
        gateway=AIGateway(config=config),
    )


def get_orchestrator(request: Request) -> AssessmentOrchestrator:
    return request.app.state.orchestrator


def get_metrics(request: Request) -> MetricsCollector:
    return request.app.state.metrics


def get_officer(
    x_mfi_id: str = Header(..., description="Tenant (MFI) identifier"),
    x_officer_id: str = Header(..., description="Loan officer identifier"),
    x_officer_name: str = Header(..., description="Loan officer display name"),
    x_mfi_name: Optional[str] = Header(default=None),
) -> Officer:
    return Officer(mfi_id=x_mfi_id, mfi_name=x_mfi_name, officer_id=x_officer_id, name=x_officer_name)


def failure_response(failure: GatewayFailure) -> JSONResponse:
    body = failure.model_dump(mode="json")
    body.update(error=failure.reason.value, kind=failure.reason.value, category=failure.category.value)
    return JSONResponse(status_code=STATUS_BY_KIND[failure.reason], content=body)


def create_app(
    orchestrator: Optional[AssessmentOrchestrator] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    config = config or settings

    # --- LIFESPAN ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.LOG_LEVEL)
        engine = app.state.orchestrator
        ai_status = engine.gateway.status()
        logger.info("Risk policy %s loaded", engine.policy.version)
        if ai_status["configured"]:
            logger.info(
                "AI providers (in order): %s",
                ", ".join(f"{p['name']}:{p['model']}" for p in ai_status["providers"]),
            )
        else:
            logger.warning("No AI provider configured; extraction and analysis will report NotConfigured")
        yield
        logger.info("Shutting down (%s operations recorded)", len(app.state.metrics.events))

    app = FastAPI(
        title=config.PROJECT_NAME,
        description="Climate-adjusted credit risk assessments for microfinance loan officers",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator or build_orchestrator(config)
    app.state.metrics = MetricsCollector()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClimateCreditError)
    async def climate_credit_error_handler(request: Request, exc: ClimateCreditError):
        return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500), content=exc.to_dict())

    # --- API ENDPOINTS ---

    @app.get("/health")
    def health_check(engine: AssessmentOrchestrator = Depends(get_orchestrator)):
        ai_status = engine.gateway.status()
        return {
            "status": "healthy" if ai_status["configured"] else "degraded",
            "version": API_VERSION,
            "policy_version": engine.policy.version,
            "climate_live_enabled": engine.fetcher.live_enabled,
            "ai": ai_status,
        }

    @app.get("/v1/policy")
    def get_policy(engine: AssessmentOrchestrator = Depends(get_orchestrator)):
        return engine.policy.model_dump(mode="json")

    @app.post("/v1/assessments", status_code=201)
    def create_assessment(
        body: CreateAssessmentRequest,
        officer: Officer = Depends(get_officer),
        engine: AssessmentOrchestrator = Depends(get_orchestrator),
        metrics: MetricsCollector = Depends(get_metrics),
    ):
        try:
            assessment = engine.create_assessment(body.location, body.loan, body.client, officer)
        except ClimateCreditError as e:
            metrics.record("create_assessment", False, error=e.kind.value)
            raise
        metrics.record(
            "create_assessment",
            True,
            recommendation=assessment.recommendation.type.value,
            climate_source=assessment.climate_data.source.value,
        )
        return assessment.model_dump(mode="json")

    @app.get("/v1/assessments/{assessment_id}")
    def get_assessment(
        assessment_id: str,
        officer: Officer = Depends(get_officer),
        engine: AssessmentOrchestrator = Depends(get_orchestrator),
    ):
        return engine.get(assessment_id, officer).model_dump(mode="json")

    @app.patch("/v1/assessments/{assessment_id}/decision")
    def record_decision(
        assessment_id: str,
        body: DecisionRequest,
        officer: Officer = Depends(get_officer),
        engine: AssessmentOrchestrator = Depends(get_orchestrator),
        metrics: MetricsCollector = Depends(get_metrics),
    ):
        assessment = engine.record_decision(assessment_id, body.decision, body.notes, officer)
        metrics.record("record_decision", True, decision=assessment.status.value)
        return assessment.model_dump(mode="json")

    @app.post("/v1/assessments/{assessment_id}/analyze")
    def analyze_assessment(
        assessment_id: str,
        body: Optional[SupplementalContext] = None,
        officer: Officer = Depends(get_officer),
        engine: AssessmentOrchestrator = Depends(get_orchestrator),
        metrics: MetricsCollector = Depends(get_metrics),
    ):
        result = engine.analyze(assessment_id, body, officer)
        if isinstance(result, GatewayFailure):
            metrics.record("analyze", False, reason=result.reason.value, attempts=len(result.attempts))
            return failure_response(result)
        metrics.record("analyze", True, provider=result.provider)
        return result.model_dump(mode="json")

    @app.post("/v1/ai/extract")
    def extract_from_transcript(
        body: ExtractRequest,
        officer: Officer = Depends(get_officer),
        engine: AssessmentOrchestrator = Depends(get_orchestrator),
        metrics: MetricsCollector = Depends(get_metrics),
    ):
        result = engine.extract_from_transcript(body.transcript)
        if isinstance(result, GatewayFailure):
            metrics.record("extract", False, reason=result.reason.value, attempts=len(result.attempts))
            return failure_response(result)
        metrics.record("extract", True, provider=result.provider, quality=result.quality_level.value)
        return result.model_dump(mode="json")

    @app.get("/v1/mfi/{mfi_id}/assessments")
    def list_assessments(
        mfi_id: str,
        status: Optional[AssessmentStatus] = None,
        recommendation: Optional[RecommendationType] = None,
        min_risk: Optional[int] = Query(default=None, ge=0, le=100),
        max_risk: Optional[int] = Query(default=None, ge=0, le=100),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
        officer: Officer = Depends(get_officer),
        engine: AssessmentOrchestrator = Depends(get_orchestrator),
    ):
        if officer.mfi_id != mfi_id:
            raise AccessDenied("Access denied")
        result = engine.list_assessments(
            mfi_id,
            status=status,
            recommendation=recommendation,
            min_risk=min_risk,
            max_risk=max_risk,
            page=page,
            limit=limit,
        )
        return result.model_dump(mode="json")

    @app.get("/v1/metrics")
    def metrics_stats(metrics: MetricsCollector = Depends(get_metrics)):
        """View aggregated operation metrics"""
        return metrics.get_stats()

    return app


app = create_app()


def serve():
    uvicorn.run("climate_credit.main:app", host=settings.HOST, port=settings.PORT)
