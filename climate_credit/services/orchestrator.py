# climate_credit/services/orchestrator.py

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from climate_credit.core.errors import (
    AccessDenied,
    AssessmentNotFound,
    ClimateCreditError,
    DecisionConflict,
    ErrorKind,
    InvalidDecision,
)
from climate_credit.core.policy import RiskPolicy
from climate_credit.schemas.ai import AnalysisResult, ExtractionResult, GatewayFailure
from climate_credit.schemas.assessment import (
    AIAnalysis,
    Assessment,
    AssessmentLocation,
    AssessmentPage,
    AssessmentResults,
    AssessmentStatus,
    ClientInfo,
    ClientInput,
    DecisionRecord,
    LoanDetails,
    LoanInput,
    LocationInput,
    Officer,
    SupplementalContext,
)
from climate_credit.schemas.risk import BorrowerProfile, RecommendationType
from climate_credit.services.ai_gateway import AIGateway
from climate_credit.services.climate_fetcher import ClimateFetcher
from climate_credit.services.default_model import DefaultProbabilityModel
from climate_credit.services.draft import ApplicationDraft, merge_extraction
from climate_credit.services.recommendation import RecommendationGenerator
from climate_credit.services.repository import AssessmentRepository
from climate_credit.services.risk_scorer import RiskScorer
from climate_credit.workflows.underwriting_prompts import build_analysis_prompt

logger = logging.getLogger(__name__)

# Accepted decision values; the short forms match the recommendation types.
DECISION_ALIASES = {
    "approved": AssessmentStatus.APPROVED,
    "approve": AssessmentStatus.APPROVED,
    "rejected": AssessmentStatus.REJECTED,
    "reject": AssessmentStatus.REJECTED,
    "deferred": AssessmentStatus.DEFERRED,
    "defer": AssessmentStatus.DEFERRED,
}

MAX_PAGE_SIZE = 100


def parse_decision(decision: Union[str, AssessmentStatus]) -> AssessmentStatus:
    key = decision.value if isinstance(decision, AssessmentStatus) else str(decision or "")
    status = DECISION_ALIASES.get(key.strip().lower())
    if status is None:
        raise InvalidDecision(
            f"Invalid decision '{decision}'. Expected one of: approved, rejected, deferred"
        )
    return status


class AssessmentOrchestrator:
    """
    Runs the assessment pipeline and owns the assessment lifecycle.

    location -> climate snapshot -> risk score -> default probability -> recommendation
    """

    def __init__(
        self,
        policy: RiskPolicy,
        fetcher: ClimateFetcher,
        repository: AssessmentRepository,
        gateway: AIGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.policy = policy
        self.fetcher = fetcher
        self.repository = repository
        self.gateway = gateway
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.scorer = RiskScorer(policy)
        self.default_model = DefaultProbabilityModel(policy)
        self.recommender = RecommendationGenerator(policy)

    # ------------------------------------------------------------------
    # Assessment pipeline
    # ------------------------------------------------------------------
    def create_assessment(
        self,
        location: LocationInput,
        loan: LoanInput,
        client: ClientInput,
        officer: Officer,
    ) -> Assessment:
        now = self.clock()

        snapshot = self.fetcher.fetch(location.latitude, location.longitude)
        risk = self.scorer.score(snapshot, loan.purpose, loan.crop_type, as_of=now.date())

        borrower = BorrowerProfile(
            **{
                k: v
                for k, v in client.model_dump().items()
                if v is not None
            }
        )
        probability = self.default_model.estimate(risk.score, borrower)
        recommendation = self.recommender.recommend(risk, probability, loan.purpose, loan.crop_type)

        timestamp = now.isoformat()
        assessment = Assessment(
            id=f"assess_{uuid.uuid4().hex[:12]}",
            mfi_id=officer.mfi_id,
            mfi_name=officer.mfi_name,
            loan_officer_id=officer.officer_id,
            loan_officer_name=officer.name,
            location=AssessmentLocation(
                latitude=snapshot.latitude,
                longitude=snapshot.longitude,
                name=location.location_name or snapshot.location.region,
                country=snapshot.location.country,
            ),
            loan_details=LoanDetails(**loan.model_dump()),
            client_info=ClientInfo(**client.model_dump()),
            climate_data=snapshot,
            results=AssessmentResults(climate_risk=risk, default_probability=probability),
            recommendation=recommendation,
            created_at=timestamp,
            updated_at=timestamp,
        )
        self.repository.put(assessment)

        logger.info(
            "Assessment %s created for %s: score %d (%s, %s data), adjusted default %.1f%%",
            assessment.id, officer.mfi_id, risk.score, recommendation.type.value,
            snapshot.source.value, probability.adjusted * 100,
        )
        return assessment

    def create_from_draft(self, draft: ApplicationDraft, officer: Officer) -> Assessment:
        location, loan, client = draft.to_inputs()
        return self.create_assessment(location, loan, client, officer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def record_decision(
        self,
        assessment_id: str,
        decision: Union[str, AssessmentStatus],
        notes: Optional[str],
        officer: Officer,
    ) -> Assessment:
        """
        pending -> approved | rejected | deferred, terminal once set.

        Re-recording the same decision overwrites the decision record and the
        last audit entry (last-write-wins); a different one is a conflict.
        """
        status = parse_decision(decision)
        assessment = self.get(assessment_id, officer)

        if assessment.status != AssessmentStatus.PENDING and assessment.status != status:
            raise DecisionConflict(
                f"Assessment {assessment_id} is already {assessment.status.value}; cannot change to {status.value}"
            )

        now = self.clock().isoformat()
        record = DecisionRecord(
            action=status,
            notes=notes or "",
            decided_by=officer.name,
            decided_at=now,
        )
        if assessment.status == status and assessment.audit_trail:
            assessment.audit_trail[-1] = record
        else:
            assessment.audit_trail.append(record)

        assessment.status = status
        assessment.decision = record
        assessment.updated_at = now
        self.repository.put(assessment)

        logger.info("Assessment %s marked %s by %s", assessment_id, status.value, officer.officer_id)
        return assessment

    # ------------------------------------------------------------------
    # AI capabilities
    # ------------------------------------------------------------------
    def extract_from_transcript(self, transcript: str) -> Union[ExtractionResult, GatewayFailure]:
        return self.gateway.extract_fields(transcript)

    def merge_extraction(self, draft: ApplicationDraft, extraction: ExtractionResult) -> ApplicationDraft:
        return merge_extraction(draft, extraction)

    def analyze(
        self,
        assessment_id: str,
        context: Optional[SupplementalContext],
        officer: Officer,
    ) -> Union[AnalysisResult, GatewayFailure]:
        assessment = self.get(assessment_id, officer)
        result = self.gateway.analyze(build_analysis_prompt(assessment, context))

        if isinstance(result, GatewayFailure):
            logger.warning("Analysis for %s failed: %s", assessment_id, result.reason.value)
            return result

        assessment.ai_analysis = AIAnalysis(
            text=result.text,
            provider=result.provider,
            model=result.model,
            generated_at=result.generated_at,
            generated_by=officer.name,
        )
        assessment.updated_at = self.clock().isoformat()
        self.repository.put(assessment)
        logger.info("Analysis attached to %s (provider %s)", assessment_id, result.provider)
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, assessment_id: str, officer: Optional[Officer] = None) -> Assessment:
        assessment = self.repository.get(assessment_id)
        if assessment is None:
            raise AssessmentNotFound(f"Assessment {assessment_id} not found")
        if officer is not None and officer.mfi_id != assessment.mfi_id:
            raise AccessDenied("Access denied")
        return assessment

    def list_assessments(
        self,
        mfi_id: str,
        status: Optional[AssessmentStatus] = None,
        recommendation: Optional[RecommendationType] = None,
        min_risk: Optional[int] = None,
        max_risk: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> AssessmentPage:
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ClimateCreditError(
                f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}",
                kind=ErrorKind.INVALID_INPUT,
            )

        def matches(a: Assessment) -> bool:
            if a.mfi_id != mfi_id:
                return False
            if status is not None and a.status != status:
                return False
            if recommendation is not None and a.recommendation.type != recommendation:
                return False
            if min_risk is not None and a.climate_risk_score < min_risk:
                return False
            if max_risk is not None and a.climate_risk_score > max_risk:
                return False
            return True

        items: List[Assessment] = sorted(
            self.repository.filter(matches),
            key=lambda a: a.created_at,
            reverse=True,
        )
        start = (page - 1) * limit
        return AssessmentPage(
            total=len(items),
            page=page,
            limit=limit,
            assessments=items[start:start + limit],
        )
