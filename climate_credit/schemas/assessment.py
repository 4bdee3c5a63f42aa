# climate_credit/schemas/assessment.py

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from climate_credit.schemas.climate import ClimateSnapshot
from climate_credit.schemas.risk import (
    ClimateRiskResult,
    DefaultProbability,
    Recommendation,
)


class AssessmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEFERRED = "deferred"


TERMINAL_STATUSES = (
    AssessmentStatus.APPROVED,
    AssessmentStatus.REJECTED,
    AssessmentStatus.DEFERRED,
)


class Officer(BaseModel):
    """Loan officer attribution; identity is issued outside this service."""

    mfi_id: str
    mfi_name: Optional[str] = None
    officer_id: str
    name: str


# --- Inputs ---

class LocationInput(BaseModel):
    # Range checks belong to the climate fetcher so they surface as InvalidLocation.
    latitude: float
    longitude: float
    location_name: Optional[str] = None


class LoanInput(BaseModel):
    amount: float = Field(..., gt=0, description="Requested loan amount")
    purpose: str = Field(..., min_length=1, description="Loan purpose, e.g. agriculture")
    crop_type: Optional[str] = None


class ClientInput(BaseModel):
    age: Optional[int] = Field(default=None, ge=0, le=120)
    existing_loans: int = Field(default=0, ge=0)
    repayment_history: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class SupplementalContext(BaseModel):
    """Optional context the officer can add before asking for an AI narrative."""

    client_name: Optional[str] = None
    loan_term: Optional[int] = None
    loan_type: Optional[str] = None
    monthly_income: Optional[float] = None
    collateral_type: Optional[str] = None
    business_experience: Optional[float] = None
    land_ownership: Optional[str] = None
    irrigation_access: Optional[str] = None
    insurance_status: Optional[str] = None
    notes: Optional[str] = None


# --- Aggregate ---

class AssessmentLocation(BaseModel):
    latitude: float
    longitude: float
    name: str
    country: Optional[str] = None


class LoanDetails(BaseModel):
    amount: float
    purpose: str
    crop_type: Optional[str] = None


class ClientInfo(BaseModel):
    age: Optional[int] = None
    existing_loans: int = 0
    repayment_history: Optional[float] = None


class AssessmentResults(BaseModel):
    climate_risk: ClimateRiskResult
    default_probability: DefaultProbability


class DecisionRecord(BaseModel):
    action: AssessmentStatus
    notes: str = ""
    decided_by: str
    decided_at: str


class AIAnalysis(BaseModel):
    text: str
    provider: str
    model: str
    generated_at: str
    generated_by: Optional[str] = None


class Assessment(BaseModel):
    id: str
    mfi_id: str
    mfi_name: Optional[str] = None
    loan_officer_id: str
    loan_officer_name: str

    location: AssessmentLocation
    loan_details: LoanDetails
    client_info: ClientInfo
    climate_data: ClimateSnapshot
    results: AssessmentResults
    recommendation: Recommendation

    status: AssessmentStatus = AssessmentStatus.PENDING
    decision: Optional[DecisionRecord] = None
    audit_trail: List[DecisionRecord] = Field(default_factory=list)
    ai_analysis: Optional[AIAnalysis] = None

    created_at: str
    updated_at: str

    @property
    def climate_risk_score(self) -> int:
        return self.results.climate_risk.score


class AssessmentPage(BaseModel):
    total: int
    page: int
    limit: int
    assessments: List[Assessment]
