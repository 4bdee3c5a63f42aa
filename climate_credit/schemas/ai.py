# climate_credit/schemas/ai.py

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from climate_credit.core.errors import ErrorCategory, ErrorKind


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class ExtractedLoanFields(BaseModel):
    """Loan application fields a language model may recover from a conversation."""

    model_config = ConfigDict(extra="ignore")

    client_name: Optional[str] = None
    client_age: Optional[int] = None
    project_type: Optional[str] = None
    crop_type: Optional[str] = None
    loan_amount: Optional[float] = None
    loan_purpose: Optional[str] = None
    loan_term: Optional[int] = Field(default=None, description="Months")
    loan_type: Optional[str] = None
    existing_loans: Optional[int] = None
    repayment_history: Optional[float] = Field(default=None, description="Percent paid on time, 0-100")
    monthly_income: Optional[float] = None
    collateral_type: Optional[str] = None
    business_experience: Optional[float] = Field(default=None, description="Years")
    land_ownership: Optional[str] = None
    irrigation_access: Optional[str] = None
    insurance_status: Optional[str] = None


EXTRACTION_FIELDS: List[str] = list(ExtractedLoanFields.model_fields)


class ExtractionPayload(BaseModel):
    """Shape of the JSON object the extraction prompt asks the model for."""

    model_config = ConfigDict(extra="ignore")

    data: ExtractedLoanFields
    confidence: Dict[str, ConfidenceLevel] = Field(default_factory=dict, validate_default=True)
    summary: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, v: Any) -> Dict[str, str]:
        if not isinstance(v, dict):
            raise ValueError("confidence must be an object keyed by field name")
        normalized = {}
        for field_name in EXTRACTION_FIELDS:
            raw = v.get(field_name) or "low"
            level = str(getattr(raw, "value", raw)).strip().lower()
            normalized[field_name] = level if level in ("high", "medium", "low") else "low"
        return normalized

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> str:
        return "" if v is None else str(v)


class ExtractionResult(BaseModel):
    success: Literal[True] = True
    provider: str
    model: str
    fields: ExtractedLoanFields
    confidence: Dict[str, ConfidenceLevel]
    summary: str
    quality_score: float = Field(..., ge=0.0, le=1.0)
    quality_level: ConfidenceLevel
    fields_extracted: int
    total_fields: int
    issues: List[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    success: Literal[True] = True
    text: str
    provider: str
    model: str
    generated_at: str


class ProviderAttempt(BaseModel):
    provider: str
    reason: ErrorKind
    message: str


class GatewayFailure(BaseModel):
    """Tagged failure returned (never raised) by an AI capability call."""

    success: Literal[False] = False
    reason: ErrorKind
    message: str
    attempts: List[ProviderAttempt] = Field(default_factory=list)

    @property
    def category(self) -> ErrorCategory:
        return self.reason.category
