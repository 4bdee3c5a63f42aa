# climate_credit/schemas/risk.py

from enum import Enum
from typing import List

from pydantic import BaseModel, Field, computed_field, model_validator

from climate_credit.schemas.climate import HazardType


class RiskFactor(BaseModel):
    type: HazardType
    label: str
    value: float = Field(..., ge=0.0, le=1.0)
    weight: float = Field(..., ge=0.0, le=1.0)

    @computed_field
    @property
    def contribution(self) -> float:
        return round(self.value * self.weight, 6)


class ClimateRiskResult(BaseModel):
    score: int = Field(..., ge=0, le=100, description="Climate-risk score on a 0-100 scale")
    factors: List[RiskFactor]
    seasonal_multiplier: float = Field(..., ge=0.0)
    active_seasons: List[str] = Field(default_factory=list)
    weight_table: str = Field(..., description="Which weight table was used, e.g. 'agriculture/rice'")


class BorrowerProfile(BaseModel):
    """Borrower attributes feeding the default model (already defaulted)."""

    age: int = Field(default=35, ge=0)
    existing_loans: int = Field(default=0, ge=0)
    repayment_history: float = Field(default=95.0, ge=0.0, le=100.0)


class DefaultProbability(BaseModel):
    baseline: float = Field(..., ge=0.0, le=1.0)
    unadjusted: float = Field(..., ge=0.0, le=1.0)
    adjusted: float = Field(..., ge=0.0, le=1.0)

    @computed_field
    @property
    def reduction(self) -> float:
        return self.baseline - self.adjusted

    @model_validator(mode="after")
    def check_mitigation_never_increases_risk(self):
        if self.adjusted > self.unadjusted:
            raise ValueError("adjusted default probability cannot exceed the unadjusted one")
        return self


class RecommendationType(str, Enum):
    APPROVE = "approve"
    CAUTION = "caution"
    DEFER = "defer"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {
    RecommendationType.APPROVE: 0,
    RecommendationType.CAUTION: 1,
    RecommendationType.DEFER: 2,
}

RECOMMENDATION_LABELS = {
    RecommendationType.APPROVE: "Approve with climate-adaptive terms",
    RecommendationType.CAUTION: "Approve with enhanced monitoring",
    RecommendationType.DEFER: "High climate risk - review required",
}


class Product(BaseModel):
    name: str
    description: str


class Recommendation(BaseModel):
    type: RecommendationType
    label: str
    products: List[Product] = Field(default_factory=list)
