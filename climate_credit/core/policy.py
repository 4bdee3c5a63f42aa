"""Risk policy: the business constants behind scoring and recommendations.

The policy is versioned YAML data loaded once at start-up and validated
before use, so weight tables and thresholds can be tuned without a code
change.
"""
import logging
import math
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from climate_credit.core.errors import InvalidPolicy
from climate_credit.schemas.climate import HazardType
from climate_credit.schemas.risk import Product, RecommendationType

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).resolve().parent.parent / "policy" / "risk_policy.yaml"
WEIGHT_SUM_TOLERANCE = 1e-6


def normalize_key(value: str) -> str:
    """'Small Business' / 'small-business' -> 'small_business'."""
    return value.strip().lower().replace("-", "_").replace(" ", "_")


class HazardWeights(BaseModel):
    flood: float = Field(..., ge=0.0, le=1.0)
    drought: float = Field(..., ge=0.0, le=1.0)
    heatwave: float = Field(..., ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_sum(self):
        total = self.flood + self.drought + self.heatwave
        if not math.isclose(total, 1.0, abs_tol=WEIGHT_SUM_TOLERANCE):
            raise ValueError(f"hazard weights must sum to 1.0, got {total:.6f}")
        return self

    def as_mapping(self) -> Dict[HazardType, float]:
        return {
            HazardType.FLOOD: self.flood,
            HazardType.DROUGHT: self.drought,
            HazardType.HEATWAVE: self.heatwave,
        }


class PurposeWeights(BaseModel):
    default: HazardWeights
    crops: Dict[str, HazardWeights] = Field(default_factory=dict)

    @field_validator("crops", mode="before")
    @classmethod
    def normalize_crops(cls, v):
        return {normalize_key(k): w for k, w in (v or {}).items()}


class SeasonWindow(BaseModel):
    name: str
    hazard: HazardType
    lat_min: float = Field(..., ge=-90.0, le=90.0)
    lat_max: float = Field(..., ge=-90.0, le=90.0)
    lng_min: float = Field(default=-180.0, ge=-180.0, le=180.0)
    lng_max: float = Field(default=180.0, ge=-180.0, le=180.0)
    months: List[int]
    multiplier: float = Field(..., ge=1.0)

    @field_validator("months")
    @classmethod
    def check_months(cls, v: List[int]) -> List[int]:
        if not v or any(m < 1 or m > 12 for m in v):
            raise ValueError("season months must be a non-empty list within 1-12")
        return v

    def covers(self, latitude: float, longitude: float, month: int) -> bool:
        return (
            self.lat_min <= latitude <= self.lat_max
            and self.lng_min <= longitude <= self.lng_max
            and month in self.months
        )


class ProbabilityPolicy(BaseModel):
    baseline: float = Field(..., ge=0.0, le=1.0)
    climate_uplift: float = Field(..., ge=0.0, le=1.0)
    age_min: int = 25
    age_max: int = 55
    age_penalty: float = Field(..., ge=0.0, le=1.0)
    existing_loan_penalty: float = Field(..., ge=0.0, le=1.0)
    existing_loan_cap: float = Field(..., ge=0.0, le=1.0)
    repayment_floor: float = Field(default=90.0, ge=0.0, le=100.0)
    repayment_penalty_rate: float = Field(..., ge=0.0)
    repayment_penalty_cap: float = Field(..., ge=0.0, le=1.0)
    mitigation_factor: float = Field(..., ge=0.0, le=1.0)


class RecommendationThresholds(BaseModel):
    approve_max: int = Field(default=35, ge=0, le=100)
    caution_max: int = Field(default=65, ge=0, le=100)

    @model_validator(mode="after")
    def check_order(self):
        if self.approve_max >= self.caution_max:
            raise ValueError("approve_max must be lower than caution_max")
        return self


class FallbackBand(BaseModel):
    name: str
    abs_lat_min: float = Field(..., ge=0.0, le=90.0)
    abs_lat_max: float = Field(..., ge=0.0, le=90.0)
    hazards: Dict[HazardType, float]
    description: str

    @field_validator("hazards")
    @classmethod
    def check_hazards(cls, v: Dict[HazardType, float]) -> Dict[HazardType, float]:
        if set(v) != set(HazardType):
            raise ValueError("fallback bands must define flood, drought and heatwave")
        if any(not 0.0 <= p <= 1.0 for p in v.values()):
            raise ValueError("fallback hazard probabilities must be within [0, 1]")
        return v


class LiveClimatePolicy(BaseModel):
    flood_reference_mm: float = Field(..., gt=0)
    dry_day_mm: float = Field(..., ge=0)
    heat_threshold_c: float
    heat_span_c: float = Field(..., gt=0)


class ProductPolicy(BaseModel):
    high_probability_threshold: float = Field(default=0.30, ge=0.0, le=1.0)
    high_probability: List[Product] = Field(default_factory=list)
    catalog: Dict[RecommendationType, Dict[str, List[Product]]]
    crops: Dict[str, Product] = Field(default_factory=dict)

    @field_validator("crops", mode="before")
    @classmethod
    def normalize_crops(cls, v):
        return {normalize_key(k): p for k, p in (v or {}).items()}

    @model_validator(mode="after")
    def check_defaults(self):
        for rec_type in RecommendationType:
            if "default" not in self.catalog.get(rec_type, {}):
                raise ValueError(f"product catalog needs a default list for '{rec_type.value}'")
        return self


class RiskPolicy(BaseModel):
    version: str
    weights: Dict[str, PurposeWeights]
    agricultural_purposes: List[str] = Field(default_factory=lambda: ["agriculture"])
    seasons: List[SeasonWindow] = Field(default_factory=list)
    probability: ProbabilityPolicy
    thresholds: RecommendationThresholds
    fallback_bands: List[FallbackBand]
    live: LiveClimatePolicy
    products: ProductPolicy

    @field_validator("weights", mode="before")
    @classmethod
    def normalize_purposes(cls, v):
        return {normalize_key(k): w for k, w in (v or {}).items()}

    @model_validator(mode="after")
    def check_band_coverage(self):
        bands = sorted(self.fallback_bands, key=lambda b: b.abs_lat_min)
        edge = 0.0
        for band in bands:
            if not math.isclose(band.abs_lat_min, edge):
                raise ValueError(f"fallback bands leave a gap at latitude {edge}")
            edge = band.abs_lat_max
        if not math.isclose(edge, 90.0):
            raise ValueError("fallback bands must cover latitudes up to 90")
        return self

    @property
    def loan_purposes(self) -> List[str]:
        return sorted(self.weights)


def load_risk_policy(path: Optional[Union[str, Path]] = None) -> RiskPolicy:
    policy_path = Path(path) if path else DEFAULT_POLICY_PATH
    try:
        with open(policy_path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise InvalidPolicy(f"Could not read risk policy at {policy_path}: {exc}") from exc

    try:
        policy = RiskPolicy.model_validate(raw or {})
    except ValidationError as exc:
        raise InvalidPolicy(f"Risk policy at {policy_path} is invalid: {exc}") from exc

    logger.info("Loaded risk policy version %s from %s", policy.version, policy_path)
    return policy


@lru_cache(maxsize=None)
def get_risk_policy(path: Optional[str] = None) -> RiskPolicy:
    return load_risk_policy(path)
