# climate_credit/services/recommendation.py

from typing import List, Optional

from climate_credit.core.policy import RiskPolicy, normalize_key
from climate_credit.schemas.risk import (
    RECOMMENDATION_LABELS,
    ClimateRiskResult,
    DefaultProbability,
    Product,
    Recommendation,
    RecommendationType,
)


class RecommendationGenerator:
    """Maps a risk score onto approve / caution / defer plus mitigation products. No I/O."""

    def __init__(self, policy: RiskPolicy):
        self.policy = policy

    def classify(self, score: int) -> RecommendationType:
        thresholds = self.policy.thresholds
        if score <= thresholds.approve_max:
            return RecommendationType.APPROVE
        if score <= thresholds.caution_max:
            return RecommendationType.CAUTION
        return RecommendationType.DEFER

    def recommend(
        self,
        risk_result: ClimateRiskResult,
        probability: DefaultProbability,
        loan_purpose: str,
        crop_type: Optional[str] = None,
    ) -> Recommendation:
        rec_type = self.classify(risk_result.score)
        return Recommendation(
            type=rec_type,
            label=RECOMMENDATION_LABELS[rec_type],
            products=self._products(rec_type, probability, loan_purpose, crop_type),
        )

    def _products(
        self,
        rec_type: RecommendationType,
        probability: DefaultProbability,
        loan_purpose: str,
        crop_type: Optional[str],
    ) -> List[Product]:
        catalog = self.policy.products
        by_purpose = catalog.catalog[rec_type]
        purpose = normalize_key(loan_purpose or "")
        products = [p.model_copy() for p in by_purpose.get(purpose, by_purpose["default"])]

        if crop_type and purpose in self.policy.agricultural_purposes:
            crop_product = catalog.crops.get(normalize_key(crop_type))
            if crop_product is not None:
                products.insert(min(1, len(products)), crop_product.model_copy())

        if probability.adjusted >= catalog.high_probability_threshold:
            products.extend(p.model_copy() for p in catalog.high_probability)

        return products
