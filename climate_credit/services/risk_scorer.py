# climate_credit/services/risk_scorer.py

import math
from datetime import date
from typing import Optional, Tuple

from climate_credit.core.errors import UnknownLoanPurpose
from climate_credit.core.policy import HazardWeights, RiskPolicy, normalize_key
from climate_credit.schemas.climate import HAZARD_LABELS, ClimateSnapshot, HazardType
from climate_credit.schemas.risk import ClimateRiskResult, RiskFactor


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class RiskScorer:
    """
    Turns hazard indicators into a 0-100 climate-risk score.

    score = round(100 x sum(value x weight) x seasonal_multiplier), clamped.
    """

    def __init__(self, policy: RiskPolicy):
        self.policy = policy

    def score(
        self,
        snapshot: ClimateSnapshot,
        loan_purpose: str,
        crop_type: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> ClimateRiskResult:
        weights, table_name = self.weights_for(loan_purpose, crop_type)
        weight_map = weights.as_mapping()

        factors = [
            RiskFactor(
                type=hazard,
                label=HAZARD_LABELS[hazard],
                value=snapshot.hazard(hazard),
                weight=weight_map[hazard],
            )
            for hazard in HazardType
        ]
        exposure = sum(f.value * f.weight for f in factors)

        multiplier, active = self.seasonal_multiplier(snapshot, weight_map, as_of or date.today())
        raw = 100.0 * exposure * multiplier
        score = min(100, max(0, round_half_up(raw)))

        return ClimateRiskResult(
            score=score,
            factors=factors,
            seasonal_multiplier=multiplier,
            active_seasons=active,
            weight_table=table_name,
        )

    def weights_for(self, loan_purpose: str, crop_type: Optional[str] = None) -> Tuple[HazardWeights, str]:
        purpose = normalize_key(loan_purpose or "")
        table = self.policy.weights.get(purpose)
        if table is None:
            raise UnknownLoanPurpose(
                f"Unknown loan purpose '{loan_purpose}'. "
                f"Expected one of: {', '.join(self.policy.loan_purposes)}"
            )
        if crop_type:
            crop = normalize_key(crop_type)
            if crop in table.crops:
                return table.crops[crop], f"{purpose}/{crop}"
        return table.default, purpose

    def seasonal_multiplier(self, snapshot: ClimateSnapshot, weight_map, as_of: date):
        multiplier = 1.0
        active = []
        for season in self.policy.seasons:
            if weight_map.get(season.hazard, 0.0) <= 0.0:
                continue
            if season.covers(snapshot.latitude, snapshot.longitude, as_of.month):
                active.append(season.name)
                multiplier = max(multiplier, season.multiplier)
        return multiplier, active
