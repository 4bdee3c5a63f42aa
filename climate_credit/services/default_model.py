# climate_credit/services/default_model.py

from climate_credit.core.policy import RiskPolicy
from climate_credit.schemas.risk import BorrowerProfile, DefaultProbability

PROBABILITY_DECIMALS = 4


class DefaultProbabilityModel:
    """
    Rule-weighted default probability estimate.

    baseline   -> institutional prior, climate independent
    unadjusted -> baseline + climate uplift + borrower modifiers
    adjusted   -> unadjusted after the mitigation products
    """

    def __init__(self, policy: RiskPolicy):
        self.policy = policy.probability

    def estimate(self, climate_score: int, borrower: BorrowerProfile) -> DefaultProbability:
        p = self.policy
        score = min(100, max(0, int(climate_score)))

        unadjusted = (
            p.baseline
            + p.climate_uplift * score / 100.0
            + self._age_modifier(borrower.age)
            + min(borrower.existing_loans * p.existing_loan_penalty, p.existing_loan_cap)
            + self._repayment_modifier(borrower.repayment_history)
        )
        unadjusted = _clamp01(unadjusted)
        adjusted = unadjusted * (1.0 - p.mitigation_factor)

        return DefaultProbability(
            baseline=round(p.baseline, PROBABILITY_DECIMALS),
            unadjusted=round(unadjusted, PROBABILITY_DECIMALS),
            adjusted=round(adjusted, PROBABILITY_DECIMALS),
        )

    def _age_modifier(self, age: int) -> float:
        if self.policy.age_min <= age <= self.policy.age_max:
            return 0.0
        return self.policy.age_penalty

    def _repayment_modifier(self, repayment_history: float) -> float:
        shortfall = max(0.0, self.policy.repayment_floor - repayment_history) / 100.0
        return min(shortfall * self.policy.repayment_penalty_rate, self.policy.repayment_penalty_cap)


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))
