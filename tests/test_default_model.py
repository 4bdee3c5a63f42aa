"""Tests for services/default_model.py"""
import pytest

from climate_credit.schemas.risk import BorrowerProfile, DefaultProbability
from climate_credit.services.default_model import DefaultProbabilityModel


@pytest.fixture
def model(policy):
    return DefaultProbabilityModel(policy)


class TestEstimate:
    def test_reference_borrower(self, model):
        result = model.estimate(52, BorrowerProfile(age=34, existing_loans=0, repayment_history=95))
        assert result.baseline == 0.15
        assert result.unadjusted == pytest.approx(0.254)
        assert result.adjusted == pytest.approx(0.1651)
        assert result.reduction == pytest.approx(-0.0151)

    def test_defaults_for_missing_client_values(self, model):
        assert BorrowerProfile() == BorrowerProfile(age=35, existing_loans=0, repayment_history=95.0)
        result = model.estimate(0, BorrowerProfile())
        assert result.unadjusted == pytest.approx(0.15)

    def test_borrower_penalties_are_capped(self, model):
        result = model.estimate(100, BorrowerProfile(age=70, existing_loans=10, repayment_history=20))
        # 0.15 + 0.20 + 0.03 (age) + 0.08 (loan cap) + 0.15 (repayment cap)
        assert result.unadjusted == pytest.approx(0.61)

    def test_young_borrower_penalized(self, model):
        young = model.estimate(40, BorrowerProfile(age=20))
        prime = model.estimate(40, BorrowerProfile(age=30))
        assert young.unadjusted == pytest.approx(prime.unadjusted + 0.03)

    def test_out_of_range_score_is_clamped(self, model):
        assert model.estimate(250, BorrowerProfile()) == model.estimate(100, BorrowerProfile())

    @pytest.mark.parametrize("score", [0, 20, 35, 36, 65, 66, 100])
    def test_adjusted_never_exceeds_unadjusted(self, model, score):
        for borrower in [BorrowerProfile(), BorrowerProfile(age=18, existing_loans=5, repayment_history=0)]:
            result = model.estimate(score, borrower)
            assert 0.0 <= result.adjusted <= result.unadjusted <= 1.0
            assert result.reduction == result.baseline - result.adjusted

    def test_unadjusted_grows_with_climate_score(self, model):
        values = [model.estimate(s, BorrowerProfile()).unadjusted for s in range(0, 101, 5)]
        assert values == sorted(values)


class TestDefaultProbabilityModel:
    def test_adjusted_above_unadjusted_rejected(self):
        with pytest.raises(ValueError):
            DefaultProbability(baseline=0.15, unadjusted=0.2, adjusted=0.3)

    def test_reduction_is_serialized(self):
        dumped = DefaultProbability(baseline=0.15, unadjusted=0.3, adjusted=0.1).model_dump()
        assert dumped["reduction"] == pytest.approx(0.05)
