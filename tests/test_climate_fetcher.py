"""Tests for services/climate_fetcher.py"""
import logging

import pytest
import requests

from climate_credit.core.config import Settings
from climate_credit.core.errors import ErrorCategory, InvalidLocation
from climate_credit.schemas.climate import ClimateSource, HazardType
from climate_credit.services.climate_fetcher import ClimateFetcher, validate_coordinates

from conftest import StubSession, forecast_payload


@pytest.fixture
def live_settings():
    return Settings(_env_file=None, CLIMATE_LIVE_ENABLED=True, REQUEST_TIMEOUT_SECONDS=5)


class TestValidateCoordinates:
    @pytest.mark.parametrize("lat,lng", [(91, 0), (-90.5, 10), (0, 180.1), (0, -181)])
    def test_out_of_range(self, lat, lng):
        with pytest.raises(InvalidLocation) as exc:
            validate_coordinates(lat, lng)
        assert exc.value.category == ErrorCategory.FIX_INPUT

    def test_not_a_number(self):
        with pytest.raises(InvalidLocation):
            validate_coordinates("north", 12)

    def test_nan(self):
        with pytest.raises(InvalidLocation):
            validate_coordinates(float("nan"), 12)

    def test_edges_accepted(self):
        validate_coordinates(90, 180)
        validate_coordinates(-90, -180)


class TestFallbackSnapshot:
    def test_sylhet_uses_subtropical_band(self, policy, offline_settings):
        fetcher = ClimateFetcher(policy, offline_settings, session=StubSession())
        snapshot = fetcher.fetch(24.89, 91.87)
        assert snapshot.source == ClimateSource.FALLBACK
        assert snapshot.hazards == {
            HazardType.FLOOD: 0.60,
            HazardType.DROUGHT: 0.35,
            HazardType.HEATWAVE: 0.50,
        }
        assert snapshot.location.region == "Northern subtropics"

    def test_live_disabled_never_touches_network(self, policy, offline_settings):
        session = StubSession()
        ClimateFetcher(policy, offline_settings, session=session).fetch(10, 10)
        assert session.calls == []

    def test_deterministic(self, policy, offline_settings):
        fetcher = ClimateFetcher(policy, offline_settings, session=StubSession())
        assert fetcher.fetch(-12.5, 30.1) == fetcher.fetch(-12.5, 30.1)

    def test_southern_hemisphere_and_poles(self, policy, offline_settings):
        fetcher = ClimateFetcher(policy, offline_settings, session=StubSession())
        assert fetcher.fetch(-30, 20).location.region == "Southern subtropics"
        assert fetcher.fetch(90, 0).location.region == "Northern polar and subpolar zone"

    def test_invalid_location_raised_before_fallback(self, policy, offline_settings):
        fetcher = ClimateFetcher(policy, offline_settings, session=StubSession())
        with pytest.raises(InvalidLocation):
            fetcher.fetch(120, 0)


class TestLiveSnapshot:
    def test_hazards_from_forecast(self, policy, live_settings):
        payload = forecast_payload([20.0] * 15 + [0.0], [36.0] * 16)
        session = StubSession(payload=payload)
        snapshot = ClimateFetcher(policy, live_settings, session=session).fetch(24.89, 91.87)

        assert snapshot.source == ClimateSource.LIVE
        assert snapshot.hazard(HazardType.FLOOD) == 1.0
        assert snapshot.hazard(HazardType.DROUGHT) == 0.0625
        assert snapshot.hazard(HazardType.HEATWAVE) == 0.5
        assert snapshot.location.timezone == "Asia/Dhaka"
        assert snapshot.weather.forecast_days == 16
        assert snapshot.weather.total_precipitation_mm == 300.0
        assert session.calls[0]["timeout"] == 5
        assert session.calls[0]["params"]["latitude"] == 24.89

    def test_extreme_values_stay_in_range(self, policy, live_settings):
        payload = forecast_payload([5000.0] * 3, [60.0] * 3)
        snapshot = ClimateFetcher(policy, live_settings, session=StubSession(payload=payload)).fetch(0, 0)
        for value in snapshot.hazards.values():
            assert 0.0 <= value <= 1.0

    def test_missing_days_are_skipped(self, policy, live_settings):
        payload = forecast_payload([0.0, None, 0.0, 0.0], [30.0, None, 30.0, 30.0])
        snapshot = ClimateFetcher(policy, live_settings, session=StubSession(payload=payload)).fetch(0, 0)
        assert snapshot.weather.forecast_days == 3
        assert snapshot.hazard(HazardType.DROUGHT) == 1.0


class TestLiveFailureFallsBack:
    def test_timeout(self, policy, live_settings, caplog):
        session = StubSession(exc=requests.Timeout("read timed out"))
        with caplog.at_level(logging.WARNING):
            snapshot = ClimateFetcher(policy, live_settings, session=session).fetch(24.89, 91.87)
        assert snapshot.source == ClimateSource.FALLBACK
        assert "UpstreamTimeout" in caplog.text

    def test_http_error(self, policy, live_settings):
        session = StubSession(payload={}, status_code=503)
        snapshot = ClimateFetcher(policy, live_settings, session=session).fetch(24.89, 91.87)
        assert snapshot.source == ClimateSource.FALLBACK

    def test_connection_error(self, policy, live_settings):
        session = StubSession(exc=requests.ConnectionError("refused"))
        snapshot = ClimateFetcher(policy, live_settings, session=session).fetch(24.89, 91.87)
        assert snapshot.source == ClimateSource.FALLBACK

    @pytest.mark.parametrize("payload", [
        {},
        {"daily": {"precipitation_sum": [], "temperature_2m_max": []}},
        {"daily": {"precipitation_sum": [None], "temperature_2m_max": [None]}},
        ValueError("not json"),
    ])
    def test_unusable_payload(self, policy, live_settings, payload):
        session = StubSession(payload=payload)
        fetcher = ClimateFetcher(policy, live_settings, session=session)
        assert fetcher.fetch(5, 5) == fetcher.fallback_snapshot(5, 5)
