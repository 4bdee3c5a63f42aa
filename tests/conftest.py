"""Shared fixtures: offline settings, the shipped policy, fake AI providers and a stub climate session."""
import json
from datetime import datetime, timezone

import pytest
import requests

from climate_credit.core.config import Settings
from climate_credit.core.errors import ProviderError
from climate_credit.core.policy import load_risk_policy
from climate_credit.schemas.assessment import ClientInput, LoanInput, LocationInput, Officer
from climate_credit.services.ai_gateway import AIGateway
from climate_credit.services.climate_fetcher import ClimateFetcher
from climate_credit.services.orchestrator import AssessmentOrchestrator
from climate_credit.services.providers import LLMProvider
from climate_credit.services.repository import InMemoryAssessmentRepository

FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


class FakeProvider(LLMProvider):
    """Scripted provider: returns (or raises) the queued outcomes in order, repeating the last one."""

    def __init__(self, name, outcomes, model="fake-model"):
        super().__init__(model=model, timeout=1.0)
        self.name = name
        self.outcomes = list(outcomes)
        self.calls = []

    def complete(self, prompt, system_prompt=None, *, max_tokens=1024, temperature=0.2, json_mode=False):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "json_mode": json_mode})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def provider_error(provider, kind, message="boom"):
    return ProviderError(provider, kind, f"{provider}: {message}")


class StubResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class StubSession:
    """Stands in for requests.Session in the climate fetcher."""

    def __init__(self, payload=None, status_code=200, exc=None):
        self.payload = payload
        self.status_code = status_code
        self.exc = exc
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return StubResponse(self.payload, self.status_code)


def forecast_payload(precipitation, max_temps, tz="Asia/Dhaka"):
    return {
        "timezone": tz,
        "daily": {
            "time": [f"2024-03-{i + 1:02d}" for i in range(len(precipitation))],
            "precipitation_sum": precipitation,
            "temperature_2m_max": max_temps,
        },
    }


def extraction_json(data=None, confidence=None, summary="Farmer wants a loan for rice inputs"):
    data = data if data is not None else {
        "client_name": "Rahima Begum",
        "client_age": 34,
        "project_type": "agriculture",
        "crop_type": "rice",
        "loan_amount": 1500,
        "loan_purpose": "seeds and fertilizer",
        "loan_term": 12,
        "existing_loans": 0,
        "repayment_history": 95,
    }
    confidence = confidence if confidence is not None else {
        "client_name": "high",
        "client_age": "high",
        "project_type": "high",
        "crop_type": "high",
        "loan_amount": "high",
        "loan_purpose": "medium",
        "loan_term": "medium",
        "existing_loans": "medium",
        "repayment_history": "medium",
    }
    return json.dumps({"data": data, "confidence": confidence, "summary": summary})


TRANSCRIPT = (
    "Officer: Good morning, what do you need the loan for? "
    "Client: I am Rahima, 34 years old, I grow rice near Sylhet and need 1500 for seeds and fertilizer."
)


@pytest.fixture
def offline_settings():
    return Settings(
        _env_file=None,
        ANTHROPIC_API_KEY=None,
        GROQ_API_KEY=None,
        GEMINI_API_KEY=None,
        CLIMATE_LIVE_ENABLED=False,
    )


@pytest.fixture(scope="session")
def policy():
    return load_risk_policy()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def officer():
    return Officer(mfi_id="mfi-1", mfi_name="Sylhet Microcredit", officer_id="off-7", name="Karim Uddin")


@pytest.fixture
def other_officer():
    return Officer(mfi_id="mfi-2", mfi_name="Other MFI", officer_id="off-9", name="Someone Else")


@pytest.fixture
def sylhet_inputs():
    return (
        LocationInput(latitude=24.89, longitude=91.87, location_name="Sylhet, Bangladesh"),
        LoanInput(amount=1500, purpose="agriculture", crop_type="rice"),
        ClientInput(age=34, existing_loans=0, repayment_history=95),
    )


@pytest.fixture
def make_orchestrator(policy, offline_settings, clock):
    def _make(providers=None, session=None, config=None):
        config = config or offline_settings
        return AssessmentOrchestrator(
            policy=policy,
            fetcher=ClimateFetcher(policy, config, session=session or StubSession(exc=AssertionError("no network"))),
            repository=InMemoryAssessmentRepository(),
            gateway=AIGateway(providers=providers or [], clock=clock),
            clock=clock,
        )
    return _make
