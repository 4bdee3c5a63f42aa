"""HTTP surface tests (FastAPI TestClient, offline climate data, fake providers)."""
import pytest
from fastapi.testclient import TestClient

from climate_credit.core.errors import ErrorKind
from climate_credit.main import create_app

from conftest import TRANSCRIPT, FakeProvider, extraction_json, provider_error

HEADERS = {
    "X-MFI-Id": "mfi-1",
    "X-MFI-Name": "Sylhet Microcredit",
    "X-Officer-Id": "off-7",
    "X-Officer-Name": "Karim Uddin",
}
OTHER_HEADERS = {**HEADERS, "X-MFI-Id": "mfi-2", "X-Officer-Id": "off-9"}

SYLHET_BODY = {
    "location": {"latitude": 24.89, "longitude": 91.87, "location_name": "Sylhet, Bangladesh"},
    "loan": {"amount": 1500, "purpose": "agriculture", "crop_type": "rice"},
    "client": {"age": 34, "existing_loans": 0, "repayment_history": 95},
}


@pytest.fixture
def make_client(make_orchestrator, offline_settings):
    def _make(providers=None):
        app = create_app(orchestrator=make_orchestrator(providers=providers), config=offline_settings)
        return TestClient(app)
    return _make


@pytest.fixture
def client(make_client):
    with make_client() as c:
        yield c


def _create(client):
    response = client.post("/v1/assessments", json=SYLHET_BODY, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


class TestAssessments:
    def test_create(self, client):
        body = _create(client)
        assert body["status"] == "pending"
        assert body["results"]["climate_risk"]["score"] == 52
        assert body["recommendation"]["type"] == "caution"
        assert body["climate_data"]["source"] == "fallback"
        assert "reduction" in body["results"]["default_probability"]
        assert body["mfi_name"] == "Sylhet Microcredit"

    def test_missing_officer_headers(self, client):
        response = client.post("/v1/assessments", json=SYLHET_BODY)
        assert response.status_code == 422

    def test_invalid_location(self, client):
        body = {**SYLHET_BODY, "location": {"latitude": 123, "longitude": 0}}
        response = client.post("/v1/assessments", json=body, headers=HEADERS)
        assert response.status_code == 400
        assert response.json() == {
            "error": "InvalidLocation",
            "kind": "InvalidLocation",
            "category": "fix_input",
            "message": "Latitude 123.0 is outside [-90, 90]",
        }

    def test_unknown_purpose(self, client):
        body = {**SYLHET_BODY, "loan": {"amount": 100, "purpose": "yacht"}}
        response = client.post("/v1/assessments", json=body, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["kind"] == "UnknownLoanPurpose"

    def test_get(self, client):
        created = _create(client)
        response = client.get(f"/v1/assessments/{created['id']}", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_get_missing(self, client):
        response = client.get("/v1/assessments/assess_nope", headers=HEADERS)
        assert response.status_code == 404
        assert response.json()["category"] == "not_found"

    def test_get_other_mfi(self, client):
        created = _create(client)
        response = client.get(f"/v1/assessments/{created['id']}", headers=OTHER_HEADERS)
        assert response.status_code == 403

    def test_list(self, client):
        _create(client)
        _create(client)
        response = client.get("/v1/mfi/mfi-1/assessments", params={"limit": 1}, headers=HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert len(body["assessments"]) == 1

    def test_list_filter_by_recommendation(self, client):
        _create(client)
        response = client.get("/v1/mfi/mfi-1/assessments", params={"recommendation": "defer"}, headers=HEADERS)
        assert response.json()["total"] == 0

    def test_list_other_mfi(self, client):
        response = client.get("/v1/mfi/mfi-1/assessments", headers=OTHER_HEADERS)
        assert response.status_code == 403


class TestDecision:
    def test_record(self, client):
        created = _create(client)
        response = client.patch(
            f"/v1/assessments/{created['id']}/decision",
            json={"decision": "approved", "notes": "With crop insurance"},
            headers=HEADERS,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "approved"
        assert body["decision"]["decided_by"] == "Karim Uddin"

    def test_conflict(self, client):
        created = _create(client)
        url = f"/v1/assessments/{created['id']}/decision"
        client.patch(url, json={"decision": "approved"}, headers=HEADERS)
        response = client.patch(url, json={"decision": "rejected"}, headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["kind"] == "DecisionConflict"

    def test_invalid_value(self, client):
        created = _create(client)
        response = client.patch(
            f"/v1/assessments/{created['id']}/decision", json={"decision": "pending"}, headers=HEADERS
        )
        assert response.status_code == 400


class TestAI:
    def test_extract_not_configured(self, client):
        response = client.post("/v1/ai/extract", json={"transcript": TRANSCRIPT}, headers=HEADERS)
        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["reason"] == "NotConfigured"
        assert body["category"] == "fix_configuration"

    def test_extract_short_transcript(self, make_client):
        with make_client([FakeProvider("claude", [extraction_json()])]) as client:
            response = client.post("/v1/ai/extract", json={"transcript": "too short"}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["reason"] == "InvalidInput"

    def test_extract_success(self, make_client):
        with make_client([FakeProvider("claude", [extraction_json()])]) as client:
            response = client.post("/v1/ai/extract", json={"transcript": TRANSCRIPT}, headers=HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["fields"]["crop_type"] == "rice"
        assert body["total_fields"] == 16

    def test_analyze_rate_limited(self, make_client):
        providers = [
            FakeProvider("claude", [provider_error("claude", ErrorKind.UPSTREAM_ERROR)]),
            FakeProvider("groq", [provider_error("groq", ErrorKind.RATE_LIMITED)]),
        ]
        with make_client(providers) as client:
            created = _create(client)
            response = client.post(f"/v1/assessments/{created['id']}/analyze", headers=HEADERS)
            assessment = client.get(f"/v1/assessments/{created['id']}", headers=HEADERS).json()
        assert response.status_code == 429
        assert [a["provider"] for a in response.json()["attempts"]] == ["claude", "groq"]
        assert assessment["ai_analysis"] is None

    def test_analyze_success(self, make_client):
        with make_client([FakeProvider("groq", ["### 1. DECISION\nMODIFY"])]) as client:
            created = _create(client)
            response = client.post(
                f"/v1/assessments/{created['id']}/analyze",
                json={"client_name": "Rahima", "loan_term": 12},
                headers=HEADERS,
            )
            assessment = client.get(f"/v1/assessments/{created['id']}", headers=HEADERS).json()
        assert response.status_code == 200
        assert response.json()["provider"] == "groq"
        assert assessment["ai_analysis"]["text"].endswith("MODIFY")


class TestService:
    def test_health_degraded_without_providers(self, client):
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["policy_version"] == "2024.1"
        assert body["ai"]["configured"] is False

    def test_health_lists_providers(self, make_client):
        with make_client([FakeProvider("claude", ["x"], model="claude-3-haiku-20240307")]) as client:
            body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["ai"]["providers"] == [{"name": "claude", "model": "claude-3-haiku-20240307"}]
        assert body["ai"]["circuits"]["claude"]["state"] == "CLOSED"

    def test_policy(self, client):
        body = client.get("/v1/policy").json()
        assert body["version"] == "2024.1"
        assert body["thresholds"] == {"approve_max": 35, "caution_max": 65}

    def test_metrics(self, client):
        assert client.get("/v1/metrics").json()["total_operations"] == 0
        _create(client)
        client.post("/v1/ai/extract", json={"transcript": TRANSCRIPT}, headers=HEADERS)
        stats = client.get("/v1/metrics").json()
        assert stats["total_operations"] == 2
        assert stats["by_operation"] == {"create_assessment": 1, "extract": 1}
        assert stats["ai_failures"] == {"NotConfigured": 1}
