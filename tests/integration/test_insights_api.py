"""
Integration tests for the insights API.

Tests the analyze endpoint end to end, including validation errors.
"""
from fastapi.testclient import TestClient

from tests.factories import BASE_TIME, make_record, make_records


def _payload(records, now=BASE_TIME):
    return {
        "records": [r.model_dump(mode="json") for r in records],
        "now": now.isoformat(),
    }


class TestAnalyze:
    """Tests for POST /insights/analyze."""

    def test_empty_records(self, client: TestClient):
        response = client.post("/insights/analyze", json=_payload([]))

        assert response.status_code == 200
        data = response.json()
        assert data["total_meals"] == 0
        assert data["trigger_confidence"] == []
        assert data["weekly_comparison"]["trend"] == "stable"

    def test_dairy_scenario(self, client: TestClient):
        records = make_records([5, 4, 4], ["dairy"]) + make_records([2] * 7)

        response = client.post("/insights/analyze", json=_payload(records))

        assert response.status_code == 200
        dairy = response.json()["trigger_confidence"][0]
        assert dairy["category"] == "dairy"
        assert dairy["confidence"] == "investigating"
        assert dairy["avg_bloating_with"] == 4.33
        assert dairy["percentage_of_meals"] == 30

    def test_notes_patterns_included(self, client: TestClient):
        records = [make_record(5, notes="stressed"), make_record(4, notes="so stressed")]

        response = client.post("/insights/analyze", json=_payload(records))

        patterns = response.json()["notes_patterns"]
        assert patterns[0]["type"] == "stress"
        assert patterns[0]["correlation"] == "high"

    def test_invalid_record_rejected(self, client: TestClient):
        response = client.post("/insights/analyze", json={"records": [{"id": "x"}]})

        assert response.status_code == 422

    def test_repeated_request_returns_same_result(self, client: TestClient):
        payload = _payload(make_records([3, 4, 2], ["gluten"]) + make_records([1, 1]))

        first = client.post("/insights/analyze", json=payload).json()
        second = client.post("/insights/analyze", json=payload).json()

        assert first == second


class TestHealth:
    """Tests for the health check."""

    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
