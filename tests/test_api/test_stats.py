"""Tests for the stats summary endpoint."""

import pytest
from fastapi.testclient import TestClient

from warden.main import app
from tests.conftest import API_KEY_HEADER


@pytest.fixture
def client():
    return TestClient(app)


class TestStatsSummary:
    def test_empty_stats(self, client):
        resp = client.get("/v1/stats/summary", headers=API_KEY_HEADER)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_decisions"] == 0
        assert data["avg_risk_score"] == 0.0
        assert data["by_behavior"] == {}
        assert data["engine"]["total"] == 0

    def test_stats_after_evaluations(self, client):
        for command in ("echo hi", "echo hi", "sudo rm -rf /"):
            client.post(
                "/v1/warden/evaluate",
                headers=API_KEY_HEADER,
                json={"tool_name": "Bash", "parameters": {"command": command}},
            )
        data = client.get("/v1/stats/summary", headers=API_KEY_HEADER).json()
        assert data["total_decisions"] == 3
        assert data["by_behavior"] == {"allow": 2, "deny": 1}
        assert data["by_source"] == {"rule": 3}
        assert data["engine"]["cache_hits"] == 1
        assert data["cache_entries"] == 2
        assert data["avg_risk_score"] == 20.0

    def test_hours_out_of_range(self, client):
        resp = client.get("/v1/stats/summary?hours=0", headers=API_KEY_HEADER)
        assert resp.status_code == 422
