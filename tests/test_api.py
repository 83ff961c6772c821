"""HTTP surface tests."""

import pytest
from fastapi.testclient import TestClient

from atlas.database import get_session
from atlas.main import app


@pytest.fixture
def client(seeded_session):
    def override():
        yield seeded_session

    app.dependency_overrides[get_session] = override
    # No context manager: lifespan (scheduler, real database) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_latest_before_any_run(client):
    body = client.get("/insights/latest").json()

    assert body["status"] == "no_data"


def test_run_analysis(client):
    response = client.post(
        "/run-analysis", json={"metrics": ["roas"], "dimensions": ["overall", "channel"]}
    )

    assert response.status_code == 200
    insight = response.json()["insight"]
    assert insight["diagnostics"]["attributed_purchases"] == 3
    assert {m["metric_name"] for m in insight["monthly_metrics"]} == {"roas"}


def test_run_analysis_with_defaults(client):
    response = client.post("/run-analysis", json={})

    assert response.status_code == 200
    dimensions = {m["dimension"] for m in response.json()["insight"]["monthly_metrics"]}
    assert "last_touch_campaign" in dimensions


def test_unknown_dimension_is_a_bad_request(client):
    response = client.post("/run-analysis", json={"dimensions": ["region"]})

    assert response.status_code == 400
    assert "dimensions" in response.json()["detail"]


def test_latest_and_history(client):
    first = client.post("/run-analysis", json={"materialize": False}).json()
    second = client.post("/run-analysis", json={"materialize": False}).json()

    latest = client.get("/insights/latest").json()
    assert latest["status"] == "success"
    assert latest["run_id"] == second["insight"]["run_id"]

    history = client.get("/insights", params={"limit": 5}).json()
    assert history["count"] == 2
    assert [r["run_id"] for r in history["results"]] == [
        second["insight"]["run_id"],
        first["insight"]["run_id"],
    ]


def test_history_limit_is_bounded(client):
    assert client.get("/insights", params={"limit": 0}).status_code == 422
