"""Tests for the HTTP health surface."""

from fastapi.testclient import TestClient

from jobscheduler.main import app, get_scheduler
from jobscheduler.worker import Scheduler


def test_health_unavailable_without_scheduler():
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 503


def test_health_reports_scheduler(store, fake_chain):
    scheduler = Scheduler(store=store, chain=fake_chain, max_concurrency=2)
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    try:
        client = TestClient(app)

        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["running"] == 0
        assert body["timestamp"]

        scheduler.request_shutdown()
        assert client.get("/health").json()["status"] == "shutting_down"
    finally:
        app.dependency_overrides.clear()


def test_root():
    response = TestClient(app).get("/")

    assert response.status_code == 200
    assert response.json()["name"] == "Job Scheduler"
