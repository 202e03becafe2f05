"""App wiring tests: health, auth, error envelope and one routed call."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from splitflow import dependencies
from splitflow.dependencies import get_authenticated_user, get_db_client


@pytest.fixture
def wired(client: TestClient, db, solo_project):
    """Route the app at the fake database, optionally as a signed-in user."""
    app = client.app
    dependencies._profile_cache.clear()
    app.dependency_overrides[get_db_client] = lambda: db

    def sign_in(user_id: str) -> None:
        app.dependency_overrides[get_authenticated_user] = lambda: SimpleNamespace(id=user_id)

    yield sign_in
    app.dependency_overrides.clear()
    dependencies._profile_cache.clear()


def test_health_endpoint(client: TestClient) -> None:
    """Health endpoint should return status and version."""
    response = client.get("/health")
    assert response.status_code == 200

    payload = response.json()
    assert payload["status"] == "ok"
    assert isinstance(payload["version"], str)
    assert "X-Process-Time-Ms" in response.headers


def test_missing_bearer_token_is_unauthorized(client: TestClient, wired) -> None:
    response = client.get("/finance/my-pending-approvals")

    assert response.status_code == 401
    assert response.json() == {"error": "Missing authorization header", "code": "UNAUTHORIZED"}


def test_validation_errors_use_error_envelope(client: TestClient, wired) -> None:
    wired("alice")
    response = client.post("/finance/spendings", json={"project_id": "p-solo", "amount": "lots"})

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_INPUT"


def test_add_spending_through_the_api(client: TestClient, wired, db) -> None:
    wired("alice")
    response = client.post(
        "/finance/spendings",
        json={
            "project_id": "p-solo",
            "amount": 500,
            "category": "Product",
            "product_name": "Seeds",
            "date": "2026-03-01",
        },
    )

    assert response.status_code == 200
    spending = response.json()["spending"]
    assert spending["status"] == "approved"
    assert spending["category"] == "product"
    assert spending["added_by_name"] == "Alice"
    assert len(db.rows("spendings")) == 1


def test_service_errors_map_to_status_codes(client: TestClient, wired) -> None:
    wired("bob")
    response = client.post(
        "/finance/spendings",
        json={"project_id": "p-solo", "amount": 10, "product_name": "Seeds"},
    )

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"

    wired("alice")
    response = client.post("/finance/spendings", json={"project_id": "p-solo", "amount": 0})
    assert response.status_code == 400
    assert response.json() == {"error": "Spending amount must be positive", "code": "BAD_REQUEST"}
