"""Tests for membership plans and the simulated subscription flow."""

import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from app.api.membership_routes import membership_expiry
from app.main import app
from app.services.storage import storage


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user():
    suffix = uuid.uuid4().hex[:10]
    return storage.create_user(username=f"m{suffix}", email=f"m{suffix}@example.com")


def test_plans_list_prices_and_features(client):
    body = client.get("/api/membership/plans").json()
    prices = {plan["plan_type"]: plan["price"] for plan in body["plans"]}
    assert prices == {"monthly": 4.99, "yearly": 39.99}
    assert len(body["features"]) == 5


def test_new_user_is_free(client, user):
    body = client.get("/api/membership/", params={"user_id": user.id}).json()
    assert body["membership_type"] == "free"
    assert body["membership_expiry"] is None
    assert body["benefits"] == []


def test_subscribe_yearly_upgrades_to_pro(client, user):
    response = client.post("/api/membership/subscribe", params={"user_id": user.id}, json={"plan_type": "yearly"})

    assert response.status_code == 200
    body = response.json()
    assert body["membership_type"] == "pro"
    assert "Fitbit Integration" in body["benefits"]
    expiry = datetime.fromisoformat(body["membership_expiry"])
    assert timedelta(days=364) < expiry - datetime.utcnow() <= timedelta(days=366)

    stored = storage.get_user(user.id)
    assert stored.stripe_customer_id.startswith("cus_mock_")
    assert stored.stripe_subscription_id.startswith("sub_mock_")


def test_subscribe_rejects_unknown_plan_and_user(client, user):
    bad_plan = client.post("/api/membership/subscribe", params={"user_id": user.id}, json={"plan_type": "weekly"})
    assert bad_plan.status_code == 422
    missing = client.post("/api/membership/subscribe", params={"user_id": 987654}, json={"plan_type": "monthly"})
    assert missing.status_code == 404


def test_expired_membership_reads_as_free(client, user):
    storage.update_user_membership(user.id, "pro", datetime.utcnow() - timedelta(days=1))
    body = client.get("/api/membership/", params={"user_id": user.id}).json()
    assert body["membership_type"] == "free"


def test_monthly_expiry_clamps_to_month_end():
    assert membership_expiry("monthly", datetime(2024, 1, 31, 9, 0)) == datetime(2024, 2, 29, 9, 0)
    assert membership_expiry("monthly", datetime(2024, 12, 15)) == datetime(2025, 1, 15)
    assert membership_expiry("yearly", datetime(2024, 2, 29)) == datetime(2025, 2, 28)
