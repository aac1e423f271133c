"""Tests for registration, login, firebase linking and profile lookup."""

import uuid

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.storage import storage


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def identity():
    suffix = uuid.uuid4().hex[:10]
    return {"username": f"user{suffix}", "email": f"user{suffix}@example.com"}


def _register(client, identity, password="secret123", confirm=None):
    return client.post(
        "/api/register",
        json={
            **identity,
            "password": password,
            "confirm_password": confirm if confirm is not None else password,
        },
    )


def test_register_returns_user_without_password(client, identity):
    response = _register(client, identity)

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == identity["email"]
    assert body["display_name"] == identity["username"]
    assert body["membership_type"] == "free"
    assert "password" not in body
    stored = storage.get_user(body["id"])
    assert stored.password and stored.password != "secret123"


def test_register_rejects_duplicates(client, identity):
    assert _register(client, identity).status_code == 201

    same_email = _register(client, {"username": identity["username"] + "x", "email": identity["email"]})
    assert same_email.status_code == 409
    assert same_email.json()["detail"] == "Email already in use"

    same_name = _register(client, {"username": identity["username"], "email": "other-" + identity["email"]})
    assert same_name.status_code == 409
    assert same_name.json()["detail"] == "Username already taken"


def test_register_validates_input(client, identity):
    assert _register(client, identity, confirm="different1").status_code == 422
    assert _register(client, identity, password="short").status_code == 422
    assert _register(client, {**identity, "email": "not-an-email"}).status_code == 422
    assert _register(client, {**identity, "username": "ab"}).status_code == 422


def test_login(client, identity):
    user_id = _register(client, identity).json()["id"]

    ok = client.post("/api/login", json={"email": identity["email"], "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["id"] == user_id

    wrong = client.post("/api/login", json={"email": identity["email"], "password": "wrong-password"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid email or password"

    unknown = client.post("/api/login", json={"email": "nobody@example.com", "password": "secret123"})
    assert unknown.status_code == 401


def test_firebase_creates_then_reuses_user(client):
    uid = uuid.uuid4().hex
    payload = {"uid": uid, "display_name": None, "email": f"{uid[:8]}@example.com", "photo_url": None}

    created = client.post("/api/firebase-auth", json=payload)
    assert created.status_code == 200
    body = created.json()
    assert body["firebase_uid"] == uid
    assert body["username"] == uid[:8]
    assert body["display_name"] == uid[:8]

    again = client.post("/api/firebase-auth", json=payload)
    assert again.json()["id"] == body["id"]


def test_firebase_links_existing_email(client, identity):
    user_id = _register(client, identity).json()["id"]
    uid = uuid.uuid4().hex

    response = client.post(
        "/api/firebase-auth",
        json={"uid": uid, "display_name": "Dana", "email": identity["email"], "photo_url": "https://img/p.png"},
    )

    body = response.json()
    assert body["id"] == user_id
    assert body["firebase_uid"] == uid
    assert body["display_name"] == "Dana"
    assert body["photo_url"] == "https://img/p.png"


def test_firebase_without_email_or_match_fails(client):
    response = client.post("/api/firebase-auth", json={"uid": uuid.uuid4().hex, "email": None})
    assert response.status_code == 400


def test_profile_lookup(client, identity):
    user_id = _register(client, identity).json()["id"]
    uid = uuid.uuid4().hex
    client.post("/api/firebase-auth", json={"uid": uid, "email": identity["email"]})

    assert client.get("/api/profile", params={"id": str(user_id)}).json()["email"] == identity["email"]
    assert client.get("/api/profile", params={"id": uid}).json()["id"] == user_id
    assert client.get("/api/profile").status_code == 400
    assert client.get("/api/profile", params={"id": "999999"}).status_code == 404
