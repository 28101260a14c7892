# tests/test_auth.py

from datetime import datetime, timedelta, timezone

import jwt


def test_missing_token(client):
    r = client.get("/api/items")
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "auth_required"


def test_garbage_token(client):
    r = client.get("/api/items", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "invalid_token"


def test_expired_token(client, make_user):
    alice = make_user("alice")
    token = jwt.encode(
        {"sub": alice.external_id, "exp": datetime.now(timezone.utc) - timedelta(minutes=5)},
        "test-jwt-secret",
        algorithm="HS256",
    )
    r = client.get("/api/items", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "invalid_token"


def test_wrong_secret(client, make_user):
    alice = make_user("alice")
    token = jwt.encode(
        {"sub": alice.external_id, "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "someone-else",
        algorithm="HS256",
    )
    assert client.get("/api/items", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_unregistered_user(client, token_headers):
    r = client.get("/api/items", headers=token_headers("ext-unknown", "unknown@example.com"))
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "user_not_registered"


def test_me_creates_and_syncs_user(client, token_headers):
    r = client.get("/api/users/me", headers=token_headers("ext-fresh", "Fresh@Example.com", name="Fresh"))
    assert r.status_code == 200
    me = r.json()
    assert (me["email"], me["name"]) == ("fresh@example.com", "Fresh")

    r = client.get("/api/users/me", headers=token_headers("ext-fresh", "fresh@example.com", name="Renamed"))
    assert r.json()["id"] == me["id"]
    assert r.json()["name"] == "Renamed"


def test_root_healthcheck(client):
    assert client.get("/").status_code == 200
