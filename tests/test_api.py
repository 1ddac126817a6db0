"""End-to-end tests for the auth and watchlist HTTP endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, make_url, text

from app.config import settings
from app.main import create_app
from app.security import SessionIssuer


@pytest.fixture
def client(monkeypatch, database_url):
    monkeypatch.setattr(settings, "database_url", database_url)
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    monkeypatch.setattr(settings, "password_hash_rounds", 4)

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_signup_then_watchlist_scenario(client: TestClient) -> None:
    signup = client.post(
        "/api/auth/signup", json={"email": "a@b.com", "password": "x"}
    )
    assert signup.status_code == 200
    token = signup.json()["token"]
    assert signup.json()["name"] == "a"

    empty = client.get("/api/watchlist", headers=_auth(token))
    assert empty.status_code == 200
    assert empty.json() == []

    added = client.post(
        "/api/watchlist", json={"id": 27205, "type": "movie"}, headers=_auth(token)
    )
    assert added.status_code == 200
    assert added.json() == {"success": True}

    listed = client.get("/api/watchlist", headers=_auth(token))
    assert listed.json() == [{"id": 27205, "type": "movie"}]


def test_repeated_add_round_trip_has_no_duplicates(client: TestClient) -> None:
    token = client.post(
        "/api/auth/signup", json={"name": "Ada", "email": "ada@b.com", "password": "x"}
    ).json()["token"]

    for _ in range(4):
        response = client.post(
            "/api/watchlist", json={"id": 550, "type": "movie"}, headers=_auth(token)
        )
        assert response.json() == {"success": True}

    listed = client.get("/api/watchlist", headers=_auth(token))
    assert listed.json() == [{"id": 550, "type": "movie"}]


def test_raw_token_header_is_accepted(client: TestClient) -> None:
    token = client.post(
        "/api/auth/signup", json={"email": "raw@b.com", "password": "x"}
    ).json()["token"]

    response = client.get("/api/watchlist", headers={"Authorization": token})

    assert response.status_code == 200


def test_watchlist_without_token_is_401(client: TestClient) -> None:
    response = client.get("/api/watchlist")

    assert response.status_code == 401
    assert response.json() == {"msg": "No token"}

    response = client.post("/api/watchlist", json={"id": 1, "type": "movie"})
    assert response.status_code == 401
    assert response.json() == {"msg": "No token"}


def test_watchlist_with_invalid_token_is_403(client: TestClient) -> None:
    forged = SessionIssuer("someone-else").issue("user")

    listed = client.get("/api/watchlist", headers=_auth(forged))
    added = client.post(
        "/api/watchlist", json={"id": 1, "type": "movie"}, headers=_auth("junk")
    )

    assert listed.status_code == 403
    assert listed.json() == {"msg": "Invalid token"}
    assert added.status_code == 403


def test_token_is_checked_before_body(client: TestClient) -> None:
    response = client.post("/api/watchlist", content=b"not json")

    assert response.status_code == 401


@pytest.mark.parametrize(
    "body",
    [
        {"id": "abc", "type": "movie"},
        {"id": 1, "type": "series"},
        {"type": "movie"},
        ["not", "an", "object"],
    ],
)
def test_malformed_watchlist_body_is_400(client: TestClient, body) -> None:
    token = client.post(
        "/api/auth/signup", json={"email": "bad@b.com", "password": "x"}
    ).json()["token"]

    response = client.post("/api/watchlist", json=body, headers=_auth(token))

    assert response.status_code == 400
    assert "msg" in response.json()


def test_duplicate_signup_is_400(client: TestClient) -> None:
    first = client.post("/api/auth/signup", json={"email": "a@b.com", "password": "x"})
    second = client.post("/api/auth/signup", json={"email": "a@b.com", "password": "y"})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json() == {"msg": "User already exists"}


@pytest.mark.parametrize(
    "body",
    [{}, {"email": "a@b.com"}, {"password": "x"}, {"email": "", "password": "x"}],
)
def test_signup_and_login_require_email_and_password(client: TestClient, body) -> None:
    assert client.post("/api/auth/signup", json=body).status_code == 400
    assert client.post("/api/auth/login", json=body).status_code == 400


def test_malformed_json_is_400(client: TestClient) -> None:
    response = client.post(
        "/api/auth/login",
        content=b"{broken",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_login_matches_stored_credentials(client: TestClient) -> None:
    client.post(
        "/api/auth/signup", json={"name": "Ada", "email": "ada@b.com", "password": "pw"}
    )

    ok = client.post("/api/auth/login", json={"email": "ada@b.com", "password": "pw"})
    wrong = client.post("/api/auth/login", json={"email": "ada@b.com", "password": "no"})
    unknown = client.post("/api/auth/login", json={"email": "x@b.com", "password": "pw"})

    assert ok.status_code == 200
    assert ok.json()["name"] == "Ada"
    assert ok.json()["token"]
    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert "token" not in wrong.json()
    assert "token" not in unknown.json()


def test_signup_without_signing_secret_is_500(monkeypatch, database_url) -> None:
    monkeypatch.setattr(settings, "database_url", database_url)
    monkeypatch.setattr(settings, "jwt_secret", None)
    monkeypatch.setattr(settings, "password_hash_rounds", 4)

    with TestClient(create_app()) as client:
        response = client.post(
            "/api/auth/signup", json={"email": "a@b.com", "password": "x"}
        )

    assert response.status_code == 500
    assert response.json() == {"msg": "Server error"}


def test_healthcheck(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def _break_storage(database_url: str) -> None:
    """Drop every table behind the running app's back."""

    engine = create_engine(make_url(database_url).set(drivername="sqlite"))
    with engine.begin() as connection:
        connection.execute(text("DROP TABLE watchlist_entries"))
        connection.execute(text("DROP TABLE users"))
    engine.dispose()


def test_storage_failures_answer_500(client: TestClient, database_url) -> None:
    token = client.post(
        "/api/auth/signup", json={"email": "a@b.com", "password": "x"}
    ).json()["token"]
    _break_storage(database_url)

    responses = [
        client.post(
            "/api/watchlist", json={"id": 550, "type": "movie"}, headers=_auth(token)
        ),
        client.get("/api/watchlist", headers=_auth(token)),
        client.post("/api/auth/login", json={"email": "a@b.com", "password": "x"}),
        client.post("/api/auth/signup", json={"email": "c@d.com", "password": "x"}),
    ]

    for response in responses:
        assert response.status_code == 500
        assert response.json() == {"msg": "Server error"}
