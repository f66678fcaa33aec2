from dataclasses import replace

from fastapi.testclient import TestClient

from minimal_blog.api.server import create_app
from minimal_blog.auth.security import decode_access_token

from conftest import TEST_PASSWORD, TEST_SECRET, login, register


def _user_count(client):
    from minimal_blog.db import connect

    cfg = client.app.state.cfg
    with connect(cfg.DB_DSN) as conn:
        return conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]


def test_register_returns_user_without_password(client):
    r = register(client, email="a@b.com", firstName="A", lastName="B", password="x")
    assert r.status_code == 201
    user = r.json()["user"]
    assert user["email"] == "a@b.com"
    assert user["firstName"] == "A"
    assert "password" not in user
    assert "password_hash" not in user


def test_register_twice_conflicts(client):
    body = {"firstName": "A", "lastName": "B", "email": "a@b.com", "password": "x"}
    assert client.post("/api/user/register", json=body).status_code == 201

    r = client.post("/api/user/register", json=body)
    assert r.status_code == 409
    assert r.json() == {"error": "User already exists!"}
    assert _user_count(client) == 1


def test_register_validation(client):
    r = register(client, email="not-an-email")
    assert r.status_code == 400
    assert r.json()["message"] == "Validation failed"

    r = register(client, firstName="")
    assert r.status_code == 400

    r = client.post("/api/user/register", json={"email": "a@b.com"})
    assert r.status_code == 400
    assert _user_count(client) == 0


def test_login_sets_session_cookie(client):
    uid = register(client).json()["user"]["id"]
    r = login(client)
    assert r.status_code == 201
    assert r.json()["user"]["id"] == uid
    assert "password_hash" not in r.json()["user"]

    set_cookie = r.headers["set-cookie"].lower()
    assert set_cookie.startswith("token=")
    assert "httponly" in set_cookie
    assert "samesite=strict" in set_cookie
    assert "path=/" in set_cookie
    assert "max-age=172800" in set_cookie

    token = r.cookies["token"]
    assert decode_access_token(token=token, secret=TEST_SECRET)["user"] == uid


def test_login_email_is_case_insensitive(client):
    register(client, email="ada@blog.io")
    assert login(client, email="ADA@Blog.io").status_code == 201


def test_login_wrong_password(client):
    register(client)
    r = login(client, password=TEST_PASSWORD + "!")
    assert r.status_code == 401
    assert r.json() == {"error": "Incorrect Credentials"}
    assert "set-cookie" not in r.headers


def test_login_unknown_email(client):
    r = login(client, email="ghost@blog.io")
    assert r.status_code == 404
    assert "set-cookie" not in r.headers


def test_login_validation(client):
    r = client.post("/api/user/login", json={"email": "nope"})
    assert r.status_code == 400


def test_current_user(logged_in):
    client, user = logged_in
    r = client.get("/api/user")
    assert r.status_code == 201
    assert r.json()["user"]["id"] == user["id"]
    assert r.json()["user"]["blogs"] == []


def test_logout_clears_cookie(logged_in):
    client, _user = logged_in
    r = client.post("/api/user/logout")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert "max-age=0" in r.headers["set-cookie"].lower()

    assert client.get("/api/user").status_code == 401


def test_register_race_returns_409(client, monkeypatch):
    assert register(client).status_code == 201
    monkeypatch.setattr("minimal_blog.auth.crud.get_user_by_email", lambda c, e: None)

    r = register(client)
    assert r.status_code == 409
    assert r.json() == {"error": "User already exists!"}
    assert _user_count(client) == 1


def test_unexpected_error_returns_json_500(cfg):
    app = create_app(replace(cfg, AUTH_JWT_SECRET=""))
    with TestClient(app, raise_server_exceptions=False) as c:
        assert register(c).status_code == 201
        r = login(c)
    assert r.status_code == 500
    assert r.headers["content-type"].startswith("application/json")
    assert r.json() == {"error": "jwt_secret_blank"}
    assert "set-cookie" not in r.headers
