import sys
from dataclasses import replace
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1]))

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from minimal_blog.api.server import create_app
from minimal_blog.config import Config, load_config
from minimal_blog.db import connect, init_db

TEST_SECRET = "test-secret-do-not-use"
TEST_PASSWORD = "correct horse battery staple"


@pytest.fixture()
def cfg(tmp_path: Path) -> Config:
    """Config pointing at a throwaway SQLite file, with cheap password hashing."""
    return replace(
        load_config(),
        DB_DSN=str(tmp_path / "blog.sqlite"),
        AUTH_JWT_SECRET=TEST_SECRET,
        AUTH_PASSWORD_ROUNDS=1000,
        AUTH_COOKIE_SECURE=False,
        AUTH_COOKIE_DOMAIN=None,
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture()
def conn(cfg: Config):
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as c:
        yield c


@pytest.fixture()
def client(cfg: Config):
    with TestClient(create_app(cfg)) as c:
        yield c


def register(client: TestClient, email: str = "ada@blog.io", **overrides):
    body = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "email": email,
        "password": TEST_PASSWORD,
    }
    body.update(overrides)
    return client.post("/api/user/register", json=body)


def login(client: TestClient, email: str = "ada@blog.io", password: str = TEST_PASSWORD):
    return client.post("/api/user/login", json={"email": email, "password": password})


@pytest.fixture()
def logged_in(client: TestClient):
    """Client with a registered + logged-in user. Returns (client, user)."""
    assert register(client).status_code == 201
    r = login(client)
    assert r.status_code == 201
    return client, r.json()["user"]
