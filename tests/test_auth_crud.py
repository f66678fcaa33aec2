import pytest

from minimal_blog.auth.crud import (
    create_user,
    get_user_by_email,
    load_public_user,
    verify_user_credentials,
)
from minimal_blog.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from minimal_blog.util.ids import is_valid_id


def _create(conn, email="ada@blog.io", password="pw-1"):
    return create_user(
        conn,
        first_name="Ada",
        last_name="Lovelace",
        email=email,
        password=password,
        rounds=1000,
    )


def test_create_user_returns_public_view(conn):
    u = _create(conn, email="  Ada@Blog.IO ")
    assert is_valid_id(u["id"])
    assert u["email"] == "ada@blog.io"
    assert u["firstName"] == "Ada"
    assert u["blogs"] == []
    assert "password" not in u
    assert "password_hash" not in u


def test_password_is_stored_hashed(conn):
    _create(conn, password="plain-text")
    row = get_user_by_email(conn, "ada@blog.io")
    assert row["password_hash"] != "plain-text"
    assert row["password_hash"].startswith("$pbkdf2-sha256$")


def test_duplicate_email_conflicts_and_keeps_original(conn):
    _create(conn, password="first")
    original = dict(get_user_by_email(conn, "ada@blog.io"))

    with pytest.raises(ConflictError):
        _create(conn, email="ADA@blog.io", password="second")

    n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
    assert n == 1
    assert dict(get_user_by_email(conn, "ada@blog.io")) == original


@pytest.mark.parametrize(
    "field,kwargs",
    [
        ("first", {"first_name": " "}),
        ("last", {"last_name": ""}),
        ("email", {"email": ""}),
        ("password", {"password": ""}),
    ],
)
def test_create_user_requires_fields(conn, field, kwargs):
    args = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@blog.io",
        "password": "pw",
        "rounds": 1000,
    }
    args.update(kwargs)
    with pytest.raises(ValidationError):
        create_user(conn, **args)


def test_verify_credentials(conn):
    u = _create(conn, password="pw-1")
    row = verify_user_credentials(conn, "ADA@blog.io", "pw-1")
    assert row["user_id"] == u["id"]

    with pytest.raises(AuthenticationError):
        verify_user_credentials(conn, "ada@blog.io", "pw-2")

    with pytest.raises(NotFoundError):
        verify_user_credentials(conn, "nobody@blog.io", "pw-1")


def test_load_public_user_unknown(conn):
    with pytest.raises(NotFoundError):
        load_public_user(conn, "0" * 24)
    with pytest.raises(NotFoundError):
        load_public_user(conn, "not-an-id")


def test_create_user_rejects_malformed_email(conn):
    with pytest.raises(ValidationError) as exc:
        _create(conn, email="not an email")
    assert str(exc.value).startswith("email_invalid")
    assert conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"] == 0


def test_unique_email_race_maps_to_conflict(conn, monkeypatch):
    # Another writer registers between the lookup and the INSERT.
    monkeypatch.setattr("minimal_blog.auth.crud.get_user_by_email", lambda c, e: None)
    _create(conn)

    with pytest.raises(ConflictError):
        _create(conn, email="ADA@blog.io")
    assert conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"] == 1
