from __future__ import annotations

from typing import Any, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email

from minimal_blog.db import integrity_errors
from minimal_blog.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from minimal_blog.util.ids import is_valid_id, new_id
from minimal_blog.util.time import utcnow_iso

from .security import DEFAULT_PASSWORD_ROUNDS, hash_password, verify_password


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def list_user_post_ids(conn: Any, user_id: str) -> List[str]:
    """Post references owned by a user, in authoring order."""
    rows = conn.execute(
        "SELECT post_id FROM user_posts WHERE user_id=? ORDER BY ref_id",
        (user_id,),
    ).fetchall()
    return [str(r["post_id"]) for r in rows]


def public_user(row: Any | Dict[str, Any], blogs: Optional[List[str]] = None) -> Dict[str, Any]:
    """Wire representation of a user. Never includes the password hash."""
    d = dict(row)
    d.pop("password_hash", None)
    out: Dict[str, Any] = {
        "id": d.get("user_id"),
        "firstName": d.get("first_name"),
        "lastName": d.get("last_name"),
        "email": d.get("email"),
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
    }
    if blogs is not None:
        out["blogs"] = list(blogs)
    return out


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=?",
        (e,),
    ).fetchone()


def get_user_by_id(conn: Any, user_id: str) -> Optional[Any]:
    if not is_valid_id(user_id):
        return None
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (user_id,),
    ).fetchone()


def create_user(
    conn: Any,
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    rounds: int = DEFAULT_PASSWORD_ROUNDS,
) -> Dict[str, Any]:
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    e = normalize_email(email)
    if not first:
        raise ValidationError("first_name_blank")
    if not last:
        raise ValidationError("last_name_blank")
    if not e:
        raise ValidationError("email_blank")
    try:
        validate_email(e, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"email_invalid: {exc}")
    if not password:
        raise ValidationError("password_blank")

    # Use the normalized email for uniqueness checks.
    if get_user_by_email(conn, e) is not None:
        raise ConflictError("User already exists!")

    now = utcnow_iso()
    user_id = new_id()
    try:
        conn.execute(
            """
            INSERT INTO users (user_id, first_name, last_name, email, password_hash, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?)
            """,
            (user_id, first, last, e, hash_password(password, rounds=rounds), now, now),
        )
    except integrity_errors() as exc:
        # A concurrent registration won the UNIQUE(email) race after our check.
        raise ConflictError("User already exists!") from exc
    row = get_user_by_id(conn, user_id)
    assert row is not None
    return public_user(row, blogs=[])


def verify_user_credentials(conn: Any, email: str, password: str) -> Any:
    """Return the user row for valid credentials.

    Raises NotFoundError for an unknown email and AuthenticationError for a bad password.
    """
    row = get_user_by_email(conn, email)
    if row is None:
        raise NotFoundError("User doesn't exists!")
    if not verify_password(password, str(row["password_hash"])):
        raise AuthenticationError("Incorrect Credentials")
    return row


def load_public_user(conn: Any, user_id: str) -> Dict[str, Any]:
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise NotFoundError("User doesn't exists!")
    return public_user(row, blogs=list_user_post_ids(conn, str(row["user_id"])))
