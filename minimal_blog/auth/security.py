from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict

import jwt
from passlib.context import CryptContext


_JWT_ALG = "HS256"
DEFAULT_PASSWORD_ROUNDS = 29000


@lru_cache(maxsize=4)
def _pwd(rounds: int) -> CryptContext:
    # Verification reads the round count from the stored hash, so changing
    # `rounds` only affects newly created hashes.
    return CryptContext(
        schemes=["pbkdf2_sha256"],
        deprecated="auto",
        pbkdf2_sha256__default_rounds=max(1000, int(rounds)),
    )


def hash_password(password: str, *, rounds: int = DEFAULT_PASSWORD_ROUNDS) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd(rounds).hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd(DEFAULT_PASSWORD_ROUNDS).verify(password, password_hash)
    except Exception:
        return False


def create_access_token(*, secret: str, user_id: str, expires_minutes: int) -> str:
    """Sign a session token carrying `{"user": user_id}`."""
    if not secret:
        raise ValueError("jwt_secret_blank")

    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=max(1, int(expires_minutes)))

    payload: Dict[str, Any] = {
        "user": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    """Verify signature + expiry. Raises jwt.InvalidTokenError subclasses."""
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[_JWT_ALG], options={"require": ["exp"]})
