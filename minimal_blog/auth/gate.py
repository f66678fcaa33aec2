"""Authorization gate.

HTTP middleware that runs before every route:

- `/api/user/register`, `/api/user/login`, `/api/user/logout` and anything
  outside `/api` pass through untouched.
- Every other `/api` request must carry a session token (Bearer header or the
  session cookie). The token is verified once here and the user id is attached
  as `request.state.user_id`. Route handlers read it via `deps.get_acting_user_id`
  and never decode the token themselves.

`request.state` is the only identity channel into handlers. The `user-id`
header is written on the response as an echo for clients; a `user-id` header
sent by the client is never read.
"""

from __future__ import annotations

from typing import Any, Optional

import jwt
from fastapi import Request
from fastapi.responses import JSONResponse

from minimal_blog.errors import Unauthorized

from .security import decode_access_token

API_PREFIX = "/api"
PUBLIC_API_PATHS = frozenset(
    {
        "/api/user/register",
        "/api/user/login",
        "/api/user/logout",
    }
)
USER_ID_HEADER = "user-id"


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def is_protected_path(path: str) -> bool:
    p = (path or "/").rstrip("/") or "/"
    if p != API_PREFIX and not p.startswith(API_PREFIX + "/"):
        return False
    return p not in PUBLIC_API_PATHS


def extract_token(request: Request, cfg: Any) -> Optional[str]:
    # Prefer Bearer token when explicitly provided.
    auth = request.headers.get("authorization") or ""
    scheme, _, credentials = auth.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    # Fall back to cookie.
    cookie_name = str(getattr(cfg, "AUTH_COOKIE_NAME", "token") or "token")
    return request.cookies.get(cookie_name) or None


def verify_request(request: Request, cfg: Any) -> str:
    """Return the verified user id for a request or raise Unauthorized."""
    token = extract_token(request, cfg)
    if not token:
        raise Unauthorized("missing_token")

    try:
        payload = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    except jwt.ExpiredSignatureError:
        raise Unauthorized("token_expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("token_invalid")
    except ValueError:
        raise Unauthorized("token_invalid")

    user_id = payload.get("user")
    if not user_id or not isinstance(user_id, str):
        raise Unauthorized("token_missing_user")
    return user_id


async def auth_gate(request: Request, call_next):
    if not is_protected_path(request.url.path):
        return await call_next(request)

    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        return JSONResponse({"error": "server_config_missing"}, status_code=500)

    try:
        user_id = verify_request(request, cfg)
    except Unauthorized as e:
        _debug(f"rejected {request.method} {request.url.path}: {e.detail}")
        return JSONResponse(
            {"error": e.detail, "loggedIn": False},
            status_code=e.status_code,
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user_id = user_id
    response = await call_next(request)
    # Response-only echo; handlers use request.state.
    response.headers[USER_ID_HEADER] = user_id
    return response
