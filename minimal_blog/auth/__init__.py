"""Authentication / authorization helpers.

This project intentionally keeps auth lightweight:

- Users table (email/password hash)
- JWT session tokens, stateless (no server-side session table)

The API supports both:

- `Authorization: Bearer <token>` (useful for scripts / API clients)
- A httpOnly `token` cookie (set by `/api/user/login`)

Tokens are verified once per request by the gate middleware (`gate.auth_gate`),
which hands the user id to route handlers through `request.state`.
"""

from .deps import get_acting_user_id, get_config
from .crud import create_user, verify_user_credentials
from .gate import auth_gate

__all__ = [
    "auth_gate",
    "get_acting_user_id",
    "get_config",
    "create_user",
    "verify_user_credentials",
]
