from __future__ import annotations

from typing import Any

from fastapi import Request

from minimal_blog.config import Config
from minimal_blog.db import ensure_db
from minimal_blog.errors import InternalError, ValidationError


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise InternalError("server_config_missing")
    ensure_db(cfg.DB_DSN)
    return cfg


def get_acting_user_id(request: Request) -> str:
    """User id attached by the authorization gate.

    The gate guarantees this on protected routes; a missing value means the
    route was mounted outside the gate.
    """
    user_id: Any = getattr(request.state, "user_id", None)
    if not user_id:
        raise ValidationError("User ID is missing in headers")
    return str(user_id)
