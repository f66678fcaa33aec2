from __future__ import annotations

import re
import secrets

ID_LENGTH = 24

_ID_RE = re.compile(r"^[0-9a-f]{24}$")


def new_id() -> str:
    """Random 24-char lowercase hex identifier (96 bits)."""
    return secrets.token_hex(ID_LENGTH // 2)


def is_valid_id(value: str | None) -> bool:
    if not value:
        return False
    return bool(_ID_RE.match(value))
