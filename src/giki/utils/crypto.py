from __future__ import annotations

import secrets
import uuid


def random_id(prefix: str = "", n: int = 16) -> str:
    # URL-safe token without padding, deterministic length-ish.
    tok = secrets.token_urlsafe(n)
    return f"{prefix}{tok}"


def new_jti() -> str:
    return str(uuid.uuid4())
