"""
Session token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256.
Secret key is loaded from ``config.session_secret`` (env var: ``SESSION_SECRET``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Optional

from fastapi import HTTPException, status

from auth.models import AuthenticatedUser
from config.settings import config


def _sign(raw: bytes) -> str:
    return hmac.new(config.session_secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(
    user_id: str,
    organization_id: str,
    expires_in: Optional[int] = None,
) -> str:
    """Create a signed token carrying ``user_id``, ``organization_id`` and expiry."""
    payload = {
        "user_id": user_id,
        "organization_id": organization_id,
        "exp": int(time.time()) + (expires_in if expires_in is not None else config.session_expiry_seconds),
    }
    raw = json.dumps(payload).encode()
    return b64encode(raw).decode() + "." + _sign(raw)


def verify_token(token: str) -> AuthenticatedUser:
    """
    Verify token and return the caller it identifies.

    Raises ``HTTPException(401)`` on invalid or expired tokens.
    """
    try:
        parts = token.split(".", 1)
        if len(parts) != 2:
            raise ValueError("bad format")
        raw = b64decode(parts[0])
        if not hmac.compare_digest(parts[1], _sign(raw)):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        return AuthenticatedUser(
            user_id=payload["user_id"],
            organization_id=payload["organization_id"],
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {exc}",
        )
