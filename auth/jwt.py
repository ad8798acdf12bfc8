"""
Signed caller tokens.

Tokens are URL-safe base64 JSON payloads (``user_id`` + ``exp``) signed
with HMAC-SHA256 under ``config.jwt_secret`` (env var: ``JWT_SECRET``).
The external login service mints them with the same secret; this service
only verifies them.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Optional

from fastapi import HTTPException, status

from config.settings import config


def _sign(raw: bytes) -> str:
    return hmac.new(config.jwt_secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(user_id: str, *, expires_in: Optional[int] = None) -> str:
    """Create a signed token for ``user_id``."""
    ttl = config.jwt_expiry_seconds if expires_in is None else expires_in
    raw = json.dumps({"user_id": str(user_id), "exp": int(time.time()) + ttl}).encode()
    return urlsafe_b64encode(raw).decode() + "." + _sign(raw)


def verify_token(token: str) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``HTTPException(401)`` on invalid or expired tokens.
    """
    try:
        encoded, sig = token.split(".", 1)
        raw = urlsafe_b64decode(encoded.encode())
        if not hmac.compare_digest(sig, _sign(raw)):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        return payload["user_id"]
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {exc}",
            headers={"WWW-Authenticate": "Bearer"},
        )
