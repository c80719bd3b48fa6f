"""Viewer identity tokens for the gateway HTTP boundary."""
from __future__ import annotations

import secrets
import time

from jose import JWTError, jwt


def create_viewer_token(
    viewer_id: str,
    secret: str,
    *,
    ttl_seconds: int = 300,
    algorithm: str = "HS256",
) -> str:
    """Return a short-lived bearer token whose subject is ``viewer_id``."""
    now = int(time.time())
    payload = {
        "sub": viewer_id,
        "iat": now,
        "exp": now + max(1, ttl_seconds),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_viewer_token(token: str, secret: str, *, algorithm: str = "HS256") -> str:
    """Return the viewer identity carried by ``token``.

    Raises:
        JWTError: If the token is invalid, expired, or has no subject.
    """
    payload = jwt.decode(token, secret, algorithms=[algorithm])
    subject = payload.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    return str(subject)
