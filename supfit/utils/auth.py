"""Bearer-token helpers for the targets API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt

SUPABASE_AUDIENCE = "authenticated"


@dataclass
class AuthError(Exception):
    """Raised when the caller's Supabase session cannot be trusted."""

    message: str
    status_code: int = 401

    def __str__(self) -> str:  # pragma: no cover - dataclass convenience
        return self.message


def bearer_token(header: Optional[str]) -> str:
    """Return the token part of an ``Authorization: Bearer ...`` header."""

    if not header:
        return ""
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def decode_access_token(token: str, secret: str) -> Dict[str, Any]:
    """Verify a Supabase access token and return its claims.

    Supabase signs session tokens with the project's JWT secret (HS256) and
    the ``authenticated`` audience. ``sub`` is the user id.

    Raises
    ------
    AuthError
        If the token is missing, invalid or expired, or the secret is not
        configured on the server.
    """

    if not secret:
        raise AuthError("Token authentication is not configured on this server.", 503)

    if not token:
        raise AuthError("Authorization token missing.")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=SUPABASE_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Your session expired. Please log in again.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Authorization token is invalid.") from exc


def user_id_from_header(header: Optional[str], secret: str) -> str:
    claims = decode_access_token(bearer_token(header), secret)
    return str(claims["sub"])
