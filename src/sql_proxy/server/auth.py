"""Bearer-token guard for the proxy endpoints.

Disabled unless a JWT secret is configured, in which case the proxy is
no longer an internal-only service and every call must carry an HS256
token signed with that secret.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import jwt
import structlog
from fastapi import HTTPException, Request

JWT_ALGORITHMS = ["HS256"]


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_token(token: str, secret: str) -> dict[str, Any]:
    """Decode and verify a token. Raises jwt.InvalidTokenError."""
    return jwt.decode(token, secret, algorithms=JWT_ALGORITHMS)


def make_token_guard(secret: str | None) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing bearer tokens when ``secret`` is set."""

    async def guard(request: Request) -> None:
        if not secret:
            return
        token = bearer_token(request)
        if token is None:
            raise HTTPException(status_code=401, detail="Token required")
        try:
            claims = verify_token(token, secret)
        except jwt.InvalidTokenError as e:
            structlog.get_logger().warning("rejected token", error=str(e))
            raise HTTPException(status_code=403, detail="Invalid token") from e
        request.state.user = claims
        structlog.contextvars.bind_contextvars(user=claims.get("sub") or claims.get("id"))

    return guard
