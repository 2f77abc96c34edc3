"""Login and token verification against the upstream API.

Tokens are opaque strings: the upstream issues and verifies them, and the
cache layer only passes them through as a bearer header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from usercache.client import UpstreamClient, UpstreamResult
from usercache.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AuthResult:
    """Outcome of a login attempt."""

    success: bool
    token: str | None = None
    admin: dict[str, Any] | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class TokenVerification:
    """Outcome of a token verification."""

    valid: bool
    admin: dict[str, Any] | None = None
    error: str | None = None


class AuthClient:
    """Obtains and validates bearer tokens; never raises on upstream failure."""

    def __init__(self, upstream: UpstreamClient) -> None:
        self._upstream = upstream

    async def login(self, email: str, password: str) -> AuthResult:
        result = await self._upstream.request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        body = _body(result)
        if result.status_code == 200 and body.get("success") and body.get("token"):
            logger.info("login_succeeded")
            return AuthResult(
                success=True,
                token=str(body["token"]),
                admin=body.get("admin") if isinstance(body.get("admin"), dict) else None,
            )

        error = result.error or body.get("error") or "Authentication failed"
        logger.warning("login_failed", status_code=result.status_code, error=error)
        return AuthResult(success=False, error=error)

    async def verify_token(self, token: str) -> TokenVerification:
        result = await self._upstream.request("POST", "/auth/verify", json={"token": token})
        body = _body(result)
        if result.status_code == 200 and body.get("success"):
            if body.get("valid"):
                admin = body.get("admin")
                return TokenVerification(valid=True, admin=admin if isinstance(admin, dict) else {})
            return TokenVerification(valid=False, error=body.get("error") or "Token is invalid")

        error = result.error or body.get("error") or "Token verification failed"
        logger.warning("token_verification_failed", status_code=result.status_code, error=error)
        return TokenVerification(valid=False, error=error)


def _body(result: UpstreamResult) -> dict[str, Any]:
    return result.data if result.success and isinstance(result.data, dict) else {}


__all__ = ["AuthClient", "AuthResult", "TokenVerification"]
