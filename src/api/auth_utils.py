"""
Bearer token and cron secret checks.

Tokens are issued by the main application. The queue service only needs
the "sub" claim and, for organization-scoped callers, the "org" claim.
"""

import os
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any, cast
from uuid import UUID

from jose import jwt

SECRET_KEY = os.environ.get("QUEUE_SECRET_KEY", "dev-secret-unsafe")
ALGORITHM = "HS256"
OPERATOR_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(
    subject: str,
    organization_id: UUID | None = None,
    expires_delta: timedelta | None = None,
    now_utc: datetime | None = None,
) -> str:
    """
    Sign a token for an operator or a test.

    Args:
        subject: Value of the "sub" claim
        organization_id: Restricts the token to one organization's items
        expires_delta: Lifetime, OPERATOR_TOKEN_EXPIRE_MINUTES by default
        now_utc: Issue time (for determinism). Defaults to datetime.now(UTC).
    """
    issued = now_utc if now_utc is not None else datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=OPERATOR_TOKEN_EXPIRE_MINUTES)

    claims: dict[str, Any] = {"sub": subject, "iat": issued, "exp": issued + lifetime}
    if organization_id is not None:
        claims["org"] = str(organization_id)

    encoded: str = jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)
    return encoded


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verified claims, or None for a bad signature, expiry or missing subject."""
    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except jwt.JWTError:
        return None
    return cast(dict[str, Any], payload)


def cron_secret_matches(provided: str | None, expected: str) -> bool:
    """Constant-time comparison of the x-cron-secret header."""
    if not provided:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())
