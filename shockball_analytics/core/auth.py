"""
Shared-secret protection for the admin sync triggers.

Scheduled cron calls and manual "sync now" requests must present
``Authorization: Bearer <CRON_SECRET>``. The sync core performs no
authorization of its own; this check runs before the orchestrator is
touched.
"""
import hmac
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import Request

from shockball_analytics.core.config import settings
from shockball_analytics.core.logging import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def secrets_match(provided: str, expected: str) -> bool:
    """Constant-time comparison of two secrets."""
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_cron_secret(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> None:
    """
    Validate the cron/admin bearer secret.

    Raises:
        HTTPException: 401 when the secret is missing or wrong, or when no
            secret is configured in production
    """
    expected = settings.CRON_SECRET

    if not expected:
        if settings.is_production():
            logger.warning("CRON_SECRET not configured in production - rejecting request")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )
        logger.debug("CRON_SECRET not configured - allowing request outside production")
        return

    if credentials is None or not secrets_match(credentials.credentials, expected):
        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected admin sync request from {client_host}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
