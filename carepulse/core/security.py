"""
security.py — Bearer-token guard for the scheduler endpoints.

The cron runner calls /api/v1/cron/* with `Authorization: Bearer <CRON_SECRET>`.
The comparison is constant-time. When CRON_SECRET is unset the endpoints
refuse to run at all (500) rather than run unauthenticated.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carepulse.core.config import settings

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


def verify_cron_token(token: str, secret: str) -> bool:
    """Return True if *token* matches *secret* (both non-empty)."""
    if not token or not secret:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> None:
    """FastAPI dependency — reject requests that don't carry the cron secret."""
    if not settings.cron_secret:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    token = credentials.credentials if credentials else ""
    if not verify_cron_token(token, settings.cron_secret):
        logger.warning("Rejected cron call with invalid authorization header")
        raise HTTPException(status_code=401, detail="Unauthorized")
