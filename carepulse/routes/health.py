"""
Health check endpoint.

Used by the container HEALTHCHECK, the scheduler (before it triggers a
batch run) and the dashboard's connectivity indicator.

Reports DB connectivity separately so callers can tell "API down" from
"API up, MongoDB unreachable".
"""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from carepulse.core import database as db_module
from carepulse.core.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()

API_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str    # "ok" whenever the process answers
    version: str
    database: str  # "connected" | "disconnected"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check() -> HealthResponse:
    """Liveness plus a MongoDB ping. Always 200 while the process is alive."""
    db_status = "disconnected"
    try:
        # Module reference so tests can swap db_module.db_client
        if db_module.db_client.client is not None:
            await db_module.db_client.client.admin.command("ping")
            db_status = "connected"
    except Exception as exc:
        logger.warning("DB ping failed: %s", exc)

    return HealthResponse(
        status="ok",
        version=API_VERSION,
        database=db_status,
        environment=settings.environment,
    )
