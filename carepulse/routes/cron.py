"""
cron.py — Endpoints the external scheduler hits on a timer.

Routes (all require `Authorization: Bearer <CRON_SECRET>`):
  POST|GET /api/v1/cron/process            — one ingestion batch
  POST|GET /api/v1/cron/capture-snapshots  — one intensity snapshot + pruning

GET is accepted as well as POST because some hosted schedulers can only
issue GET requests.

There is no in-process scheduler; each call is one discrete batch
invocation. Do not schedule overlapping ingestion runs.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from carepulse.core.database import get_db
from carepulse.core.security import require_cron_secret
from carepulse.models.metrics import IngestionReport, SnapshotCaptureResult
from carepulse.services.ingestion import run_ingestion
from carepulse.services.velocity import capture_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.api_route("/process", methods=["GET", "POST"], response_model=IngestionReport)
async def cron_process(db=Depends(get_db)):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return await run_ingestion(db)


@router.api_route("/capture-snapshots", methods=["GET", "POST"], response_model=SnapshotCaptureResult)
async def cron_capture_snapshots(db=Depends(get_db)):
    """Append one intensity snapshot per active issue, then prune old ones."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    try:
        return await capture_snapshot(db)
    except Exception as exc:
        logger.error("Snapshot capture failed: %s", exc)
        raise HTTPException(status_code=500, detail="Snapshot capture failed")
