"""
processing.py — Manual trigger and backlog status for the ingestion batch.

Routes:
  POST /api/v1/process/raw?limit=N — process one batch of pending raw events
  GET  /api/v1/process/raw         — how many raw events are waiting

The scheduler normally drives ingestion through /api/v1/cron/process; this
router is the operator's handle for running a batch by hand.

TESTING
───────
  curl -X POST "http://localhost:8000/api/v1/process/raw?limit=50"
  curl http://localhost:8000/api/v1/process/raw
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from carepulse.core.database import get_db
from carepulse.models.metrics import IngestionReport, ProcessingStatus
from carepulse.services.ingestion import get_processing_status, run_ingestion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/process", tags=["processing"])


@router.post("/raw", response_model=IngestionReport)
async def process_raw_events(
    limit: int = Query(default=100, ge=1, le=1000, description="Max raw events to process"),
    db=Depends(get_db),
):
    """Turn up to `limit` unprocessed raw events into signals."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return await run_ingestion(db, batch_limit=limit)


@router.get("/raw", response_model=ProcessingStatus)
async def processing_status(db=Depends(get_db)):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return await get_processing_status(db)
