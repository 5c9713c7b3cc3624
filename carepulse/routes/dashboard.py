"""
dashboard.py — Read endpoints behind the CarePulse dashboard.

Routes:
  GET /api/v1/dashboard/chi?window=60&area=Network  — happiness index + trend
  GET /api/v1/dashboard/early-warning?lookback=60   — rising issues, ranked
  GET /api/v1/dashboard/metrics?hours=1             — headline volume numbers

All reads are rate-limited per client IP (slowapi). They return best-effort
results: "no data" is `{"score": null}`, never an error and never 0.

TESTING
───────
  pytest tests/test_routes.py -v

  curl "http://localhost:8000/api/v1/dashboard/chi?window=60"
  curl "http://localhost:8000/api/v1/dashboard/chi?window=60&area=Billing"
  curl "http://localhost:8000/api/v1/dashboard/early-warning?lookback=60"
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from carepulse.core.database import get_db
from carepulse.core.rate_limit import limiter
from carepulse.models.metrics import CHIResponse, DashboardMetrics, EarlyWarningResponse
from carepulse.services.chi import calculate_chi, get_chi_trend
from carepulse.services.metrics import get_dashboard_metrics
from carepulse.services.velocity import get_rising_issues

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


def _require_db(db):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return db


# ── GET /api/v1/dashboard/chi ──────────────────────────────────────────────────

@router.get("/chi", response_model=CHIResponse)
@limiter.limit("60/minute")
async def get_chi(
    request: Request,
    window: int = Query(default=60, ge=1, le=10080, description="Window length in minutes"),
    area: Optional[str] = Query(default=None, description="Product area name"),
    db=Depends(get_db),
):
    db = _require_db(db)
    score = await calculate_chi(db, window_minutes=window, product_area=area)
    trend = await get_chi_trend(db, window_minutes=window, product_area=area) if score is not None else 0
    return CHIResponse(score=score, trend=trend, window_minutes=window, product_area=area)


# ── GET /api/v1/dashboard/early-warning ────────────────────────────────────────

@router.get("/early-warning", response_model=EarlyWarningResponse)
@limiter.limit("30/minute")
async def get_early_warning(
    request: Request,
    lookback: int = Query(default=60, ge=1, le=1440, description="Minutes of recent signals to rank"),
    db=Depends(get_db),
):
    db = _require_db(db)
    return await get_rising_issues(db, lookback_minutes=lookback)


# ── GET /api/v1/dashboard/metrics ──────────────────────────────────────────────

@router.get("/metrics", response_model=DashboardMetrics)
@limiter.limit("30/minute")
async def get_metrics(
    request: Request,
    hours: int = Query(default=1, ge=1, le=168),
    db=Depends(get_db),
):
    db = _require_db(db)
    return await get_dashboard_metrics(db, hours=hours)
