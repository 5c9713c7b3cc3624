"""
metrics.py — Headline numbers for the dashboard.

All three compare the current window [now − w, now) with the one before it
[now − 2w, now − w). They are best-effort reads: a storage error is logged
and the metric falls back to zeros instead of failing the dashboard.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from carepulse.core.cache import utc_now
from carepulse.core.stores import ProductAreaStore, SignalStore
from carepulse.models.metrics import DashboardMetrics, NewIssues, SignalTrend
from carepulse.services.chi import CHIEngine

logger = logging.getLogger(__name__)


def _windows(now: datetime, hours: float) -> tuple[datetime, datetime]:
    current_start = now - timedelta(hours=hours)
    return current_start, current_start - timedelta(hours=hours)


async def get_signal_trend(db, hours: float = 1, clock: Callable[[], datetime] = utc_now) -> SignalTrend:
    """Signal volume now vs the previous window, with a rounded % change."""
    store = SignalStore(db)
    current_start, previous_start = _windows(clock(), hours)
    try:
        current = await store.count(since=current_start)
        previous = await store.count(since=previous_start, until=current_start)
    except Exception as exc:
        logger.warning("Error calculating signal trend: %s", exc)
        return SignalTrend(current=0, previous=0, percentage_change=0)

    change = round((current - previous) / previous * 100) if previous > 0 else 0
    return SignalTrend(current=current, previous=previous, percentage_change=change)


async def get_new_issues_count(db, hours: float = 1, clock: Callable[[], datetime] = utc_now) -> NewIssues:
    """(topic, area) keys seen in the current window but not the previous one."""
    store = SignalStore(db)
    current_start, previous_start = _windows(clock(), hours)
    try:
        current = await store.query(since=current_start)
        previous = await store.query(since=previous_start, until=current_start)
    except Exception as exc:
        logger.warning("Error calculating new issues: %s", exc)
        return NewIssues(new_issues_count=0, total_issues=0)

    current_keys = {(s.topic, s.product_area) for s in current}
    previous_keys = {(s.topic, s.product_area) for s in previous}
    return NewIssues(
        new_issues_count=len(current_keys - previous_keys),
        total_issues=len(current_keys),
    )


async def get_positive_trends_count(
    db, window_minutes: int = 60, clock: Callable[[], datetime] = utc_now
) -> int:
    """Number of product areas whose CHI went up versus the previous window."""
    try:
        areas = await ProductAreaStore(db, allow_defaults=True).list_all()
        engine = CHIEngine(SignalStore(db), clock=clock)
        trends = await asyncio.gather(*(engine.trend(window_minutes, a.name) for a in areas))
    except Exception as exc:
        logger.warning("Error calculating positive trends: %s", exc)
        return 0
    return sum(1 for t in trends if t > 0)


async def get_dashboard_metrics(db, hours: float = 1, clock: Callable[[], datetime] = utc_now) -> DashboardMetrics:
    return DashboardMetrics(
        signal_trend=await get_signal_trend(db, hours, clock),
        new_issues=await get_new_issues_count(db, hours, clock),
        positive_trends=await get_positive_trends_count(db, round(hours * 60), clock),
    )


def format_minutes(minutes: float) -> str:
    """45 → '45m', 125 → '2h 5m', 1620 → '1d 3h'."""
    if minutes < 60:
        return f"{round(minutes)}m"
    if minutes < 1440:
        hours, mins = int(minutes // 60), round(minutes % 60)
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    days, hours = int(minutes // 1440), int((minutes % 1440) // 60)
    return f"{days}d {hours}h" if hours > 0 else f"{days}d"
