"""
metrics.py — Response schemas for the processing, cron and dashboard routes.

IngestionReport      — outcome of one "process pending raw events" run
ProcessingStatus     — backlog summary for GET /api/v1/process/raw
SnapshotCaptureResult— outcome of one snapshot capture run
CHIResponse          — happiness index + trend
RisingIssue          — one early-warning entry
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class IngestionReport(BaseModel):
    """Counts, not all-or-nothing: one bad item never fails the batch."""

    total: int = 0               # raw events fetched for this run
    processed: int = 0           # raw events flagged processed
    items_attempted: int = 0
    signals_created: int = 0
    signals_merged: int = 0
    failed: int = 0              # items whose scoring/storage step raised
    rejected: int = 0            # raw event docs that failed validation (flagged, not extracted)
    message: str = "Processing complete"


class ProcessingStatus(BaseModel):
    unprocessed_events: int
    total_signals: int
    status: Literal["ready", "idle"]


class SnapshotCaptureResult(BaseModel):
    success: bool = True
    snapshots_captured: int = 0
    snapshots_pruned: int = 0
    timestamp: datetime


class CHIResponse(BaseModel):
    score: Optional[int] = None      # None = no data in window (never 0 by default)
    trend: int = 0                   # current minus previous equal-length window
    window_minutes: int
    product_area: Optional[str] = None


class RisingIssue(BaseModel):
    topic: str
    product_area: Optional[str] = None
    color: str
    current_intensity: int
    projected_intensity: int
    velocity: float                  # intensity units per hour, 1 decimal
    time_to_critical_hours: float    # 0 when already critical or not growing
    confidence: float
    affected_users: int              # fixed multiplier estimate, not a measured count


class EarlyWarningResponse(BaseModel):
    success: bool = True
    rising_issues: list[RisingIssue] = Field(default_factory=list)
    total_rising: int = 0
    timestamp: datetime


class SignalTrend(BaseModel):
    current: int
    previous: int
    percentage_change: int


class NewIssues(BaseModel):
    new_issues_count: int
    total_issues: int


class DashboardMetrics(BaseModel):
    signal_trend: SignalTrend
    new_issues: NewIssues
    positive_trends: int
