"""
velocity.py — Early warning: which issues are getting worse, and how fast.

An "issue" is a (topic, product_area) pair. Two scheduled operations:

capture_snapshot()
    Sum intensity and count of every issue seen in the last 24 h, append
    one IntensitySnapshot per issue stamped "now", prune snapshots older
    than 7 days.

get_rising_issues()
    For every issue with signals in the lookback window (default 1 h):

    ≥ 2 snapshots in the last 24 h
        velocity   = (newest.intensity − oldest.intensity) / hours between them
        confidence = min(0.9, 0.5 + snapshots / 20)
    otherwise, > 1 signal and ≥ 6 minutes since the first one
        velocity   = current intensity / hours since first signal
        confidence = 0.3
    otherwise
        velocity   = 0

    projected        = max(current, current + velocity × 2 h)
    time_to_critical = (100 − current) / velocity   if growing and below 100, else 0
    affected_users   = round(current × 100)         (fixed approximation)

    Issues with velocity ≤ 5/h are dropped; the rest are ranked by velocity
    and the top 5 returned.

All thresholds come from settings and can be overridden per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from carepulse.core.cache import utc_now
from carepulse.core.config import settings
from carepulse.core.stores import ProductAreaStore, SignalStore, SnapshotStore
from carepulse.models.metrics import EarlyWarningResponse, RisingIssue, SnapshotCaptureResult
from carepulse.models.product_area import DEFAULT_AREA_COLOR
from carepulse.models.signal import Signal
from carepulse.models.snapshot import IntensitySnapshot

logger = logging.getLogger(__name__)

IssueKey = tuple[str, Optional[str]]

_SNAPSHOT_MIN_CONFIDENCE = 0.5
_SNAPSHOT_MAX_CONFIDENCE = 0.9
_ESTIMATE_CONFIDENCE = 0.3
_MIN_ESTIMATE_HOURS = 0.1     # six minutes of data


@dataclass
class IssueAggregate:
    topic: str
    product_area: Optional[str]
    total_intensity: int = 0
    signal_count: int = 0
    first_detected: Optional[datetime] = None
    latest_detected: Optional[datetime] = None

    def add(self, signal: Signal) -> None:
        self.total_intensity += signal.intensity
        self.signal_count += 1
        if self.first_detected is None or signal.detected_at < self.first_detected:
            self.first_detected = signal.detected_at
        if self.latest_detected is None or signal.detected_at > self.latest_detected:
            self.latest_detected = signal.detected_at


@dataclass
class VelocityEstimate:
    velocity: float = 0.0
    projected_intensity: float = 0.0
    time_to_critical_hours: float = 0.0
    confidence: float = _SNAPSHOT_MIN_CONFIDENCE


def group_issues(signals: Sequence[Signal]) -> dict[IssueKey, IssueAggregate]:
    issues: dict[IssueKey, IssueAggregate] = {}
    for signal in signals:
        key = (signal.topic, signal.product_area)
        if key not in issues:
            issues[key] = IssueAggregate(topic=signal.topic, product_area=signal.product_area)
        issues[key].add(signal)
    return issues


def _project(
    current: float,
    velocity: float,
    confidence: float,
    projection_hours: float,
    critical_threshold: float,
) -> VelocityEstimate:
    time_to_critical = 0.0
    if velocity > 0 and current < critical_threshold:
        time_to_critical = (critical_threshold - current) / velocity
    return VelocityEstimate(
        velocity=velocity,
        projected_intensity=max(current, current + velocity * projection_hours),
        time_to_critical_hours=time_to_critical,
        confidence=confidence,
    )


def velocity_from_snapshots(
    snapshots: Sequence[IntensitySnapshot],
    current_intensity: float,
    projection_hours: Optional[float] = None,
    critical_threshold: Optional[float] = None,
) -> Optional[VelocityEstimate]:
    """Velocity from the oldest and newest snapshot. None with fewer than two."""
    if len(snapshots) < 2:
        return None

    projection_hours = projection_hours if projection_hours is not None else settings.projection_hours
    critical_threshold = critical_threshold if critical_threshold is not None else settings.critical_intensity_threshold

    ordered = sorted(snapshots, key=lambda s: s.snapshot_at)
    oldest, newest = ordered[0], ordered[-1]
    elapsed_hours = (newest.snapshot_at - oldest.snapshot_at).total_seconds() / 3600
    if elapsed_hours <= 0:
        return VelocityEstimate(projected_intensity=current_intensity)

    velocity = (newest.intensity - oldest.intensity) / elapsed_hours
    confidence = min(_SNAPSHOT_MAX_CONFIDENCE, _SNAPSHOT_MIN_CONFIDENCE + len(snapshots) / 20)
    return _project(current_intensity, velocity, confidence, projection_hours, critical_threshold)


def velocity_from_signals(
    issue: IssueAggregate,
    now: datetime,
    projection_hours: Optional[float] = None,
    critical_threshold: Optional[float] = None,
) -> VelocityEstimate:
    """Rough velocity for a new issue with no snapshot history yet."""
    projection_hours = projection_hours if projection_hours is not None else settings.projection_hours
    critical_threshold = critical_threshold if critical_threshold is not None else settings.critical_intensity_threshold

    current = issue.total_intensity
    if issue.signal_count <= 1 or issue.first_detected is None:
        return VelocityEstimate(projected_intensity=current)

    hours = (now - issue.first_detected).total_seconds() / 3600
    if hours < _MIN_ESTIMATE_HOURS:
        return VelocityEstimate(projected_intensity=current)

    return _project(current, current / hours, _ESTIMATE_CONFIDENCE, projection_hours, critical_threshold)


class VelocityEngine:
    """Snapshot capture and rising-issue ranking over the storage boundary."""

    def __init__(self, db, clock: Callable[[], datetime] = utc_now):
        self._signals = SignalStore(db)
        self._snapshots = SnapshotStore(db)
        self._areas = ProductAreaStore(db, allow_defaults=True)
        self._clock = clock

    async def capture_snapshot(
        self,
        lookback_hours: Optional[int] = None,
        retention_days: Optional[int] = None,
    ) -> SnapshotCaptureResult:
        lookback_hours = lookback_hours or settings.snapshot_lookback_hours
        retention_days = retention_days or settings.snapshot_retention_days
        now = self._clock()

        signals = await self._signals.query(since=now - timedelta(hours=lookback_hours))
        snapshots = [
            IntensitySnapshot(
                topic=issue.topic,
                product_area=issue.product_area,
                intensity=issue.total_intensity,
                signal_count=issue.signal_count,
                snapshot_at=now,
            )
            for issue in group_issues(signals).values()
        ]
        captured = await self._snapshots.insert_many(snapshots)

        pruned = 0
        try:
            pruned = await self._snapshots.delete_older_than(now - timedelta(days=retention_days))
        except Exception as exc:
            # Retention is housekeeping; the capture itself succeeded.
            logger.warning("Error cleaning old snapshots: %s", exc)

        logger.info("Captured %d snapshots, pruned %d", captured, pruned)
        return SnapshotCaptureResult(snapshots_captured=captured, snapshots_pruned=pruned, timestamp=now)

    async def _area_colors(self) -> dict[str, str]:
        try:
            return {a.name: a.color for a in await self._areas.list_all()}
        except Exception as exc:
            logger.warning("Product area lookup failed: %s", exc)
            return {}

    async def rising_issues(
        self,
        lookback_minutes: Optional[int] = None,
        rising_threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> EarlyWarningResponse:
        lookback_minutes = lookback_minutes or settings.early_warning_lookback_minutes
        rising_threshold = rising_threshold if rising_threshold is not None else settings.rising_velocity_threshold
        limit = limit or settings.rising_issues_limit
        now = self._clock()

        signals = await self._signals.query(since=now - timedelta(minutes=lookback_minutes))
        history_since = now - timedelta(hours=settings.snapshot_lookback_hours)
        colors = await self._area_colors()

        rising: list[tuple[float, RisingIssue]] = []
        for issue in group_issues(signals).values():
            try:
                snapshots = await self._snapshots.query(issue.topic, issue.product_area, since=history_since)
            except Exception as exc:
                logger.warning("Error fetching snapshots for %r: %s", issue.topic, exc)
                continue

            estimate = velocity_from_snapshots(snapshots, issue.total_intensity)
            if estimate is None:
                estimate = velocity_from_signals(issue, now)

            if estimate.velocity <= rising_threshold:
                continue

            rising.append((estimate.velocity, RisingIssue(
                topic=issue.topic,
                product_area=issue.product_area,
                color=colors.get(issue.product_area or "", DEFAULT_AREA_COLOR),
                current_intensity=issue.total_intensity,
                projected_intensity=round(estimate.projected_intensity),
                velocity=round(estimate.velocity, 1),
                time_to_critical_hours=round(estimate.time_to_critical_hours, 1),
                confidence=round(estimate.confidence, 2),
                affected_users=round(issue.total_intensity * settings.affected_users_per_signal),
            )))

        rising.sort(key=lambda pair: pair[0], reverse=True)
        return EarlyWarningResponse(
            rising_issues=[issue for _, issue in rising[:limit]],
            total_rising=len(rising),
            timestamp=now,
        )


# ── Public entry points ───────────────────────────────────────────────────────

async def capture_snapshot(db) -> SnapshotCaptureResult:
    return await VelocityEngine(db).capture_snapshot()


async def get_rising_issues(db, lookback_minutes: Optional[int] = None) -> EarlyWarningResponse:
    return await VelocityEngine(db).rising_issues(lookback_minutes)
