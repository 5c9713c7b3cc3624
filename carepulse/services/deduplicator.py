"""
deduplicator.py — Fold near-identical reports into one signal.

Two signals are duplicates when ALL of the following hold:
  1. same product area
  2. detected within `window` of each other (default 30 min)
  3. Jaccard similarity of their keyword sets (case-insensitive)
     is at least `threshold` (default 0.5)

Bulk mode (group_duplicates) partitions a list greedily: the first
ungrouped signal seeds a group and collects every later ungrouped signal
that duplicates the seed. The representative is the member with the
largest |sentiment|, earliest timestamp on ties.

Incremental mode (find_existing_duplicate + merge_signals) is what the
ingestion run uses against already-stored signals.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from carepulse.core.config import settings
from carepulse.models.signal import DuplicateGroup, Signal


def _window(window: Optional[timedelta]) -> timedelta:
    return window if window is not None else timedelta(minutes=settings.dedup_window_minutes)


def _threshold(threshold: Optional[float]) -> float:
    return threshold if threshold is not None else settings.dedup_similarity_threshold


def jaccard_similarity(keywords_a: Iterable[str], keywords_b: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B| over lowercased keywords. 0 if either side is empty."""
    a = {k.lower() for k in keywords_a}
    b = {k.lower() for k in keywords_b}
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def is_within_window(t1: datetime, t2: datetime, window: Optional[timedelta] = None) -> bool:
    return abs(t1 - t2) <= _window(window)


def are_duplicates(
    a: Signal,
    b: Signal,
    window: Optional[timedelta] = None,
    threshold: Optional[float] = None,
) -> bool:
    if a.product_area != b.product_area:
        return False
    if not is_within_window(a.detected_at, b.detected_at, window):
        return False
    return jaccard_similarity(a.keywords, b.keywords) >= _threshold(threshold)


def select_representative(signals: Sequence[Signal]) -> Signal:
    if not signals:
        raise ValueError("Cannot select representative from empty group")
    return min(signals, key=lambda s: (-abs(s.sentiment), s.detected_at))


def average_sentiment(signals: Sequence[Signal]) -> float:
    if not signals:
        return 0.0
    return sum(s.sentiment for s in signals) / len(signals)


def group_duplicates(
    signals: Sequence[Signal],
    window: Optional[timedelta] = None,
    threshold: Optional[float] = None,
) -> list[DuplicateGroup]:
    """Greedy partition of *signals* into duplicate groups, seed order preserved."""
    arena = list(signals)
    grouped = [False] * len(arena)
    groups: list[DuplicateGroup] = []

    for i, seed in enumerate(arena):
        if grouped[i]:
            continue
        grouped[i] = True
        members = [seed]

        for j in range(i + 1, len(arena)):
            if not grouped[j] and are_duplicates(seed, arena[j], window, threshold):
                grouped[j] = True
                members.append(arena[j])

        groups.append(DuplicateGroup(
            representative=select_representative(members),
            members=members,
            intensity=len(members),
            avg_sentiment=average_sentiment(members),
        ))

    return groups


def find_existing_duplicate(
    candidate: Signal,
    existing: Iterable[Signal],
    window: Optional[timedelta] = None,
    threshold: Optional[float] = None,
) -> Optional[Signal]:
    """First stored signal the candidate duplicates, or None."""
    for signal in existing:
        if are_duplicates(candidate, signal, window, threshold):
            return signal
    return None


def merge_signals(existing: Signal, incoming: Signal) -> Signal:
    """
    Fold *incoming* into *existing*.

    sentiment   → mean of the two
    detected_at → the earlier of the two
    intensity   → existing + 1 (mirrored in meta.duplicate_count)
    meta        → latest_source / latest_detected record the incoming report
    """
    intensity = existing.intensity + 1
    meta = existing.meta.model_copy(update={
        "duplicate_count": intensity,
        "latest_source": incoming.source,
        "latest_detected": incoming.detected_at,
    })
    return existing.model_copy(update={
        "sentiment": (existing.sentiment + incoming.sentiment) / 2,
        "detected_at": min(existing.detected_at, incoming.detected_at),
        "intensity": intensity,
        "meta": meta,
    })
