"""
signal.py — Scored, deduplicated units of customer feedback.

Invariants enforced at the model boundary:
  • sentiment is clamped to [-1, 1]
  • intensity is at least 1 (a stored 0 or null counts as one report)
  • timestamps are UTC-aware (naive input is read as UTC)

Document shape in the `signals` collection:

  {
    "topic": "network outage dallas",
    "keywords": ["network", "outage", "dallas"],
    "sentiment": -0.62,
    "intensity": 3,
    "detected_at": ISODate("2026-10-19T14:05:00Z"),
    "source": "downdetector",
    "product_area": "Network",
    "geo": {"location": "Dallas, TX"},
    "meta": {"confidence": 0.6, "sentiment_confidence": 0.8,
             "duplicate_count": 3, "raw_event_id": "...", ...}
  }
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from carepulse.models.raw_event import GeoLocation, as_utc


class SignalMeta(BaseModel):
    """Provenance and confidence. Extra keys are preserved on round-trip."""

    model_config = ConfigDict(extra="allow")

    confidence: float = 0.0              # topic classification confidence
    sentiment_confidence: float = 0.0
    duplicate_count: int = 1
    raw_event_id: Optional[str] = None
    original_text: Optional[str] = None  # first 1000 chars of the item
    keywords: list[str] = Field(default_factory=list)
    latest_source: Optional[str] = None
    latest_detected: Optional[datetime] = None

    @field_validator("latest_detected")
    @classmethod
    def _latest_detected_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None


class Signal(BaseModel):
    id: Optional[str] = None
    topic: str = ""
    keywords: list[str] = Field(default_factory=list)
    sentiment: float = 0.0
    intensity: int = 1
    detected_at: datetime
    source: str
    product_area: Optional[str] = None
    geo: Optional[GeoLocation] = None
    meta: SignalMeta = Field(default_factory=SignalMeta)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _clamp_sentiment(cls, v):
        v = float(v or 0.0)
        return max(-1.0, min(1.0, v))

    @field_validator("intensity", mode="before")
    @classmethod
    def _min_intensity(cls, v):
        return max(1, int(v or 1))

    @field_validator("detected_at")
    @classmethod
    def _detected_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


@dataclass
class DuplicateGroup:
    """One bulk-deduplication group. Never persisted."""

    representative: Signal
    members: list[Signal] = field(default_factory=list)
    intensity: int = 0
    avg_sentiment: float = 0.0
