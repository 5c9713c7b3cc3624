"""
raw_event.py — Raw events as delivered by the source fetchers, plus the
typed payload shape for every known source.

A raw event is an opaque payload tagged with a source id. The fetchers
(scrapers, mock generators) live outside this service; all we rely on is
the per-source shapes below. Every payload model ignores unknown fields
and defaults missing ones, so a partially filled payload still yields
whatever items it does contain.

Source → payload shape
──────────────────────
  reddit              list of posts            {title, selftext}
  google-news         list of articles         {title, description}
  tmobile-community   list of discussions      {title, excerpt}
  outage-report       {events: [{description}], social_mentions: [str]}
  downdetector        {user_comments: [{text, location}]}
  customer-feedback   {comments: [{comment, city, state}]}
  istheservicedown    {status_message, social_mentions: [{text}]}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SourceType(str, Enum):
    REDDIT = "reddit"
    GOOGLE_NEWS = "google-news"
    COMMUNITY = "tmobile-community"
    OUTAGE_REPORT = "outage-report"
    DOWNDETECTOR = "downdetector"
    CUSTOMER_FEEDBACK = "customer-feedback"
    ISTHESERVICEDOWN = "istheservicedown"


class RawEvent(BaseModel):
    """One fetch result awaiting extraction. `source` stays a plain string
    so events from sources we don't know yet still load (and get skipped)."""

    id: Optional[str] = None
    source: str
    payload: Any = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    processed: bool = False

    @field_validator("fetched_at")
    @classmethod
    def _fetched_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class GeoLocation(BaseModel):
    """Free-form location attached to an item by its source."""

    location: Optional[str] = None   # downdetector: "Dallas, TX"
    city:     Optional[str] = None   # customer-feedback
    state:    Optional[str] = None


# ── Per-source payload shapes ────────────────────────────────────────────────

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RedditPost(_Payload):
    title: Optional[str] = ""
    selftext: Optional[str] = ""


class NewsArticle(_Payload):
    title: Optional[str] = ""
    description: Optional[str] = ""


class CommunityDiscussion(_Payload):
    title: Optional[str] = ""
    excerpt: Optional[str] = ""


class OutageEvent(_Payload):
    description: Optional[str] = ""


class OutageReportPayload(_Payload):
    events: list[Any] = Field(default_factory=list)
    social_mentions: list[Any] = Field(default_factory=list)


class DownDetectorComment(_Payload):
    text: Optional[str] = ""
    location: Optional[str] = None


class DownDetectorPayload(_Payload):
    user_comments: list[Any] = Field(default_factory=list)


class CustomerComment(_Payload):
    comment: Optional[str] = ""
    city: Optional[str] = None
    state: Optional[str] = None


class CustomerFeedbackPayload(_Payload):
    comments: list[Any] = Field(default_factory=list)


class SocialMention(_Payload):
    text: Optional[str] = ""


class ServiceStatusPayload(_Payload):
    status_message: Optional[str] = ""
    social_mentions: list[Any] = Field(default_factory=list)
