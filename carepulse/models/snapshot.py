"""Periodic per-issue intensity snapshots (collection `signal_intensity_snapshots`)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class IntensitySnapshot(BaseModel):
    id: Optional[str] = None
    topic: str
    product_area: Optional[str] = None
    intensity: int          # sum of signal intensities in the lookback window
    signal_count: int
    snapshot_at: datetime
