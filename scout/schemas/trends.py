"""
Trend aggregation models: snapshots, alerts, hotlists and the overview.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import AlertPriority, CamelModel


class KeywordSnapshot(CamelModel):
    """Append-only trend measurement for one (keyword, locale)."""
    keyword: str
    locale: str
    timeframe: str
    collected_at: datetime
    trend_score: float
    run_id: Optional[str] = None
    task_id: Optional[str] = None


class Alert(CamelModel):
    id: str
    keyword: str
    locale: str
    priority: AlertPriority
    spike_score: float
    triggered_at: datetime
    bucket: int


class HotlistEntry(CamelModel):
    keyword: str
    locale: str
    trend_score: float
    collected_at: datetime


class Hotlist(CamelModel):
    timeframe: str
    keywords: List[HotlistEntry] = Field(default_factory=list)


class Metric(CamelModel):
    id: str
    label: str
    value: Optional[float] = None
    unit: Optional[str] = None


class Overview(CamelModel):
    generated_at: datetime
    metrics: List[Metric] = Field(default_factory=list)
    hotlists: List[Hotlist] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
