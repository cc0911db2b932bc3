"""
Trend Aggregator — completed tasks → keyword snapshots → hotlists and alerts.

SCORES:
  trend_score:  mean of the trailing TREND_SCORE_WINDOW points of the task's
                interest-over-time series (0-100 scale from Google Trends).
  spike_score:  (trend_score - mean(prev N)) / max(std(prev N), EPSILON)
                over the previous N snapshots of the same (keyword, locale),
                population std. Needs SPIKE_MIN_HISTORY prior snapshots.

ALERTS:
  Raised when spike_score > ALERT_SPIKE_THRESHOLD, at most one per
  (keyword, locale, bucket) where bucket = floor(epoch / ALERT_BUCKET_HOURS).
  Priority: high >= ALERT_HIGH_THRESHOLD, medium >= ALERT_MEDIUM_THRESHOLD,
  otherwise low.
  Tasks whose demand assessment came back non_tool still get a snapshot but
  never an alert.

Readers (hotlist, overview) never write.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from scout.candidates.terms import normalize_keyword
from scout.config import OVERVIEW_TIMEFRAMES, Settings
from scout.database import Database, new_id, utcnow
from scout.schemas import (
    Alert, AlertPriority, ClassifierLabel, Hotlist, HotlistEntry, KeywordSnapshot,
    Metric, Overview, Task,
)

logger = logging.getLogger(__name__)

EPSILON = 1e-6


def trend_score_from_result(result: Optional[dict], window: int = 3) -> Optional[float]:
    if not result:
        return None
    values = [
        float(p["value"]) for p in result.get("series") or []
        if isinstance(p, dict) and p.get("value") is not None and not p.get("missing")
    ]
    if not values:
        return None
    return round(float(np.mean(values[-window:])), 4)


def spike_score(score: float, history: Sequence[float]) -> float:
    arr = np.asarray(history, dtype=float)
    std = float(arr.std())
    return float((score - arr.mean()) / max(std, EPSILON))


def alert_bucket(ts: datetime, bucket_hours: int) -> int:
    return int(ts.timestamp() // (bucket_hours * 3600))


def is_tool_demand(assessment: Optional[dict]) -> bool:
    """A missing assessment counts as tool demand; only an explicit non_tool does not."""
    if not assessment:
        return True
    return assessment.get("label") != ClassifierLabel.NON_TOOL.value


class TrendAggregator:
    def __init__(self, db: Database, settings: Settings):
        self.db = db
        self.settings = settings

    def priority_for(self, spike: float) -> AlertPriority:
        if spike >= self.settings.alert_high_threshold:
            return AlertPriority.HIGH
        if spike >= self.settings.alert_medium_threshold:
            return AlertPriority.MEDIUM
        return AlertPriority.LOW

    def record_task_result(self, task: Task) -> Optional[KeywordSnapshot]:
        """Append a snapshot for a completed task and raise an alert on a spike."""
        score = trend_score_from_result(task.result, self.settings.trend_score_window)
        if score is None:
            logger.debug(f"No series for '{task.keyword}', no snapshot")
            return None

        snapshot = KeywordSnapshot(
            keyword=normalize_keyword(task.keyword),
            locale=task.locale,
            timeframe=task.timeframe,
            collected_at=task.completed_at or utcnow(),
            trend_score=score,
            run_id=task.run_id,
            task_id=task.task_id,
        )
        history = self.db.previous_snapshots(
            snapshot.keyword, snapshot.locale,
            before=snapshot.collected_at, limit=self.settings.spike_history,
        )
        self.db.add_snapshot(snapshot)
        if not is_tool_demand(task.metadata.get("demand_assessment")):
            logger.debug(f"'{task.keyword}' assessed as non-tool demand, no alert")
            return snapshot
        self._maybe_alert(snapshot, [h.trend_score for h in history])
        return snapshot

    def _maybe_alert(self, snapshot: KeywordSnapshot, history: List[float]) -> Optional[Alert]:
        if len(history) < self.settings.spike_min_history:
            return None
        spike = spike_score(snapshot.trend_score, history)
        if spike <= self.settings.alert_spike_threshold:
            return None

        alert = Alert(
            id=new_id(),
            keyword=snapshot.keyword,
            locale=snapshot.locale,
            priority=self.priority_for(spike),
            spike_score=round(spike, 4),
            triggered_at=snapshot.collected_at,
            bucket=alert_bucket(snapshot.collected_at, self.settings.alert_bucket_hours),
        )
        if not self.db.create_alert(alert):
            logger.debug(f"Alert for '{alert.keyword}' ({alert.locale}) already raised in bucket {alert.bucket}")
            return None
        logger.info(f"Spike alert [{alert.priority}] '{alert.keyword}' ({alert.locale}) spike={alert.spike_score:.2f}")
        return alert

    # ── Read side ─────────────────────────────────────────────────────

    def hotlist(self, timeframe: str, limit: Optional[int] = None) -> Hotlist:
        """Latest snapshot per (keyword, locale), trend_score desc then keyword asc."""
        latest: Dict[Tuple[str, str], KeywordSnapshot] = {}
        for snap in self.db.list_snapshots(timeframe=timeframe):
            # list_snapshots is chronological, later rows win
            latest[(snap.keyword, snap.locale)] = snap

        ranked = sorted(latest.values(), key=lambda s: (-s.trend_score, s.keyword, s.locale))
        limit = limit if limit is not None else self.settings.hotlist_limit
        return Hotlist(
            timeframe=timeframe,
            keywords=[
                HotlistEntry(
                    keyword=s.keyword, locale=s.locale,
                    trend_score=s.trend_score, collected_at=s.collected_at,
                )
                for s in ranked[:limit]
            ],
        )

    def overview(self, now: Optional[datetime] = None) -> Overview:
        now = now or utcnow()
        stats = self.db.snapshot_stats()
        latency = None
        if stats["latest"] is not None:
            latency = round((now - stats["latest"]).total_seconds() / 60.0, 1)

        metrics = [
            Metric(id="tracked-keywords", label="Tracked keywords", value=stats["keywords"]),
            Metric(
                id="hot-keywords", label="Alerts (24h)",
                value=self.db.count_alerts(since=now - timedelta(hours=24)),
            ),
            Metric(id="active-markets", label="Active markets", value=stats["locales"]),
            Metric(id="ingestion-latency", label="Ingestion latency", value=latency, unit="minutes"),
        ]
        return Overview(
            generated_at=now,
            metrics=metrics,
            hotlists=[self.hotlist(tf) for tf in OVERVIEW_TIMEFRAMES],
            alerts=self.db.list_alerts(limit=20),
        )
