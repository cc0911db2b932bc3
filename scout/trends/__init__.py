"""Trend aggregation: snapshots, hotlists and spike alerts."""

from .aggregator import (
    TrendAggregator, alert_bucket, is_tool_demand, spike_score, trend_score_from_result,
)

__all__ = ["TrendAggregator", "alert_bucket", "is_tool_demand", "spike_score", "trend_score_from_result"]
