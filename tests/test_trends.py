"""Trend aggregation: scores, spike alerts, hotlists and the overview."""

from datetime import timedelta

import pytest

from conftest import NOW
from scout.database import new_id
from scout.schemas import KeywordSnapshot, Task
from scout.trends import alert_bucket, is_tool_demand, spike_score, trend_score_from_result

BASELINE = [9, 10, 11, 10, 9, 11, 10]


def _completed_task(keyword, values, completed_at, locale="global", timeframe="past_7_days", metadata=None):
    return Task(
        task_id=new_id(),
        run_id="run-1",
        status="completed",
        keyword=keyword,
        locale=locale,
        timeframe=timeframe,
        posted_at=completed_at - timedelta(seconds=5),
        completed_at=completed_at,
        result={"series": [{"timestamp": 1700000000 + i, "value": v} for i, v in enumerate(values)]},
        metadata=metadata or {},
    )


def _seed_history(db, keyword, scores, end, locale="global", timeframe="past_7_days"):
    for i, score in enumerate(scores):
        db.add_snapshot(KeywordSnapshot(
            keyword=keyword,
            locale=locale,
            timeframe=timeframe,
            collected_at=end - timedelta(days=len(scores) - i),
            trend_score=score,
        ))


def test_trend_score_uses_trailing_window():
    result = {"series": [{"value": 10}, {"value": 20}, {"value": 30}, {"value": 60}]}
    assert trend_score_from_result(result, window=3) == pytest.approx(36.6667, abs=1e-3)


def test_trend_score_skips_missing_points():
    result = {"series": [{"value": 50}, {"value": 0, "missing": True}, {"value": 70}]}
    assert trend_score_from_result(result, window=3) == pytest.approx(60.0)
    assert trend_score_from_result({"series": []}) is None
    assert trend_score_from_result(None) is None


def test_spike_score_population_std():
    assert spike_score(14, [10, 12, 8]) == pytest.approx((14 - 10) / 1.632993, rel=1e-5)
    # Flat history divides by epsilon instead of zero
    assert spike_score(11, [10, 10, 10]) > 1e5


def test_alert_bucket_six_hours():
    assert alert_bucket(NOW, 6) == alert_bucket(NOW + timedelta(hours=5, minutes=59), 6)
    assert alert_bucket(NOW + timedelta(hours=6), 6) == alert_bucket(NOW, 6) + 1


def test_no_alert_without_enough_history(db, aggregator):
    _seed_history(db, "cursor", [10], NOW)
    snapshot = aggregator.record_task_result(_completed_task("cursor", [100, 100, 100], NOW))
    assert snapshot.trend_score == 100
    assert db.list_alerts() == []


def test_task_without_series_makes_no_snapshot(db, aggregator):
    task = _completed_task("cursor", [], NOW)
    assert aggregator.record_task_result(task) is None
    assert db.list_snapshots() == []


def test_spike_raises_one_alert_per_bucket(db, aggregator):
    _seed_history(db, "cursor", BASELINE, NOW)

    aggregator.record_task_result(_completed_task("Cursor", [100, 100, 100], NOW + timedelta(hours=1)))
    aggregator.record_task_result(_completed_task("cursor", [100, 100, 100], NOW + timedelta(hours=2)))

    alerts = db.list_alerts()
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.keyword == "cursor"
    assert alert.priority == "high"
    assert alert.bucket == alert_bucket(NOW + timedelta(hours=1), 6)

    # Next bucket may alert again
    aggregator.record_task_result(_completed_task("cursor", [400, 400, 400], NOW + timedelta(hours=7)))
    assert len(db.list_alerts()) == 2


def test_alerts_are_per_locale(db, aggregator):
    for locale in ("us", "de"):
        _seed_history(db, "cursor", BASELINE, NOW, locale=locale)
        aggregator.record_task_result(_completed_task("cursor", [100, 100, 100], NOW, locale=locale))
    assert sorted(a.locale for a in db.list_alerts()) == ["de", "us"]


def test_non_tool_demand_keeps_snapshot_but_skips_alert(db, aggregator):
    _seed_history(db, "taylor swift", BASELINE, NOW)
    task = _completed_task(
        "taylor swift", [100, 100, 100], NOW + timedelta(hours=1),
        metadata={"source": "rising", "demand_assessment": {"label": "non_tool", "score": 0.9}},
    )
    snapshot = aggregator.record_task_result(task)
    assert snapshot.trend_score == 100
    assert db.list_alerts() == []


def test_is_tool_demand():
    assert is_tool_demand(None)
    assert is_tool_demand({})
    assert is_tool_demand({"label": "unclear", "reason": "llm_error: timeout"})
    assert is_tool_demand({"label": "tool", "score": 0.8})
    assert not is_tool_demand({"label": "non_tool"})


@pytest.mark.parametrize("spike,priority", [(2.5, "low"), (3.0, "medium"), (4.9, "medium"), (5.0, "high")])
def test_alert_priority_thresholds(aggregator, spike, priority):
    assert aggregator.priority_for(spike) == priority


def test_hotlist_latest_snapshot_ranked_deterministically(db, aggregator):
    def snap(keyword, score, hours_ago, locale="global", timeframe="past_7_days"):
        db.add_snapshot(KeywordSnapshot(
            keyword=keyword, locale=locale, timeframe=timeframe,
            collected_at=NOW - timedelta(hours=hours_ago), trend_score=score,
        ))

    snap("cursor", 99, hours_ago=10)
    snap("cursor", 70, hours_ago=1)
    snap("bolt", 50, hours_ago=2)
    snap("airtable ai", 50, hours_ago=3)
    snap("devin", 100, hours_ago=1, timeframe="past_day")

    first = aggregator.hotlist("past_7_days")
    second = aggregator.hotlist("past_7_days")
    ranked = [(e.keyword, e.trend_score) for e in first.keywords]
    assert ranked == [("cursor", 70), ("airtable ai", 50), ("bolt", 50)]
    assert first == second
    assert [e.keyword for e in aggregator.hotlist("past_7_days", limit=1).keywords] == ["cursor"]


def test_overview_projection(db, aggregator):
    _seed_history(db, "cursor", BASELINE, NOW, locale="us")
    aggregator.record_task_result(_completed_task("cursor", [100, 100, 100], NOW - timedelta(minutes=30), locale="us"))
    aggregator.record_task_result(_completed_task("bolt", [20, 20, 20], NOW - timedelta(hours=2), timeframe="past_day"))

    overview = aggregator.overview(now=NOW)
    metrics = {m.id: m.value for m in overview.metrics}
    assert metrics["tracked-keywords"] == 2
    assert metrics["active-markets"] == 2
    assert metrics["hot-keywords"] == 1
    assert metrics["ingestion-latency"] == pytest.approx(30.0)
    assert [h.timeframe for h in overview.hotlists] == ["past_day", "past_7_days"]
    assert [e.keyword for e in overview.hotlists[0].keywords] == ["bolt"]
    assert len(overview.alerts) == 1

    body = overview.model_dump(by_alias=True, mode="json")
    assert set(body) == {"generatedAt", "metrics", "hotlists", "alerts"}


def test_overview_empty_store(aggregator):
    overview = aggregator.overview(now=NOW)
    metrics = {m.id: m.value for m in overview.metrics}
    assert metrics["tracked-keywords"] == 0
    assert metrics["ingestion-latency"] is None
    assert overview.alerts == []
