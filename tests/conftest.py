"""Shared fixtures: in-memory store, frozen settings and fake upstreams."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from scout.candidates import CandidateManager
from scout.config import Settings
from scout.database import Database
from scout.news.feeds import FeedEntry
from scout.runs import RunOrchestrator, RunRegistry
from scout.schemas import CandidateStatus
from scout.tools.classifier import CandidateJudgement, DemandAssessment
from scout.tools.trend_probe import ProbeResult, RankedQuery, SeriesPoint
from scout.trends import TrendAggregator

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_result(keyword: str, values=(40, 50, 60), rising=(), cost: float = 0.01) -> ProbeResult:
    return ProbeResult(
        keyword=keyword,
        series=[SeriesPoint(timestamp=1700000000 + i * 3600, value=v) for i, v in enumerate(values)],
        rising=[RankedQuery(query=q, value=v) for q, v in rising],
        cost=cost,
    )


class FakeProbe:
    """Scripted trend probe. Unscripted keywords get a plain series."""

    def __init__(self, responses: Optional[Dict[str, object]] = None, cost: float = 0.01):
        self.responses = responses or {}
        self.cost = cost
        self.calls: List[str] = []

    async def probe(self, keyword, locale, timeframe):
        self.calls.append(keyword)
        response = self.responses.get(keyword)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return make_result(keyword, cost=self.cost)
        return response


class FakeClassifier:
    def __init__(
        self,
        verdicts: Optional[Dict[str, object]] = None,
        demands: Optional[Dict[str, object]] = None,
    ):
        self.verdicts = verdicts or {}
        self.demands = demands or {}
        self.calls: List[str] = []
        self.demand_calls: List[str] = []

    async def classify(self, candidate):
        self.calls.append(candidate.term)
        verdict = self.verdicts.get(candidate.term, CandidateJudgement(label="unclear"))
        if isinstance(verdict, Exception):
            raise verdict
        return verdict

    async def assess_demand(self, keyword, **context):
        self.demand_calls.append(keyword)
        verdict = self.demands.get(keyword, DemandAssessment(label="unclear"))
        if isinstance(verdict, Exception):
            raise verdict
        return verdict


class FakeFeedSource:
    def __init__(self, batches: Optional[Dict[str, List[FeedEntry]]] = None, error: Optional[Exception] = None):
        self.batches = batches or {}
        self.error = error
        self.fetches = 0

    async def fetch(self):
        self.fetches += 1
        if self.error is not None:
            raise self.error
        return self.batches


def feed_entry(title, link, summary="", published_at=None, categories=None) -> FeedEntry:
    return FeedEntry(
        title=title,
        link=link,
        feed_url="https://feeds.example.com/ai.xml",
        feed_title="Example AI News",
        summary=summary,
        published_at=published_at,
        categories=categories or [],
    )


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        sync_token="",
        dataforseo_login="",
        dataforseo_password="",
        openrouter_api_key="",
        news_feeds="https://feeds.example.com/ai.xml",
        external_sources="",
        run_concurrency=2,
        run_cost_budget=5.0,
        run_estimated_task_cost=0.01,
        probe_timeout=5.0,
    )


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_tables()
    return database


@pytest.fixture
def registry():
    return RunRegistry()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def manager(db, settings, classifier):
    return CandidateManager(db, settings, classifier=classifier)


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def aggregator(db, settings):
    return TrendAggregator(db, settings)


@pytest.fixture
def orchestrator(db, settings, manager, probe, aggregator, registry):
    return RunOrchestrator(db, settings, manager, probe=probe, aggregator=aggregator, registry=registry)


def seed_candidate(
    db: Database,
    term: str,
    status: str = CandidateStatus.APPROVED.value,
    score: Optional[float] = None,
    captured_at: Optional[datetime] = None,
    ttl_hours: int = 72,
    source: str = "news_keyword",
):
    """Insert a candidate row directly and move it to `status`."""
    captured_at = captured_at or datetime.now(timezone.utc)
    db.insert_candidate_if_absent({
        "term": term,
        "term_normalized": term.lower(),
        "source": source,
        "captured_at": captured_at,
        "expires_at": captured_at + timedelta(hours=ttl_hours),
        "metadata": {"seed_origin": "rising"},
    })
    candidate = next(c for c in db.query_candidates() if c.term == term and c.source == source)
    if status != CandidateStatus.PENDING.value or score is not None:
        db.transition_candidate(candidate.id, [CandidateStatus.PENDING], {
            "status": status,
            "llm_label": "tool" if score is not None else None,
            "llm_score": score,
        })
    return db.get_candidate(candidate.id)


