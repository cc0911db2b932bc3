"""Candidate lifecycle: recording, judging, expiry and selection."""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, FakeClassifier, seed_candidate
from scout.candidates import CandidateManager, effective_status, looks_like_candidate_term, normalize_keyword
from scout.database import Database
from scout.errors import InvalidTransition, NotFoundError, UpstreamError
from scout.schemas import RawCandidateEntry
from scout.tools.classifier import CandidateJudgement


def test_normalize_keyword():
    assert normalize_keyword("  Claude   Code \n") == "claude code"
    assert normalize_keyword(None) == ""


@pytest.mark.parametrize("term,ok", [
    ("cursor", True),
    ("ai", False),
    ("machine learning", False),
    ("https://cursor.sh", False),
    ("!!!", False),
    ("x" * 81, False),
])
def test_candidate_term_rules(term, ok):
    assert looks_like_candidate_term(term) is ok


def test_effective_status_is_pure(db):
    candidate = seed_candidate(db, "windsurf", captured_at=NOW - timedelta(hours=100))
    assert effective_status(candidate, NOW) == "expired"
    assert effective_status(candidate, NOW - timedelta(hours=50)) == "approved"
    assert db.get_candidate(candidate.id).status == "approved"


def test_expired_candidate_is_healed_on_read(db, manager):
    old = seed_candidate(db, "windsurf", score=0.9, captured_at=NOW - timedelta(hours=100))
    fresh = seed_candidate(db, "bolt", score=0.8, captured_at=NOW - timedelta(hours=1))

    selected = manager.select_approved(10, now=NOW)
    assert [c.id for c in selected] == [fresh.id]
    assert manager.get_candidate(old.id, now=NOW).status == "expired"
    assert db.get_candidate(old.id).status == "expired"


def test_selection_orders_by_score_then_age(db, manager):
    seed_candidate(db, "lovable", score=0.9, captured_at=NOW - timedelta(hours=3))
    older = seed_candidate(db, "replit", score=0.95, captured_at=NOW - timedelta(hours=2))
    newer = seed_candidate(db, "devin", score=0.95, captured_at=NOW - timedelta(hours=1))

    selected = manager.select_approved(2, now=NOW)
    assert [c.id for c in selected] == [older.id, newer.id]


def test_selection_skips_queried_and_non_approved(db, manager):
    queried = seed_candidate(db, "replit", score=0.95, captured_at=NOW - timedelta(hours=2))
    seed_candidate(db, "devin", status="pending", captured_at=NOW - timedelta(hours=1))
    assert manager.mark_queried([queried.id], now=NOW) == 1

    assert manager.select_approved(10, now=NOW) == []
    assert [c.id for c in manager.select_approved(10, exclude_queried=False, now=NOW)] == [queried.id]
    assert manager.select_approved(0, now=NOW) == []


def test_record_candidates_validates_and_dedupes(manager):
    entries = [
        RawCandidateEntry(term="Cursor", source="news_keyword"),
        RawCandidateEntry(term="cursor ", source="news_keyword"),
        RawCandidateEntry(term="cursor", source="manual"),
        RawCandidateEntry(term="ai", source="news_keyword"),
        RawCandidateEntry(term="https://example.com", source="news_keyword"),
    ]
    stats = manager.record_candidates(entries, now=NOW)
    assert stats.attempted == 5
    assert stats.accepted == 2
    assert stats.deduped == 1
    assert stats.inserted == 2
    assert stats.sources == {"news_keyword": 1, "manual": 1}

    candidate = manager.list_candidates(now=NOW)[0]
    assert candidate.expires_at - candidate.captured_at == timedelta(hours=72)
    assert candidate.status == "pending"


def test_record_candidates_keeps_existing_state(db, manager):
    approved = seed_candidate(db, "cursor", score=0.9, captured_at=NOW - timedelta(hours=1))
    stats = manager.record_candidates([RawCandidateEntry(term="Cursor", source="news_keyword")], now=NOW)
    assert (stats.inserted, stats.existing) == (0, 1)
    assert db.get_candidate(approved.id).status == "approved"


def test_record_candidates_caps_per_source(db, settings):
    capped = CandidateManager(db, settings.model_copy(update={"candidate_max_per_source": 2}))
    entries = [RawCandidateEntry(term=f"tool{i}", source="news_keyword") for i in range(5)]
    stats = capped.record_candidates(entries, now=NOW)
    assert stats.accepted == 2
    assert stats.inserted == 2


def _pending(db, term, hours_ago=1):
    return seed_candidate(db, term, status="pending", captured_at=NOW - timedelta(hours=hours_ago))


def test_evaluate_pending_outcomes(db, settings):
    judge = FakeClassifier({
        "cursor": CandidateJudgement(label="tool", score=0.8, reason="AI code editor"),
        "mystery": CandidateJudgement(label="tool", score=0.3, reason="maybe"),
        "earnings": CandidateJudgement(label="non_tool", reason="finance term"),
        "agents": CandidateJudgement(label="unclear"),
        "nameless": CandidateJudgement(label="tool"),
    })
    manager = CandidateManager(db, settings, classifier=judge)
    ids = {term: _pending(db, term).id for term in judge.verdicts}

    stats = asyncio.run(manager.evaluate_pending(now=NOW))
    assert stats.enabled
    assert (stats.processed, stats.approved, stats.rejected, stats.pending, stats.errors) == (5, 1, 2, 2, 0)

    assert db.get_candidate(ids["cursor"]).status == "approved"
    low = db.get_candidate(ids["mystery"])
    assert low.status == "rejected"
    assert low.rejection_reason.startswith("score_below_threshold")
    assert db.get_candidate(ids["earnings"]).rejection_reason == "finance term"
    unclear = db.get_candidate(ids["agents"])
    assert unclear.status == "pending"
    assert unclear.llm_attempts == 1
    assert db.get_candidate(ids["nameless"]).status == "pending"


def test_threshold_boundary_approves(db, settings):
    judge = FakeClassifier({"bolt": CandidateJudgement(label="tool", score=0.6)})
    manager = CandidateManager(db, settings, classifier=judge)
    candidate = _pending(db, "bolt")
    asyncio.run(manager.evaluate_pending(now=NOW))
    assert db.get_candidate(candidate.id).status == "approved"


def test_classifier_errors_reject_after_attempt_cap(db, settings):
    judge = FakeClassifier({"flaky": UpstreamError("openrouter 503")})
    manager = CandidateManager(db, settings, classifier=judge)
    candidate = _pending(db, "flaky")

    for attempt in (1, 2):
        stats = asyncio.run(manager.evaluate_pending(now=NOW))
        assert stats.errors == 1
        current = db.get_candidate(candidate.id)
        assert current.status == "pending"
        assert current.llm_attempts == attempt

    asyncio.run(manager.evaluate_pending(now=NOW))
    final = db.get_candidate(candidate.id)
    assert final.status == "rejected"
    assert final.rejection_reason.startswith("llm_error")
    assert final.llm_attempts == 3

    # No attempts left: never sent to the judge again
    asyncio.run(manager.evaluate_pending(now=NOW))
    assert judge.calls.count("flaky") == 3


def test_evaluate_pending_disabled_without_classifier(db, settings):
    _pending(db, "cursor")
    stats = asyncio.run(CandidateManager(db, settings).evaluate_pending(now=NOW))
    assert stats.enabled is False
    assert stats.processed == 0


def test_evaluate_pending_skips_expired(db, manager, classifier):
    _pending(db, "stale", hours_ago=100)
    asyncio.run(manager.evaluate_pending(now=NOW))
    assert classifier.calls == []


def test_expire_stale_bulk(db, manager):
    _pending(db, "stale", hours_ago=100)
    seed_candidate(db, "old-approved", score=0.9, captured_at=NOW - timedelta(hours=80))
    _pending(db, "fresh")
    assert manager.expire_stale(now=NOW) == 2
    assert manager.expire_stale(now=NOW) == 0


def test_list_candidates_filters_and_limits_in_store(db, manager):
    for i in range(3):
        _pending(db, f"fresh{i}", hours_ago=i + 1)
    _pending(db, "stale", hours_ago=100)
    seed_candidate(db, "old-approved", score=0.9, captured_at=NOW - timedelta(hours=80))

    expired = manager.list_candidates(status="expired", now=NOW)
    assert {c.term for c in expired} == {"stale", "old-approved"}
    assert db.get_candidate(expired[0].id).status == "expired"

    pending = manager.list_candidates(status="pending", limit=2, now=NOW)
    assert [c.term for c in pending] == ["fresh0", "fresh1"]
    assert len(manager.list_candidates(limit=4, now=NOW)) == 4


def test_database_with_explicit_url_does_not_read_settings(monkeypatch):
    def unavailable():
        raise AssertionError("settings should not be read")

    monkeypatch.setattr("scout.database.get_settings", unavailable)
    database = Database("sqlite://")
    database.create_tables()
    assert database.query_candidates() == []


def test_manual_status_override(db, manager):
    candidate = _pending(db, "cursor")
    approved = manager.set_status(candidate.id, "approved", now=NOW)
    assert approved.status == "approved"
    assert approved.llm_label == "manual"
    assert approved.llm_score == 0.9

    rejected = manager.set_status(candidate.id, "rejected", now=NOW)
    assert rejected.rejection_reason == "manual"

    with pytest.raises(InvalidTransition):
        manager.set_status(candidate.id, "expired", now=NOW)


def test_expired_candidate_cannot_be_revived(db, manager):
    candidate = _pending(db, "stale", hours_ago=100)
    with pytest.raises(InvalidTransition):
        manager.set_status(candidate.id, "approved", now=NOW)


def test_unknown_candidate(manager):
    with pytest.raises(NotFoundError):
        manager.get_candidate("missing")
