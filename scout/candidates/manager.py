"""
Candidate Manager — owns the candidate lifecycle.

State machine:
  pending  --(judge: tool, score >= threshold)--> approved
  pending  --(judge: non_tool | low score | operator reject)--> rejected(reason)
  pending  --(judge error on the final attempt)--> rejected("llm_error: ...")
  pending|approved --(now > expires_at)--> expired
  approved --(selected by a run)--> queried_at set, status unchanged

Expiry is evaluated on every read (effective_status) and written back, so
correctness never depends on a background sweeper.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from scout.config import Settings
from scout.database import Database, utcnow
from scout.errors import InvalidTransition, NotFoundError, UpstreamError
from scout.schemas import (
    Candidate, CandidateEvaluationStats, CandidateStatus, ClassifierLabel,
    RawCandidateEntry, RecordCandidateStats,
)

from .terms import looks_like_candidate_term, normalize_keyword

logger = logging.getLogger(__name__)

_EXPIRABLE = (CandidateStatus.PENDING.value, CandidateStatus.APPROVED.value)

# Operator-settable statuses
MANUAL_STATUSES = (
    CandidateStatus.PENDING.value,
    CandidateStatus.APPROVED.value,
    CandidateStatus.REJECTED.value,
)


def effective_status(candidate: Candidate, now: datetime) -> str:
    """Status as of `now`, applying expiry without touching the store."""
    status = CandidateStatus(candidate.status).value
    if status in _EXPIRABLE and now > candidate.expires_at:
        return CandidateStatus.EXPIRED.value
    return status


def _selection_key(candidate: Candidate):
    # llm_score desc (unscored last), then captured_at asc
    has_score = candidate.llm_score is not None
    return (0 if has_score else 1, -(candidate.llm_score or 0.0), candidate.captured_at)


class CandidateManager:
    """Records, judges, selects and expires keyword candidates."""

    def __init__(self, db: Database, settings: Settings, classifier=None):
        self.db = db
        self.settings = settings
        self.classifier = classifier
        self.ttl = timedelta(hours=settings.candidate_ttl_hours)

    # ── Reads (self-healing) ──────────────────────────────────────────

    def _heal(self, candidate: Candidate, now: datetime) -> Candidate:
        status = effective_status(candidate, now)
        if status == candidate.status:
            return candidate
        self.db.transition_candidate(candidate.id, _EXPIRABLE, {"status": status})
        logger.debug(f"Candidate '{candidate.term}' expired on read")
        return candidate.model_copy(update={"status": status})

    def get_candidate(self, candidate_id: str, now: Optional[datetime] = None) -> Candidate:
        candidate = self.db.get_candidate(candidate_id)
        if candidate is None:
            raise NotFoundError(f"Candidate {candidate_id} not found")
        return self._heal(candidate, now or utcnow())

    def list_candidates(
        self,
        status: Optional[str] = None,
        limit: int = 100,
        now: Optional[datetime] = None,
    ) -> List[Candidate]:
        """Newest first. Stale rows are expired in one statement before filtering."""
        now = now or utcnow()
        self.db.expire_candidates(now)
        rows = self.db.query_candidates(statuses=[status] if status else None, limit=limit)
        return [self._heal(c, now) for c in rows]

    def select_approved(
        self,
        limit: int,
        exclude_queried: bool = True,
        now: Optional[datetime] = None,
    ) -> List[Candidate]:
        """Approved, unexpired candidates ordered by llm_score desc, captured_at asc."""
        if limit <= 0:
            return []
        now = now or utcnow()
        eligible = []
        for candidate in self.db.query_candidates(statuses=[CandidateStatus.APPROVED]):
            candidate = self._heal(candidate, now)
            if candidate.status != CandidateStatus.APPROVED.value:
                continue
            if exclude_queried and candidate.queried_at is not None:
                continue
            eligible.append(candidate)
        eligible.sort(key=_selection_key)
        return eligible[:limit]

    # ── Writes ────────────────────────────────────────────────────────

    def record_candidates(
        self,
        entries: Iterable[RawCandidateEntry],
        now: Optional[datetime] = None,
        into: Optional[RecordCandidateStats] = None,
    ) -> RecordCandidateStats:
        """Validate, dedupe and insert-if-absent a batch of raw candidates.

        Passing the stats of an earlier call (`into`) continues that batch:
        per-source and total caps count across both calls.
        """
        now = now or utcnow()
        stats = into.model_copy(deep=True) if into is not None else RecordCandidateStats()
        seen = set()
        per_source: Counter = Counter(stats.sources)

        for entry in entries:
            stats.attempted += 1
            term = (entry.term or "").strip()
            if not looks_like_candidate_term(term):
                continue
            normalized = normalize_keyword(term)
            key = (normalized, entry.source)
            if key in seen:
                stats.deduped += 1
                continue
            if per_source[entry.source] >= self.settings.candidate_max_per_source:
                continue
            if stats.accepted >= self.settings.candidate_max_total:
                continue

            seen.add(key)
            per_source[entry.source] += 1
            stats.accepted += 1

            captured_at = entry.captured_at or now
            inserted = self.db.insert_candidate_if_absent({
                "term": term[:120],
                "term_normalized": normalized,
                "source": entry.source,
                "captured_at": captured_at,
                "expires_at": captured_at + self.ttl,
                "raw_title": entry.title,
                "raw_summary": entry.summary,
                "url": entry.url,
                "metadata": entry.metadata,
            })
            if inserted:
                stats.inserted += 1
            else:
                stats.existing += 1

        stats.sources = dict(per_source)
        logger.debug(
            f"Candidates recorded: {stats.accepted}/{stats.attempted} accepted, "
            f"{stats.inserted} new, {stats.existing} existing"
        )
        return stats

    async def evaluate_pending(
        self,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CandidateEvaluationStats:
        """Run the judge over pending candidates that still have attempts left."""
        if self.classifier is None:
            return CandidateEvaluationStats(enabled=False)

        now = now or utcnow()
        max_attempts = self.settings.max_llm_attempts
        batch = self.db.query_candidates(
            statuses=[CandidateStatus.PENDING],
            limit=limit if limit is not None else self.settings.llm_batch,
            newest_first=True,
            max_attempts=max_attempts,
            unexpired_at=now,
        )
        stats = CandidateEvaluationStats(processed=len(batch))

        for candidate in batch:
            attempts = candidate.llm_attempts + 1
            updates = {"llm_attempts": attempts, "llm_last_attempt": utcnow()}
            try:
                judgement = await self.classifier.classify(candidate)
            except UpstreamError as e:
                stats.errors += 1
                reason = f"llm_error: {e}"
                logger.warning(f"Judge failed for '{candidate.term}' (attempt {attempts}): {e}")
                updates["llm_reason"] = reason
                if attempts >= max_attempts:
                    updates.update(status=CandidateStatus.REJECTED.value, rejection_reason=reason)
            else:
                label = ClassifierLabel(judgement.label).value
                updates.update(
                    llm_label=label,
                    llm_score=judgement.score,
                    llm_reason=judgement.reason or None,
                )
                updates.update(self._verdict(label, judgement.score, judgement.reason))

            self.db.transition_candidate(candidate.id, [CandidateStatus.PENDING], updates)
            status = updates.get("status", CandidateStatus.PENDING.value)
            if status == CandidateStatus.APPROVED.value:
                stats.approved += 1
            elif status == CandidateStatus.REJECTED.value:
                stats.rejected += 1
            else:
                stats.pending += 1

        logger.info(
            f"Judged {stats.processed} candidates: {stats.approved} approved, "
            f"{stats.rejected} rejected, {stats.pending} pending, {stats.errors} errors"
        )
        return stats

    def _verdict(self, label: str, score: Optional[float], reason: str) -> dict:
        threshold = self.settings.candidate_approval_threshold
        if label == ClassifierLabel.NON_TOOL.value:
            return {
                "status": CandidateStatus.REJECTED.value,
                "rejection_reason": reason or "non_tool",
            }
        if label == ClassifierLabel.TOOL.value and score is not None:
            if score >= threshold:
                return {"status": CandidateStatus.APPROVED.value, "rejection_reason": None}
            return {
                "status": CandidateStatus.REJECTED.value,
                "rejection_reason": f"score_below_threshold: {score:.2f} < {threshold:.2f}",
            }
        # unclear, or a tool verdict without a score: ask again next batch
        return {}

    def mark_queried(self, candidate_ids: Iterable[str], now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        marked = 0
        for candidate_id in candidate_ids:
            if self.db.transition_candidate(
                candidate_id, [CandidateStatus.APPROVED], {"queried_at": now},
            ):
                marked += 1
        return marked

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        expired = self.db.expire_candidates(now or utcnow())
        if expired:
            logger.info(f"Expired {expired} stale candidates")
        return expired

    def set_status(
        self,
        candidate_id: str,
        status: str,
        now: Optional[datetime] = None,
    ) -> Candidate:
        """Operator override. Expired candidates stay expired."""
        if status not in MANUAL_STATUSES:
            raise InvalidTransition(f"Status '{status}' cannot be set manually")
        candidate = self.get_candidate(candidate_id, now)
        if candidate.status == CandidateStatus.EXPIRED.value:
            raise InvalidTransition(f"Candidate '{candidate.term}' has expired")

        if status == CandidateStatus.APPROVED.value:
            updates = {"status": status, "llm_label": "manual", "llm_score": 0.9, "rejection_reason": None}
        elif status == CandidateStatus.REJECTED.value:
            updates = {"status": status, "rejection_reason": "manual"}
        else:
            updates = {"status": status, "rejection_reason": None}

        if not self.db.transition_candidate(candidate_id, MANUAL_STATUSES, updates):
            raise InvalidTransition(f"Candidate {candidate_id} changed concurrently")
        return self.get_candidate(candidate_id, now)
