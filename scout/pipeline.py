"""
Ingestion pipeline — one call from feeds to (optionally) a queued run.

  harvest → external sources → expire stale → judge pending → start run?

Each stage writes its own results before the next begins, so a failure in a
later stage never loses earlier work. A feed failure aborts before anything
is written. External sources fail one at a time: their errors are reported
in the counts and never abort the ingest.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from scout.candidates import CandidateManager
from scout.news import ExternalCollector, NewsHarvester
from scout.runs import RunOrchestrator
from scout.schemas import Run, RunOptions

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    status: str
    counts: Dict[str, Any]
    run: Optional[Run] = None

    def as_response(self) -> Dict[str, Any]:
        body = {"status": self.status, **self.counts}
        if self.run is not None:
            body["runSummary"] = self.run.model_dump(by_alias=True, mode="json")
        return body


async def ingest_news(
    harvester: NewsHarvester,
    candidates: CandidateManager,
    orchestrator: Optional[RunOrchestrator] = None,
    trigger_run: bool = False,
    run_options: Optional[RunOptions] = None,
    now: Optional[datetime] = None,
    collector: Optional[ExternalCollector] = None,
) -> IngestResult:
    """Harvest news, refresh the candidate pool and optionally queue a run.

    The returned run (when triggered) is only queued; the caller schedules
    `orchestrator.execute_run(run.id)`.
    """
    harvest = await harvester.harvest(now=now)

    recorded = harvest.recorded
    candidate_counts: Optional[Dict[str, Any]] = None
    if collector is not None:
        outcome = await collector.collect(now=now)
        recorded = candidates.record_candidates(outcome.entries, now=now, into=recorded)
        candidate_counts = {
            **recorded.model_dump(by_alias=True),
            "newsCandidateCount": len(harvest.candidates),
            "externalCounts": outcome.counts,
            "errors": outcome.errors,
        }
    elif recorded is not None:
        candidate_counts = recorded.model_dump(by_alias=True)

    expired = candidates.expire_stale(now=now)
    evaluation = await candidates.evaluate_pending(now=now)

    counts: Dict[str, Any] = {
        "inserted": harvest.inserted,
        "updated": harvest.updated,
        "skipped": harvest.skipped,
        "news": {
            "feedsProcessed": harvest.feeds_processed,
            "keywordsDetected": harvest.keywords_detected,
        },
        "candidates": candidate_counts,
        "llm": evaluation.model_dump(by_alias=True),
        "expirations": expired,
    }

    run = None
    if trigger_run:
        if orchestrator is None:
            logger.warning("Run requested after ingest but no orchestrator is configured")
        else:
            options = run_options or RunOptions(trigger_source="news_ingest")
            if options.trigger_source is None:
                options = options.model_copy(update={"trigger_source": "news_ingest"})
            run = orchestrator.start_run(options, now=now)

    logger.info(
        f"Ingest complete: {harvest.inserted} new items, "
        f"{evaluation.approved} candidates approved"
        + (f", run {run.id} queued" if run else "")
    )
    return IngestResult(status="ok", counts=counts, run=run)
