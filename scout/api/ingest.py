"""News ingest router -- harvest feeds and external sources, refresh candidates, optionally queue a run."""

import logging

from fastapi import APIRouter, BackgroundTasks

from scout.api.dependencies import Candidates, Collector, Harvester, Orchestrator, SyncToken
from scout.pipeline import ingest_news

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/ingest", dependencies=[SyncToken])
async def ingest(
    harvester: Harvester,
    candidates: Candidates,
    collector: Collector,
    orchestrator: Orchestrator,
    background_tasks: BackgroundTasks,
    run: bool = False,
):
    """Harvest the feed window. With ?run=true a trend run is queued afterwards."""
    result = await ingest_news(
        harvester, candidates,
        orchestrator=orchestrator if run else None,
        trigger_run=run,
        collector=collector,
    )
    if result.run is not None:
        background_tasks.add_task(orchestrator.execute_run, result.run.id)
    return result.as_response()
