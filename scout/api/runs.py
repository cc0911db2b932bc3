"""Trend run router -- start, inspect, list and cancel runs.

A run is created synchronously (status queued, seed tasks written) and then
executed as a background task, so POST /run returns 202 immediately. Progress
is read back through GET /runs/{run_id}.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Query

from scout.api.dependencies import Orchestrator, SyncToken
from scout.api.schemas import RunListResponse, RunRequest, StartRunResponse
from scout.schemas import Run, RunDetail

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/run", status_code=202, response_model=StartRunResponse, dependencies=[SyncToken])
async def start_run(
    orchestrator: Orchestrator,
    background_tasks: BackgroundTasks,
    body: Optional[RunRequest] = None,
):
    options = body or RunRequest()
    if options.trigger_source is None:
        options = options.model_copy(update={"trigger_source": "api"})
    run = orchestrator.start_run(options)
    background_tasks.add_task(orchestrator.execute_run, run.id)
    return StartRunResponse(run=run)


@router.get("/runs", response_model=RunListResponse)
async def list_runs(orchestrator: Orchestrator, limit: int = Query(20, ge=1, le=200)):
    runs = orchestrator.list_runs(limit=limit)
    return RunListResponse(total=len(runs), runs=runs)


@router.get("/runs/{run_id}", response_model=RunDetail)
async def get_run(run_id: str, orchestrator: Orchestrator):
    return orchestrator.get_run(run_id)


@router.post("/runs/{run_id}/cancel", response_model=Run, dependencies=[SyncToken])
async def cancel_run(run_id: str, orchestrator: Orchestrator):
    """Stop dispatching; queued tasks become errors, in-flight tasks finish."""
    return orchestrator.cancel_run(run_id)
