"""FastAPI dependency injection -- Depends() patterns using app.state from lifespan."""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from scout.candidates import CandidateManager
from scout.config import Settings
from scout.database import Database
from scout.errors import AuthorizationError
from scout.news import ExternalCollector, NewsHarvester
from scout.runs import RunOrchestrator
from scout.trends import TrendAggregator

logger = logging.getLogger(__name__)

_open_mode_warned = False


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def verify_sync_token(
    request: Request,
    authorization: Annotated[Optional[str], Header()] = None,
):
    """Bearer token gate. Empty AI_TRENDS_SYNC_TOKEN = open mode (all requests pass)."""
    global _open_mode_warned
    required = request.app.state.settings.sync_token
    if not required:
        if not _open_mode_warned:
            logger.warning("AI_TRENDS_SYNC_TOKEN is not set; privileged routes are open")
            _open_mode_warned = True
        return
    if authorization != f"Bearer {required}":
        raise AuthorizationError("unauthorized")


def get_candidate_manager(request: Request) -> CandidateManager:
    state = request.app.state
    return CandidateManager(state.db, state.settings, classifier=state.classifier)


def get_aggregator(request: Request) -> TrendAggregator:
    return TrendAggregator(request.app.state.db, request.app.state.settings)


def get_orchestrator(
    request: Request,
    candidates: Annotated[CandidateManager, Depends(get_candidate_manager)],
    aggregator: Annotated[TrendAggregator, Depends(get_aggregator)],
) -> RunOrchestrator:
    state = request.app.state
    return RunOrchestrator(
        state.db, state.settings, candidates,
        probe=state.probe, aggregator=aggregator, registry=state.registry,
    )


def get_harvester(
    request: Request,
    candidates: Annotated[CandidateManager, Depends(get_candidate_manager)],
) -> NewsHarvester:
    state = request.app.state
    return NewsHarvester(state.db, state.settings, source=state.feed_source, candidates=candidates)


def get_collector(request: Request) -> Optional[ExternalCollector]:
    return request.app.state.collector


# Type aliases for cleaner route signatures
DB = Annotated[Database, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Candidates = Annotated[CandidateManager, Depends(get_candidate_manager)]
Aggregator = Annotated[TrendAggregator, Depends(get_aggregator)]
Orchestrator = Annotated[RunOrchestrator, Depends(get_orchestrator)]
Harvester = Annotated[NewsHarvester, Depends(get_harvester)]
Collector = Annotated[Optional[ExternalCollector], Depends(get_collector)]
SyncToken = Depends(verify_sync_token)
