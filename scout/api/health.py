"""Health check router -- store status, configured integrations, config summary."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from scout import __version__
from scout.api.dependencies import AppSettings
from scout.api.schemas import HealthResponse

router = APIRouter()


@router.get("/")
async def root():
    return {"service": "AI Trends Scout API", "version": __version__}


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, settings: AppSettings):
    state = request.app.state
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        active_runs=state.registry.list_active(),
        config={
            # Integrations
            "probe_configured": state.probe is not None,
            "classifier_configured": state.classifier is not None,
            "sync_token_required": bool(settings.sync_token),
            "news_feeds": len(settings.news_feed_urls),
            # Run defaults
            "run_cost_budget": settings.run_cost_budget,
            "run_concurrency": settings.run_concurrency,
            "run_max_candidates": settings.run_max_candidates,
            "max_discovery_depth": settings.max_discovery_depth,
            # Candidate gates
            "candidate_approval_threshold": settings.candidate_approval_threshold,
            "candidate_ttl_hours": settings.candidate_ttl_hours,
        },
    )
