"""
AI Trends Scout - Main Entry Point.
FastAPI server and CLI interface.
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scout import __version__
from scout.api import candidates, health, ingest, overview, roots, runs
from scout.candidates import CandidateManager
from scout.config import Settings, get_settings
from scout.database import Database, get_database
from scout.errors import (
    AuthorizationError, ConfigurationError, InvalidTransition, NotFoundError,
    ScoutError, StoreError, UpstreamError,
)
from scout.news import FeedSource, NewsHarvester, build_collector
from scout.pipeline import ingest_news
from scout.runs import RunOrchestrator, run_registry
from scout.schemas import RunOptions
from scout.tools.classifier import CandidateClassifier
from scout.tools.trend_probe import DataForSEOProbe
from scout.trends import TrendAggregator

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


# Most specific first
_ERROR_STATUS = (
    (AuthorizationError, 401),
    (NotFoundError, 404),
    (InvalidTransition, 409),
    (UpstreamError, 502),
    (ConfigurationError, 500),
    (StoreError, 500),
)


def _status_for(error: ScoutError) -> int:
    for cls, status in _ERROR_STATUS:
        if isinstance(error, cls):
            return status
    return 500


async def scout_error_handler(request: Request, exc: ScoutError):
    status = _status_for(exc)
    body = {"status": "error", "error": exc.code}
    if not isinstance(exc, AuthorizationError):
        body["detail"] = str(exc)[:300]
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    return JSONResponse(status_code=status, content=body)


def build_probe(settings: Settings) -> Optional[DataForSEOProbe]:
    if not settings.probe_configured:
        logger.warning("DataForSEO not configured; runs cannot start")
        return None
    return DataForSEOProbe(settings)


def build_classifier(settings: Settings) -> Optional[CandidateClassifier]:
    if not settings.classifier_configured:
        logger.warning("OpenRouter not configured; candidates stay pending")
        return None
    return CandidateClassifier(settings)


def create_app(
    db: Optional[Database] = None,
    settings: Optional[Settings] = None,
    probe=None,
    classifier=None,
    feed_source=None,
    collector=None,
    registry=None,
) -> FastAPI:
    """Build the API. Collaborators left as None are resolved from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = app.state
        if state.db is None:
            state.db = get_database()
        state.db.create_tables()
        if state.probe is None:
            state.probe = build_probe(state.settings)
        if state.classifier is None:
            state.classifier = build_classifier(state.settings)
        logger.info(f"AI Trends Scout API {__version__} ready")
        yield
        active = state.registry.list_active()
        if active:
            logger.warning(f"Shutting down with {len(active)} runs in flight: {active}")

    app = FastAPI(
        title="AI Trends Scout",
        description="News-driven AI tool discovery and Google Trends monitoring",
        version=__version__,
        lifespan=lifespan,
    )

    settings = settings or get_settings()
    app.state.settings = settings
    app.state.db = db
    app.state.probe = probe
    app.state.classifier = classifier
    app.state.feed_source = feed_source or FeedSource(
        settings.news_feed_urls, timeout=settings.news_fetch_timeout,
    )
    app.state.registry = registry if registry is not None else run_registry
    app.state.collector = collector if collector is not None else build_collector(
        settings.external_source_names, timeout=settings.news_fetch_timeout,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ScoutError, scout_error_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(ingest.router, prefix="/api/news", tags=["news"])
    app.include_router(runs.router, prefix="/api/trends", tags=["runs"])
    app.include_router(overview.router, prefix="/api", tags=["overview"])
    app.include_router(candidates.router, prefix="/api/candidates", tags=["candidates"])
    app.include_router(roots.router, prefix="/api/roots", tags=["roots"])
    return app


# CLI Runner
def _services(settings: Settings):
    db = get_database()
    db.create_tables()
    manager = CandidateManager(db, settings, classifier=build_classifier(settings))
    orchestrator = RunOrchestrator(
        db, settings, manager,
        probe=build_probe(settings),
        aggregator=TrendAggregator(db, settings),
    )
    harvester = NewsHarvester(db, settings, candidates=manager)
    collector = build_collector(settings.external_source_names, timeout=settings.news_fetch_timeout)
    return harvester, manager, orchestrator, collector


def _print_run(detail):
    run = detail.run
    counts = run.task_counts
    print("\n" + "=" * 60)
    print("TREND RUN")
    print("=" * 60)
    print(f"Run:       {run.id}")
    print(f"Status:    {run.status}")
    print(f"Tasks:     {counts.completed}/{counts.total} completed, {counts.error} errors, {counts.queued} queued")
    print(f"Cost:      ${run.cost_total:.4f}")
    errors = [t for t in detail.tasks if t.error_message]
    if errors:
        print(f"\nErrors: {len(errors)}")
        for task in errors[:5]:
            print(f"   - {task.keyword}: {task.error_message}")
    print("=" * 60 + "\n")


async def cli_main(argv=None):
    """Command-line interface: serve the API, ingest news or run a trend sweep."""
    parser = argparse.ArgumentParser(description="AI Trends Scout")
    parser.add_argument(
        "command",
        nargs="?",
        choices=["ingest", "run"],
        help="ingest: harvest news and judge candidates; run: execute a trend run",
    )
    parser.add_argument("--server", action="store_true", help="Start the FastAPI server")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--run", action="store_true", help="ingest: also execute a run afterwards")
    parser.add_argument("--keyword", action="append", default=[], help="run: root keyword (repeatable)")
    parser.add_argument("--budget", type=float, default=None, help="run: cost budget in USD")
    parser.add_argument("--locale", default=None, help="run: locale (default from settings)")
    parser.add_argument("--timeframe", default=None, help="run: timeframe, e.g. past_7_days")

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.server or args.command is None:
        import uvicorn
        logger.info(f"Starting server on port {args.port}...")
        config = uvicorn.Config(create_app(settings=settings), host="0.0.0.0", port=args.port)
        await uvicorn.Server(config).serve()
        return

    harvester, manager, orchestrator, collector = _services(settings)

    if args.command == "ingest":
        result = await ingest_news(
            harvester, manager,
            orchestrator=orchestrator,
            trigger_run=args.run,
            run_options=RunOptions(trigger_source="cli"),
            collector=collector,
        )
        counts = result.counts
        print(f"\nIngest: {counts['inserted']} inserted, {counts['updated']} updated, {counts['skipped']} skipped")
        print(f"Candidates expired: {counts['expirations']}, judged: {counts['llm']['processed']}")
        for failure in (counts["candidates"] or {}).get("errors", []):
            print(f"External source {failure['source']} failed: {failure['error']}")
        if result.run is not None:
            await orchestrator.execute_run(result.run.id)
            _print_run(orchestrator.get_run(result.run.id))
        return

    options = RunOptions(
        root_keywords=args.keyword,
        cost_budget=args.budget,
        locale=args.locale,
        timeframe=args.timeframe,
        trigger_source="cli",
    )
    _print_run(await orchestrator.run(options))


def main():
    """Entry point for CLI."""
    asyncio.run(cli_main())


if __name__ == "__main__":
    main()
