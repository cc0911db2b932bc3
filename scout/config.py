"""
Configuration management for AI Trends Scout.

All knobs are read once from the environment (or .env) into an immutable
Settings object and handed to components explicitly.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = Field(default="sqlite:///./data/scout.db", alias="DATABASE_URL")

    # Shared secret for ingest / run triggers. Empty = open mode.
    sync_token: str = Field(default="", alias="AI_TRENDS_SYNC_TOKEN")

    # ── DataForSEO (Trend Probe) ──
    dataforseo_login: str = Field(default="", alias="DATAFORSEO_LOGIN")
    dataforseo_password: str = Field(default="", alias="DATAFORSEO_PASSWORD")
    dataforseo_base_url: str = Field(default="https://api.dataforseo.com/v3", alias="DATAFORSEO_BASE_URL")
    probe_timeout: float = Field(default=30.0, alias="PROBE_TIMEOUT")

    # ── OpenRouter (Classifier) ──
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    openrouter_model: str = Field(default="anthropic/claude-3-haiku", alias="OPENROUTER_MODEL")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL")
    classifier_timeout: float = Field(default=30.0, alias="CLASSIFIER_TIMEOUT")
    # Minimum judge score for a "tool" label to approve a candidate
    candidate_approval_threshold: float = Field(default=0.6, alias="CANDIDATE_APPROVAL_THRESHOLD")
    llm_batch: int = Field(default=8, alias="LLM_BATCH")
    max_llm_attempts: int = Field(default=3, alias="MAX_LLM_ATTEMPTS")

    # ── News ingestion ──
    # Comma-separated feed URLs; empty = DEFAULT_NEWS_FEEDS
    news_feeds: str = Field(default="", alias="AI_TRENDS_NEWS_FEEDS")
    news_max_items: int = Field(default=60, alias="AI_TRENDS_NEWS_MAX_ITEMS")
    news_window_hours: int = Field(default=72, alias="NEWS_WINDOW_HOURS")
    news_fetch_timeout: float = Field(default=10.0, alias="NEWS_FETCH_TIMEOUT")
    news_candidate_max_per_item: int = Field(default=5, alias="NEWS_CANDIDATE_MAX_PER_ITEM")
    # Comma-separated external candidate sources; empty disables them
    external_sources: str = Field(
        default="product_hunt,github_trending,x_trending,angellist",
        alias="AI_TRENDS_EXTERNAL_SOURCES",
    )

    # ── Candidates ──
    candidate_ttl_hours: int = Field(default=72, alias="CANDIDATE_TTL_HOURS")
    candidate_max_total: int = Field(default=120, alias="CANDIDATE_MAX_TOTAL")
    candidate_max_per_source: int = Field(default=40, alias="CANDIDATE_MAX_PER_SOURCE")

    # ── Runs ──
    run_max_candidates: int = Field(default=20, alias="RUN_MAX_CANDIDATES")
    run_cost_budget: float = Field(default=5.0, alias="RUN_COST_BUDGET")
    run_concurrency: int = Field(default=4, alias="RUN_CONCURRENCY")
    # Reserved per task before dispatch; DataForSEO explore/live bills ~0.009 USD
    run_estimated_task_cost: float = Field(default=0.009, alias="RUN_ESTIMATED_TASK_COST")
    default_locale: str = Field(default="global", alias="DEFAULT_LOCALE")
    default_timeframe: str = Field(default="past_7_days", alias="DEFAULT_TIMEFRAME")
    max_discovery_depth: int = Field(default=2, alias="MAX_DISCOVERY_DEPTH")
    rising_queue_threshold: float = Field(default=100.0, alias="RISING_QUEUE_THRESHOLD")
    rising_max_children: int = Field(default=5, alias="RISING_MAX_CHILDREN")

    # ── Trend aggregation ──
    trend_score_window: int = Field(default=3, alias="TREND_SCORE_WINDOW")
    spike_history: int = Field(default=7, alias="SPIKE_HISTORY")
    spike_min_history: int = Field(default=2, alias="SPIKE_MIN_HISTORY")
    alert_spike_threshold: float = Field(default=2.0, alias="ALERT_SPIKE_THRESHOLD")
    alert_medium_threshold: float = Field(default=3.0, alias="ALERT_MEDIUM_THRESHOLD")
    alert_high_threshold: float = Field(default=5.0, alias="ALERT_HIGH_THRESHOLD")
    alert_bucket_hours: int = Field(default=6, alias="ALERT_BUCKET_HOURS")
    hotlist_limit: int = Field(default=10, alias="HOTLIST_LIMIT")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        frozen = True
        populate_by_name = True

    @property
    def news_feed_urls(self) -> List[str]:
        feeds = [url.strip() for url in self.news_feeds.split(",") if url.strip()]
        return feeds or list(DEFAULT_NEWS_FEEDS)

    @property
    def external_source_names(self) -> List[str]:
        return [name.strip() for name in self.external_sources.split(",") if name.strip()]

    @property
    def probe_configured(self) -> bool:
        return bool(self.dataforseo_login and self.dataforseo_password)

    @property
    def classifier_configured(self) -> bool:
        return bool(self.openrouter_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


DEFAULT_NEWS_FEEDS = (
    "https://techcrunch.com/category/artificial-intelligence/feed/",
    "https://feeds.arstechnica.com/arstechnica/technology-lab",
    "https://www.theverge.com/rss/ai-artificial-intelligence/index.xml",
    "https://venturebeat.com/category/ai/feed/",
)

# Generic terms that never make useful research keywords
STOP_TERMS = frozenset({
    "ai", "machine learning", "artificial intelligence", "technology", "tech",
    "startup", "news", "best", "top", "latest", "daily", "update", "guide",
    "tutorial", "template", "example", "sample", "free",
})

# News-derived candidates additionally skip these
NEWS_CANDIDATE_EXCLUDES = frozenset({
    "ai", "machine learning", "artificial intelligence", "news", "report", "update",
})

# Google Trends style timeframes → DataForSEO time_range values
TIMEFRAME_ALIASES = {
    "now 1-d": "past_day",
    "now 1+d": "past_day",
    "now 7-d": "past_7_days",
    "today 1-m": "past_30_days",
    "today 3-m": "past_90_days",
    "today 12-m": "past_12_months",
}

# Hotlists shown on the overview
OVERVIEW_TIMEFRAMES = ("past_day", "past_7_days")
