"""News ingestion: feed fetching, external collectors, keyword extraction and the harvester."""

from .collectors import CollectorOutcome, ExternalCollector, build_collector
from .feeds import FeedEntry, FeedSource, canonicalize_url
from .harvester import NewsHarvester

__all__ = [
    "CollectorOutcome", "ExternalCollector", "FeedEntry", "FeedSource",
    "NewsHarvester", "build_collector", "canonicalize_url",
]
