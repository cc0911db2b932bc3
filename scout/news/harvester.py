"""
News Harvester — pulls a bounded window of feed entries into the store and
turns new articles into keyword candidates.

Identity is the canonical URL. Re-harvesting an unchanged window inserts
nothing: known items are either updated (title/summary changed) or skipped.
An item's candidates are recorded right after the item itself, so a store
failure later in the batch never strands an inserted item without them.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Set

from scout.candidates import CandidateManager, looks_like_news_candidate, normalize_keyword
from scout.config import Settings
from scout.database import Database, utcnow
from scout.schemas import HarvestStats, NewsItem, RawCandidateEntry

from .feeds import FeedEntry, FeedSource, canonicalize_url
from .keywords import KeywordExtraction, extract_keywords

logger = logging.getLogger(__name__)

NEWS_CANDIDATE_SOURCE = "news_keyword"


class NewsHarvester:
    """Feed window → news_items rows → pending candidates."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        source: Optional[FeedSource] = None,
        candidates: Optional[CandidateManager] = None,
    ):
        self.db = db
        self.settings = settings
        self.source = source or FeedSource(
            settings.news_feed_urls, timeout=settings.news_fetch_timeout,
        )
        self.candidates = candidates

    async def harvest(self, now: Optional[datetime] = None) -> HarvestStats:
        now = now or utcnow()
        stats = HarvestStats()

        # Fetch failure propagates before anything is written
        batches = await self.source.fetch()

        root_set = {normalize_keyword(r.keyword) for r in self.db.list_roots()}
        root_set.discard("")
        cutoff = now - timedelta(hours=self.settings.news_window_hours)
        max_items = self.settings.news_max_items
        seen_keys: Set[str] = set()
        seen_candidates: Set[str] = set()
        accepted = 0

        for feed_url, entries in batches.items():
            stats.feeds_processed += 1
            for entry in entries:
                if accepted >= max_items:
                    break
                if not entry.title or not entry.link:
                    stats.skipped += 1
                    continue
                url_key = canonicalize_url(entry.link)
                if url_key in seen_keys:
                    stats.skipped += 1
                    continue
                seen_keys.add(url_key)
                published_at = entry.published_at or now
                if published_at < cutoff:
                    stats.skipped += 1
                    continue
                accepted += 1

                extraction = extract_keywords(
                    entry.title,
                    entry.summary or "",
                    categories=entry.categories,
                    root_keywords=root_set,
                    author=entry.author,
                )
                stats.keywords_detected += extraction.keyword_count
                item = self._upsert(entry, url_key, published_at, extraction, stats)
                if item is not None:
                    derived = self._derive_candidates(item, entry, extraction, root_set, seen_candidates)
                    stats.candidates.extend(derived)
                    self._record(derived, now, stats)

        logger.info(
            f"Harvest: {stats.feeds_processed} feeds, {stats.inserted} inserted, "
            f"{stats.updated} updated, {stats.skipped} skipped, "
            f"{len(stats.candidates)} candidate terms"
            + (f", {stats.recorded.inserted} new candidates" if stats.recorded else "")
        )
        return stats

    def _record(self, derived: List[RawCandidateEntry], now: datetime, stats: HarvestStats):
        if self.candidates is None or not derived:
            return
        stats.recorded = self.candidates.record_candidates(derived, now=now, into=stats.recorded)

    def _upsert(
        self,
        entry: FeedEntry,
        url_key: str,
        published_at: datetime,
        extraction: KeywordExtraction,
        stats: HarvestStats,
    ) -> Optional[NewsItem]:
        """Insert, update or skip one entry. Returns the item only when newly inserted."""
        existing = self.db.get_news_by_key(url_key)
        if existing is None:
            item = self.db.insert_news({
                "url_key": url_key,
                "url": entry.link,
                "title": entry.title,
                "source": entry.author or entry.feed_title,
                "summary": entry.summary,
                "published_at": published_at,
                "keywords": extraction.keywords,
                "metadata": {
                    "feed_url": entry.feed_url,
                    "feed_title": entry.feed_title,
                    "guid": entry.guid,
                    "categories": entry.categories or None,
                },
            })
            stats.inserted += 1
            return item
        if existing.title != entry.title or (existing.summary or None) != (entry.summary or None):
            self.db.update_news(existing.id, {
                "title": entry.title,
                "summary": entry.summary,
                "keywords": extraction.keywords,
            })
            stats.updated += 1
        else:
            stats.skipped += 1
        return None

    def _derive_candidates(
        self,
        item: NewsItem,
        entry: FeedEntry,
        extraction: KeywordExtraction,
        root_set: Set[str],
        seen_candidates: Set[str],
    ) -> List[RawCandidateEntry]:
        limit = self.settings.news_candidate_max_per_item
        selected: List[RawCandidateEntry] = []
        for keyword in extraction.keywords:
            if len(selected) >= limit:
                break
            if not looks_like_news_candidate(keyword):
                continue
            # Roots are researched on every run already
            if keyword in root_set or keyword in seen_candidates:
                continue
            seen_candidates.add(keyword)
            selected.append(RawCandidateEntry(
                term=keyword,
                source=NEWS_CANDIDATE_SOURCE,
                title=item.title,
                summary=item.summary,
                url=item.url,
                metadata={
                    "seed_origin": "rising",
                    "news_id": item.id,
                    "feed_url": entry.feed_url,
                },
            ))
        return selected
