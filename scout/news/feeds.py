"""
Feed source — fetches RSS/Atom feeds with httpx and parses them with feedparser.

Every feed gets one request with a single timeout; there is no retry. Any feed
failing fails the whole fetch so the harvester never commits a partial window
it believes is complete.
"""

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import feedparser
import httpx

from ..errors import UpstreamError

logger = logging.getLogger(__name__)

TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "utm_id", "utm_name", "gclid", "fbclid", "mc_cid", "mc_eid",
    "ref", "ref_src", "ref_url",
}

_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def canonicalize_url(url: str) -> str:
    """Identity key for a news URL.

    Lowercases scheme and host, drops the fragment and tracking parameters,
    sorts the remaining query and trims a trailing slash.
    """
    if not url:
        return ""
    parts = urlparse(url.strip())
    scheme = (parts.scheme or "https").lower()
    netloc = (parts.netloc or "").lower()
    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/")
    kept = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS
    ]
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    return urlunparse((scheme, netloc, path, "", urlencode(kept, doseq=True), ""))


def clean_summary(value: Optional[str], limit: int = 500) -> Optional[str]:
    if not value:
        return None
    text = html.unescape(_TAG.sub(" ", value))
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:limit] or None


def _host(url: str) -> Optional[str]:
    netloc = urlparse(url).netloc
    return netloc[4:] if netloc.startswith("www.") else (netloc or None)


@dataclass
class FeedEntry:
    """One normalized feed item."""
    title: str
    link: str
    feed_url: str
    feed_title: str
    summary: Optional[str] = None
    published_at: Optional[datetime] = None
    author: Optional[str] = None
    guid: Optional[str] = None
    categories: List[str] = field(default_factory=list)


def parse_feed(text: str, feed_url: str) -> List[FeedEntry]:
    """Parse a feed document into FeedEntry objects (entries without title/link kept as empty)."""
    feed = feedparser.parse(text)
    feed_title = feed.feed.get("title") or _host(feed_url) or "Unknown"
    entries = []
    for entry in feed.entries:
        published = None
        parsed = entry.get("published_parsed") or entry.get("updated_parsed")
        if parsed:
            published = datetime(*parsed[:6], tzinfo=timezone.utc)
        entries.append(FeedEntry(
            title=html.unescape((entry.get("title") or "").strip()),
            link=(entry.get("link") or "").strip(),
            feed_url=feed_url,
            feed_title=feed_title,
            summary=clean_summary(entry.get("summary") or entry.get("description")),
            published_at=published,
            author=(entry.get("author") or "").strip() or None,
            guid=entry.get("id"),
            categories=[t.get("term") for t in entry.get("tags", []) if t.get("term")],
        ))
    return entries


class FeedSource:
    """Fetches a fixed list of feeds concurrently."""

    _USER_AGENT = "Mozilla/5.0 (compatible; AITrendsScout/1.0)"

    def __init__(self, feed_urls: Sequence[str], timeout: float = 10.0, max_concurrency: int = 6):
        self.feed_urls = list(feed_urls)
        self.timeout = timeout
        self.max_concurrency = max_concurrency

    async def _fetch_one(self, client: httpx.AsyncClient, feed_url: str) -> List[FeedEntry]:
        response = await client.get(feed_url, follow_redirects=True)
        response.raise_for_status()
        return parse_feed(response.text, feed_url)

    async def fetch(self) -> Dict[str, List[FeedEntry]]:
        """Entries per feed URL, in configured feed order."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        headers = {"User-Agent": self._USER_AGENT}

        async with httpx.AsyncClient(timeout=self.timeout, headers=headers) as client:
            async def _fetch_limited(url):
                async with semaphore:
                    return await self._fetch_one(client, url)

            results = await asyncio.gather(
                *[_fetch_limited(url) for url in self.feed_urls],
                return_exceptions=True,
            )

        batches: Dict[str, List[FeedEntry]] = {}
        for url, result in zip(self.feed_urls, results):
            if isinstance(result, Exception):
                logger.warning(f"Feed fetch failed: {url}: {result}")
                raise UpstreamError(f"feed {url} failed: {result}") from result
            batches[url] = result
        return batches
