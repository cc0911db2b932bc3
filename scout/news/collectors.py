"""
External candidate collectors — launch and trending pages outside the news feeds.

SOURCES:
  product_hunt     Product Hunt RSS (product name before " – " or ":")
  github_trending  GitHub daily trending page (repository name)
  x_trending       trends24 United States page (trending topic text)
  angellist        AngelList blog RSS (post title)

Each source is fetched once. Unlike the news feeds, a failing source is
recorded in the outcome and the other sources still count.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

import httpx

from ..errors import ConfigurationError
from ..schemas import RawCandidateEntry
from .feeds import clean_summary, parse_feed

logger = logging.getLogger(__name__)

PRODUCT_HUNT_FEED = "https://www.producthunt.com/feed"
ANGELLIST_FEED = "https://angel.co/blog/feed"
GITHUB_TRENDING_URL = "https://github.com/trending?since=daily"
TRENDS24_URL = "https://trends24.in/united-states/"

MAX_PER_SOURCE = 40

_ARTICLE = re.compile(r"<article[\s\S]*?</article>", re.IGNORECASE)
_REPO_LINK = re.compile(r'<h2[^>]*>\s*<a[^>]*?href="/([^"]+)"', re.IGNORECASE)
_PARAGRAPH = re.compile(r"<p[^>]*>([\s\S]*?)</p>", re.IGNORECASE)
_LANGUAGE = re.compile(r'<span itemprop="programmingLanguage">([^<]+)</span>', re.IGNORECASE)
_TREND_LINK = re.compile(r'<a[^>]*class="trend-card__list-link[^"]*"[^>]*>([\s\S]*?)</a>', re.IGNORECASE)
_HAS_ALNUM = re.compile(r"[a-z0-9]", re.IGNORECASE)


@dataclass
class CollectorOutcome:
    entries: List[RawCandidateEntry] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)


def parse_product_hunt(text: str) -> List[RawCandidateEntry]:
    entries = []
    for item in parse_feed(text, PRODUCT_HUNT_FEED)[:25]:
        term = item.title.split(" – ")[0].split(":")[0].strip() or item.title
        entries.append(RawCandidateEntry(
            term=term,
            source="product_hunt",
            title=item.title or None,
            summary=item.summary,
            url=item.link or None,
            captured_at=item.published_at,
            metadata={"feed": "producthunt", "tags": item.categories},
        ))
    return entries


def parse_angellist(text: str) -> List[RawCandidateEntry]:
    return [
        RawCandidateEntry(
            term=item.title,
            source="angellist",
            title=item.title or None,
            summary=item.summary,
            url=item.link or None,
            captured_at=item.published_at,
            metadata={"feed": "angellist_blog", "tags": item.categories},
        )
        for item in parse_feed(text, ANGELLIST_FEED)[:20]
    ]


def parse_github_trending(page: str) -> List[RawCandidateEntry]:
    entries = []
    for article in _ARTICLE.findall(page)[:30]:
        repo_match = _REPO_LINK.search(article)
        if not repo_match:
            continue
        repo_path = repo_match.group(1).strip().strip("/")
        description = _PARAGRAPH.search(article)
        language = _LANGUAGE.search(article)
        entries.append(RawCandidateEntry(
            term=repo_path.split("/")[-1],
            source="github_trending",
            title=repo_path,
            summary=clean_summary(description.group(1)) if description else None,
            url=f"https://github.com/{repo_path}",
            metadata={
                "repo": repo_path,
                "tags": [clean_summary(language.group(1))] if language else [],
                "source_page": GITHUB_TRENDING_URL,
            },
        ))
    return entries


def parse_trends24(page: str) -> List[RawCandidateEntry]:
    entries = []
    for snippet in _TREND_LINK.findall(page)[:40]:
        term = clean_summary(snippet)
        if term:
            entries.append(RawCandidateEntry(
                term=term,
                source="x_trending",
                metadata={"source_page": TRENDS24_URL},
            ))
    return entries


SOURCES: Dict[str, tuple] = {
    "product_hunt": (PRODUCT_HUNT_FEED, parse_product_hunt),
    "github_trending": (GITHUB_TRENDING_URL, parse_github_trending),
    "x_trending": (TRENDS24_URL, parse_trends24),
    "angellist": (ANGELLIST_FEED, parse_angellist),
}


class ExternalCollector:
    """Fetches the configured external sources concurrently."""

    _USER_AGENT = "ai-trends-scout/1.0"

    def __init__(
        self,
        sources: Sequence[str],
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        unknown = [name for name in sources if name not in SOURCES]
        if unknown:
            raise ConfigurationError(f"Unknown external sources: {', '.join(unknown)}")
        self.sources = list(sources)
        self.timeout = timeout
        self._client = client

    async def _collect_one(self, client: httpx.AsyncClient, name: str) -> List[RawCandidateEntry]:
        url, parse = SOURCES[name]
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
        return parse(response.text)

    async def collect(self, now: Optional[datetime] = None) -> CollectorOutcome:
        outcome = CollectorOutcome()
        if not self.sources:
            return outcome

        if self._client is not None:
            results = await self._gather(self._client)
        else:
            headers = {"User-Agent": self._USER_AGENT}
            async with httpx.AsyncClient(timeout=self.timeout, headers=headers) as client:
                results = await self._gather(client)

        seen: Set[str] = set()
        for name, result in zip(self.sources, results):
            if isinstance(result, Exception):
                message = str(result) or type(result).__name__
                logger.warning(f"External source {name} failed: {message}")
                outcome.errors.append({"source": name, "error": message})
                continue
            _push_entries(outcome, name, result, seen, now)

        logger.info(
            f"External sources: {len(outcome.entries)} entries from {outcome.counts}, "
            f"{len(outcome.errors)} failed"
        )
        return outcome

    async def _gather(self, client: httpx.AsyncClient) -> list:
        return await asyncio.gather(
            *[self._collect_one(client, name) for name in self.sources],
            return_exceptions=True,
        )


def _push_entries(
    outcome: CollectorOutcome,
    source: str,
    entries: List[RawCandidateEntry],
    seen: Set[str],
    captured_at: Optional[datetime],
):
    accepted = 0
    for entry in entries:
        if accepted >= MAX_PER_SOURCE:
            break
        term = (entry.term or "").strip()
        normalized = term.lower()
        if len(normalized) < 3 or not _HAS_ALNUM.search(normalized) or normalized.startswith("http"):
            continue
        key = f"{source}::{normalized}"
        if key in seen:
            continue
        seen.add(key)
        outcome.entries.append(entry.model_copy(update={
            "term": term,
            "source": source,
            "captured_at": entry.captured_at or captured_at,
        }))
        accepted += 1
    if accepted:
        outcome.counts[source] = outcome.counts.get(source, 0) + accepted


def build_collector(sources: Sequence[str], timeout: float = 10.0) -> Optional[ExternalCollector]:
    return ExternalCollector(sources, timeout=timeout) if sources else None
