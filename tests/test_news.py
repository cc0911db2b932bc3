"""News harvesting: URL identity, keyword extraction, idempotent upserts."""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, FakeFeedSource, feed_entry
from scout.errors import StoreError, UpstreamError
from scout.news import NewsHarvester, canonicalize_url
from scout.news.feeds import clean_summary, parse_feed
from scout.news.harvester import NEWS_CANDIDATE_SOURCE
from scout.news.keywords import extract_keywords

FEED = "https://feeds.example.com/ai.xml"


def _window():
    return {FEED: [
        feed_entry(
            "Anthropic ships Claude agents for spreadsheets",
            "https://news.example.com/claude-agents?utm_source=rss",
            summary="The release targets finance teams.",
            published_at=NOW - timedelta(hours=2),
        ),
        feed_entry(
            "Cursor raises funding for its coding editor",
            "https://news.example.com/cursor-funding",
            summary="Developers keep adopting cursor.",
            published_at=NOW - timedelta(hours=5),
        ),
    ]}


def test_canonicalize_url_drops_tracking_and_fragment():
    url = "HTTPS://News.Example.com/story/?utm_source=x&b=2&a=1&fbclid=zz#comments"
    assert canonicalize_url(url) == "https://news.example.com/story?a=1&b=2"


def test_canonicalize_url_equal_for_variants():
    assert canonicalize_url("https://example.com/a/") == canonicalize_url("https://example.com/a?utm_medium=feed")


def test_clean_summary_strips_markup():
    assert clean_summary("<p>Hello&nbsp;<b>world</b></p>\n\n  again") == "Hello world again"
    assert clean_summary("") is None
    assert len(clean_summary("x" * 900)) == 500


def test_parse_feed_reads_rss_items():
    rss = """<?xml version="1.0"?>
    <rss version="2.0"><channel><title>AI Wire</title>
      <item><title>Perplexity launches Comet</title>
        <link>https://wire.example.com/comet</link>
        <description>&lt;p&gt;Browser agent&lt;/p&gt;</description>
        <pubDate>Wed, 15 Jan 2025 10:00:00 GMT</pubDate>
        <category>Browsers</category></item>
    </channel></rss>"""
    entries = parse_feed(rss, FEED)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.title == "Perplexity launches Comet"
    assert entry.link == "https://wire.example.com/comet"
    assert entry.feed_title == "AI Wire"
    assert entry.summary == "Browser agent"
    assert entry.published_at == NOW - timedelta(hours=2)
    assert entry.categories == ["Browsers"]


def test_extract_keywords_orders_ai_terms_first_and_skips_ai():
    result = extract_keywords(
        "OpenAI and the AI race: ChatGPT adds memory",
        "Machine learning teams react",
        categories=["Assistants"],
    )
    assert result.has_ai_signal
    assert "ai" not in result.keywords
    assert result.keywords[:2] == ["openai", "chatgpt"]
    assert "assistants" in result.keywords
    assert "machine learning" in result.keywords
    assert "the" not in result.keywords


def test_extract_keywords_caps_output():
    title = " ".join(f"token{i}" for i in range(40))
    result = extract_keywords(title, " ".join(f"word{i}" for i in range(40)))
    assert len(result.keywords) == 16
    assert result.keyword_count == 40


def test_extract_keywords_picks_up_root_keywords():
    result = extract_keywords("Teams adopt vector databases", root_keywords=["Vector Databases"])
    assert "vector databases" in result.keywords


def test_harvest_is_idempotent(db, settings, manager):
    harvester = NewsHarvester(db, settings, source=FakeFeedSource(_window()), candidates=manager)

    first = asyncio.run(harvester.harvest(now=NOW))
    assert (first.inserted, first.updated, first.skipped) == (2, 0, 0)

    second = asyncio.run(harvester.harvest(now=NOW))
    assert (second.inserted, second.updated, second.skipped) == (0, 0, 2)
    assert db.count_news() == 2
    assert second.candidates == []


def test_harvest_updates_changed_title(db, settings):
    source = FakeFeedSource(_window())
    harvester = NewsHarvester(db, settings, source=source)
    asyncio.run(harvester.harvest(now=NOW))

    source.batches[FEED][1].title = "Cursor raises a bigger round"
    stats = asyncio.run(harvester.harvest(now=NOW))
    assert (stats.inserted, stats.updated, stats.skipped) == (0, 1, 1)
    item = db.get_news_by_key(canonicalize_url("https://news.example.com/cursor-funding"))
    assert item.title == "Cursor raises a bigger round"


def test_harvest_skips_stale_incomplete_and_duplicate_entries(db, settings):
    batch = _window()
    batch[FEED] += [
        feed_entry("Old story", "https://news.example.com/old", published_at=NOW - timedelta(days=10)),
        feed_entry("", "https://news.example.com/untitled", published_at=NOW),
        feed_entry(
            "Anthropic ships Claude agents for spreadsheets",
            "https://news.example.com/claude-agents/",
            published_at=NOW,
        ),
    ]
    stats = asyncio.run(NewsHarvester(db, settings, source=FakeFeedSource(batch)).harvest(now=NOW))
    assert stats.inserted == 2
    assert stats.skipped == 3


def test_harvest_respects_max_items(db, settings):
    entries = [
        feed_entry(f"Story {i}", f"https://news.example.com/{i}", published_at=NOW)
        for i in range(5)
    ]
    limited = settings.model_copy(update={"news_max_items": 3})
    stats = asyncio.run(NewsHarvester(db, limited, source=FakeFeedSource({FEED: entries})).harvest(now=NOW))
    assert stats.inserted == 3
    assert db.count_news() == 3


def test_harvest_records_news_candidates(db, settings, manager):
    db.create_root("Coding", "cursor")
    harvester = NewsHarvester(db, settings, source=FakeFeedSource(_window()), candidates=manager)
    stats = asyncio.run(harvester.harvest(now=NOW))

    terms = {c.term for c in stats.candidates}
    assert "claude" in terms
    assert "anthropic" in terms
    assert "cursor" not in terms  # root keyword
    assert all(c.source == NEWS_CANDIDATE_SOURCE for c in stats.candidates)
    assert all(c.metadata["seed_origin"] == "rising" for c in stats.candidates)
    assert stats.recorded.inserted == len(stats.candidates)

    stored = manager.list_candidates(now=NOW)
    assert {c.term for c in stored} == terms
    assert all(c.status == "pending" for c in stored)


def test_harvest_feed_failure_writes_nothing(db, settings):
    source = FakeFeedSource(error=UpstreamError("feed down"))
    with pytest.raises(UpstreamError):
        asyncio.run(NewsHarvester(db, settings, source=source).harvest(now=NOW))
    assert db.count_news() == 0


def test_store_failure_mid_batch_keeps_candidates_of_inserted_items(db, settings, manager, monkeypatch):
    insert_news = db.insert_news
    calls = []

    def flaky_insert(data):
        calls.append(data["url_key"])
        if len(calls) == 2:
            raise StoreError("database is locked")
        return insert_news(data)

    monkeypatch.setattr(db, "insert_news", flaky_insert)
    harvester = NewsHarvester(db, settings, source=FakeFeedSource(_window()), candidates=manager)
    with pytest.raises(StoreError):
        asyncio.run(harvester.harvest(now=NOW))

    assert db.count_news() == 1
    first_terms = {c.term for c in manager.list_candidates(now=NOW)}
    assert {"claude", "anthropic"} <= first_terms

    monkeypatch.setattr(db, "insert_news", insert_news)
    retry = asyncio.run(harvester.harvest(now=NOW))
    assert (retry.inserted, retry.skipped) == (1, 1)
    assert db.count_news() == 2
    stored = {c.term for c in manager.list_candidates(now=NOW)}
    assert first_terms < stored
