"""External collectors: page parsing and per-source failure handling."""

import asyncio

import httpx
import pytest

from conftest import NOW
from scout.errors import ConfigurationError
from scout.news import ExternalCollector, build_collector
from scout.news.collectors import parse_github_trending, parse_product_hunt, parse_trends24

PRODUCT_HUNT_RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Product Hunt</title>
  <item><title>Windsurf – The agentic IDE</title>
    <link>https://www.producthunt.com/posts/windsurf</link>
    <description>&lt;p&gt;Code with agents&lt;/p&gt;</description>
    <category>Developer Tools</category></item>
  <item><title>Lovable: Build apps by chatting</title>
    <link>https://www.producthunt.com/posts/lovable</link></item>
</channel></rss>"""

ANGELLIST_RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>AngelList</title>
  <item><title>Rolling funds for AI founders</title>
    <link>https://angel.co/blog/rolling-funds</link></item>
</channel></rss>"""

GITHUB_TRENDING_HTML = """
<article class="Box-row">
  <h2 class="h3 lh-condensed">
    <a data-view-component="true" href="/browser-use/browser-use" class="Link">
      <span class="text-normal">browser-use /</span> browser-use</a>
  </h2>
  <p class="col-9 color-fg-muted my-1 pr-4">
    Make websites accessible for <b>AI agents</b>
  </p>
  <span itemprop="programmingLanguage">Python</span>
</article>
<article class="Box-row">
  <h2 class="h3 lh-condensed"><a href="/openai/codex">openai / codex</a></h2>
</article>
<article class="Box-row"><p>No repository link here</p></article>
"""

TRENDS24_HTML = """
<ol class="trend-card__list">
  <li><a href="https://twitter.com/search?q=%23GPT5" class="trend-card__list-link">#GPT5</a></li>
  <li><a class="trend-card__list-link" href="https://twitter.com/search?q=Sora">Sora</a></li>
  <li><a class="trend-card__list-link" href="https://twitter.com/search?q=Sora">Sora</a></li>
  <li><a class="trend-card__list-link" href="https://twitter.com/search?q=ok">ok</a></li>
  <li><a class="trend-card__list-link" href="https://twitter.com/search?q=x">https://t.co/x</a></li>
</ol>
"""


def _handler(failing_host=None):
    pages = {
        "www.producthunt.com": PRODUCT_HUNT_RSS,
        "angel.co": ANGELLIST_RSS,
        "github.com": GITHUB_TRENDING_HTML,
        "trends24.in": TRENDS24_HTML,
    }

    def handler(request: httpx.Request):
        if request.url.host == failing_host:
            return httpx.Response(500, text="upstream broke")
        return httpx.Response(200, text=pages[request.url.host])

    return handler


def _collector(sources, failing_host=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler(failing_host)))
    return ExternalCollector(sources, client=client)


def test_parse_product_hunt_keeps_product_name():
    entries = parse_product_hunt(PRODUCT_HUNT_RSS)
    assert [e.term for e in entries] == ["Windsurf", "Lovable"]
    assert entries[0].title == "Windsurf – The agentic IDE"
    assert entries[0].summary == "Code with agents"
    assert entries[0].metadata["tags"] == ["Developer Tools"]
    assert all(e.source == "product_hunt" for e in entries)


def test_parse_github_trending_reads_repositories():
    entries = parse_github_trending(GITHUB_TRENDING_HTML)
    assert [e.term for e in entries] == ["browser-use", "codex"]
    first = entries[0]
    assert first.url == "https://github.com/browser-use/browser-use"
    assert first.summary == "Make websites accessible for AI agents"
    assert first.metadata["repo"] == "browser-use/browser-use"
    assert first.metadata["tags"] == ["Python"]
    assert entries[1].metadata["tags"] == []


def test_parse_trends24_reads_topics():
    terms = [e.term for e in parse_trends24(TRENDS24_HTML)]
    assert terms[:3] == ["#GPT5", "Sora", "Sora"]


def test_collect_filters_and_dedupes_per_source():
    outcome = asyncio.run(_collector(["x_trending"]).collect(now=NOW))
    assert [e.term for e in outcome.entries] == ["#GPT5", "Sora"]
    assert outcome.counts == {"x_trending": 2}
    assert all(e.captured_at == NOW for e in outcome.entries)
    assert outcome.errors == []


def test_failing_source_is_reported_and_others_count():
    collector = _collector(
        ["product_hunt", "github_trending", "x_trending", "angellist"],
        failing_host="trends24.in",
    )
    outcome = asyncio.run(collector.collect(now=NOW))

    assert outcome.counts == {"product_hunt": 2, "github_trending": 2, "angellist": 1}
    assert len(outcome.errors) == 1
    assert outcome.errors[0]["source"] == "x_trending"
    assert "500" in outcome.errors[0]["error"]
    assert {e.source for e in outcome.entries} == {"product_hunt", "github_trending", "angellist"}


def test_unknown_source_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        ExternalCollector(["product_hunt", "myspace"])


def test_build_collector_disabled_without_sources():
    assert build_collector([]) is None
    assert build_collector(["angellist"]).sources == ["angellist"]
