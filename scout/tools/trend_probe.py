"""
Trend probe — DataForSEO Google Trends "explore/live" client.

Given keyword + locale + timeframe, returns the interest-over-time series and
the related/rising query lists, normalized from DataForSEO's item shapes:
  - google_trends_graph        → series [{timestamp, value}]
  - google_trends_queries_list → top / rising [{query, value}]
  - google_trends_topics_list  → topics_top / topics_rising [{title, value}]
  - google_trends_map          → regions [{geo_id, geo_name, value}]
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..config import Settings
from ..errors import ConfigurationError, ProbeTimeout, RateLimited, UpstreamError

logger = logging.getLogger(__name__)

EXPLORE_LIVE_ENDPOINT = "/keywords_data/google_trends/explore/live"

# DataForSEO location codes; "global" sends no location at all
LOCATION_CODES = {
    "us": 2840, "gb": 2826, "uk": 2826, "ca": 2124, "au": 2036, "in": 2356,
    "de": 2276, "fr": 2250, "jp": 2392, "kr": 2410, "br": 2076, "sg": 2702,
}

_OK = 20000
_RATE_LIMIT_CODES = {40202, 40209}


class SeriesPoint(BaseModel):
    timestamp: int
    value: float
    missing: bool = False


class RankedQuery(BaseModel):
    query: str
    value: Optional[float] = None


class ProbeResult(BaseModel):
    """Normalized explore result stored on the task."""
    keyword: str
    series: List[SeriesPoint] = Field(default_factory=list)
    top: List[RankedQuery] = Field(default_factory=list)
    rising: List[RankedQuery] = Field(default_factory=list)
    topics_top: List[RankedQuery] = Field(default_factory=list)
    topics_rising: List[RankedQuery] = Field(default_factory=list)
    regions: List[Dict[str, Any]] = Field(default_factory=list)
    cost: float = 0.0
    check_url: Optional[str] = None


# ── Normalization helpers ────────────────────────────────────────────────────

def _numbers(value: Any) -> List[float]:
    if isinstance(value, bool):
        return []
    if isinstance(value, (int, float)):
        return [float(value)]
    if isinstance(value, str):
        try:
            return [float(value)]
        except ValueError:
            return []
    if isinstance(value, list):
        return [n for item in value for n in _numbers(item)]
    if isinstance(value, dict) and "value" in value:
        return _numbers(value["value"])
    return []


def _average(value: Any) -> Optional[float]:
    numbers = _numbers(value)
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def _timestamp(point: Dict[str, Any]) -> Optional[int]:
    raw = point.get("timestamp")
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return int(raw)
    for key in ("date_from", "date_to"):
        text = point.get(key)
        if isinstance(text, str):
            try:
                return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp())
            except ValueError:
                continue
    return None


def _series(data: Any) -> List[SeriesPoint]:
    points = []
    for item in data if isinstance(data, list) else []:
        if not isinstance(item, dict):
            continue
        ts = _timestamp(item)
        value = _average(item.get("values"))
        if ts is None or value is None:
            continue
        points.append(SeriesPoint(timestamp=ts, value=value, missing=bool(item.get("missing_data"))))
    points.sort(key=lambda p: p.timestamp)
    return points


def _ranked(entries: Any, *keys: str) -> List[RankedQuery]:
    ranked = []
    for item in entries if isinstance(entries, list) else []:
        if not isinstance(item, dict):
            continue
        text = next((item[k] for k in keys if isinstance(item.get(k), str) and item[k].strip()), None)
        if not text:
            continue
        ranked.append(RankedQuery(query=text.strip(), value=_average(item.get("value"))))
    return ranked


def parse_explore_response(payload: Dict[str, Any], keyword: str) -> ProbeResult:
    """Normalize an explore/live response body. Raises UpstreamError on errors."""
    if not isinstance(payload, dict):
        raise UpstreamError("malformed response: body is not an object")
    status_code = payload.get("status_code")
    if status_code in _RATE_LIMIT_CODES:
        raise RateLimited(f"DataForSEO rate limit: {payload.get('status_message')}")
    if status_code not in (None, _OK):
        raise UpstreamError(f"DataForSEO error {status_code}: {payload.get('status_message')}")

    tasks = payload.get("tasks")
    if not isinstance(tasks, list) or not tasks or not isinstance(tasks[0], dict):
        raise UpstreamError("malformed response: no tasks")
    task = tasks[0]
    task_status = task.get("status_code")
    if task_status in _RATE_LIMIT_CODES:
        raise RateLimited(f"DataForSEO rate limit: {task.get('status_message')}")
    if task_status != _OK:
        raise UpstreamError(f"DataForSEO task error {task_status}: {task.get('status_message')}")

    results = task.get("result")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise UpstreamError("malformed response: no result")
    result = results[0]

    cost = _average(task.get("cost"))
    if cost is None:
        cost = _average(payload.get("cost")) or 0.0
    probe = ProbeResult(keyword=keyword, cost=cost, check_url=result.get("check_url"))

    for item in result.get("items") or []:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type")
        data = item.get("data")
        if item_type == "google_trends_graph":
            probe.series = _series(data)
        elif item_type == "google_trends_queries_list" and isinstance(data, dict):
            probe.top = _ranked(data.get("top"), "query", "keyword", "term")
            probe.rising = _ranked(data.get("rising"), "query", "keyword", "term")
        elif item_type == "google_trends_topics_list" and isinstance(data, dict):
            probe.topics_top = _ranked(data.get("top"), "topic_title", "title")
            probe.topics_rising = _ranked(data.get("rising"), "topic_title", "title")
        elif item_type == "google_trends_map":
            probe.regions = [
                {"geo_id": d.get("geo_id"), "geo_name": d.get("geo_name"), "value": _average(d.get("values"))}
                for d in (data or []) if isinstance(d, dict)
            ]
    return probe


# ── Client ───────────────────────────────────────────────────────────────────

def build_request(keyword: str, locale: str, timeframe: str) -> Dict[str, Any]:
    request: Dict[str, Any] = {
        "keywords": [keyword],
        "time_range": timeframe,
        "type": "web",
        "item_types": [
            "google_trends_graph", "google_trends_queries_list",
            "google_trends_topics_list", "google_trends_map",
        ],
    }
    code = LOCATION_CODES.get((locale or "").lower())
    if code is not None:
        request["location_code"] = code
    return request


class DataForSEOProbe:
    """Synchronous-result explore calls with Basic auth and one timeout per call."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        if not settings.probe_configured:
            raise ConfigurationError("DataForSEO credentials are not configured")
        self.base_url = settings.dataforseo_base_url.rstrip("/")
        self.auth = httpx.BasicAuth(settings.dataforseo_login, settings.dataforseo_password)
        self.timeout = settings.probe_timeout
        self._client = client

    async def probe(self, keyword: str, locale: str, timeframe: str) -> ProbeResult:
        body = [build_request(keyword, locale, timeframe)]
        url = f"{self.base_url}{EXPLORE_LIVE_ENDPOINT}"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=body, auth=self.auth, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=body, auth=self.auth)
        except httpx.TimeoutException as e:
            raise ProbeTimeout(f"DataForSEO timeout after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"DataForSEO request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited("DataForSEO returned 429")
        if response.status_code >= 400:
            raise UpstreamError(
                f"DataForSEO request failed: {response.status_code} {response.text[:200] or '<empty body>'}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError("malformed response: invalid JSON") from e

        result = parse_explore_response(payload, keyword)
        logger.debug(f"Probed '{keyword}' ({locale}/{timeframe}): {len(result.series)} points, cost {result.cost}")
        return result
