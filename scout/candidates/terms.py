"""Keyword normalization and candidate term validation."""

import re
from typing import Optional

from scout.config import NEWS_CANDIDATE_EXCLUDES, STOP_TERMS

_WHITESPACE = re.compile(r"\s+")
_ALNUM = re.compile(r"[^\W_]", re.UNICODE)
_URL = re.compile(r"^(https?://|www\.)", re.IGNORECASE)


def normalize_keyword(value: Optional[str]) -> str:
    """Trim, collapse whitespace and lowercase. Empty string if nothing is left."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip().lower()


def looks_like_candidate_term(term: str, min_length: int = 3, max_length: int = 80) -> bool:
    normalized = normalize_keyword(term)
    if not (min_length <= len(normalized) <= max_length):
        return False
    if not _ALNUM.search(normalized):
        return False
    if _URL.match(normalized) or "://" in normalized:
        return False
    return normalized not in STOP_TERMS


def looks_like_news_candidate(keyword: str) -> bool:
    """Stricter rule for terms lifted from news text."""
    normalized = normalize_keyword(keyword)
    if normalized in NEWS_CANDIDATE_EXCLUDES:
        return False
    if not re.search(r"[a-zA-Z0-9]", normalized):
        return False
    return looks_like_candidate_term(normalized, min_length=4)
