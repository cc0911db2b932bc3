"""
Seed signal models: news items, keyword candidates and root keywords.

Hierarchy: NewsItem → RawCandidateEntry → Candidate → (selected into runs)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel, CandidateStatus


class NewsItem(CamelModel):
    """A harvested news article. Identity is the canonical URL (url_key)."""
    id: str
    title: str
    url: str
    url_key: str
    source: Optional[str] = None
    published_at: Optional[datetime] = None
    summary: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class RawCandidateEntry(CamelModel):
    """A keyword proposal before validation and persistence."""
    term: str
    source: str
    title: Optional[str] = None
    summary: Optional[str] = None
    url: Optional[str] = None
    captured_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Candidate(CamelModel):
    """A discovered keyword moving through pending → approved/rejected/expired."""
    id: str
    term: str
    term_normalized: str
    source: str
    status: CandidateStatus = CandidateStatus.PENDING
    llm_label: Optional[str] = None
    llm_score: Optional[float] = None
    llm_reason: Optional[str] = None
    llm_attempts: int = 0
    captured_at: datetime
    expires_at: datetime
    queried_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    raw_title: Optional[str] = None
    raw_summary: Optional[str] = None
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RootKeyword(CamelModel):
    """Curated always-eligible seed keyword."""
    id: str
    label: str
    keyword: str
    locale: str = "global"
    is_active: bool = True
    created_at: Optional[datetime] = None


# -- Stats --

class RecordCandidateStats(CamelModel):
    attempted: int = 0
    accepted: int = 0
    deduped: int = 0
    inserted: int = 0
    existing: int = 0
    sources: Dict[str, int] = Field(default_factory=dict)


class HarvestStats(CamelModel):
    feeds_processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    keywords_detected: int = 0
    candidates: List[RawCandidateEntry] = Field(default_factory=list)
    recorded: Optional[RecordCandidateStats] = None


class CandidateEvaluationStats(CamelModel):
    enabled: bool = True
    processed: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0
    errors: int = 0
