"""Candidate lifecycle: term rules and the manager."""

from .manager import CandidateManager, effective_status
from .terms import looks_like_candidate_term, looks_like_news_candidate, normalize_keyword

__all__ = [
    "CandidateManager", "effective_status",
    "looks_like_candidate_term", "looks_like_news_candidate", "normalize_keyword",
]
