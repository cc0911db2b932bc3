"""
Keyword extraction for news items.

Layers, in order of precedence:
  1. AI-term matchers (model/vendor names, "ai-*" compounds, ML disciplines)
  2. Feed categories
  3. Title and summary tokens minus stopwords (first 20 tokens each)
  4. Root keywords appearing verbatim in the text
  5. Author byline

The generic term "ai" is never kept as a keyword.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from scout.candidates.terms import normalize_keyword

MAX_KEYWORDS = 16
MAX_TOKENS_PER_FIELD = 20

STOPWORDS: Set[str] = {
    "the", "and", "for", "with", "that", "this", "from", "into", "your", "have",
    "will", "about", "after", "over", "under", "between", "their", "been",
    "being", "amid", "amidst", "are", "was", "were", "its", "has", "had",
    "but", "not", "you", "can", "how", "why", "what", "who", "new", "says",
    "said", "more", "than", "also", "just", "now", "out", "all", "our",
}

AI_MATCHERS = [
    re.compile(
        r"(gpt(?:-\d+)?|chatgpt|copilot|claude|gemini|llm|openai|anthropic|mistral|"
        r"stability ai|perplexity|genai|deepmind)",
        re.IGNORECASE,
    ),
    re.compile(r"\bai(?:-[\w-]+)?\b", re.IGNORECASE),
    re.compile(
        r"(machine learning|deep learning|computer vision|natural language processing|"
        r"nlp|robotics|neural networks?)",
        re.IGNORECASE,
    ),
]

_TOKEN = re.compile(r"[a-zA-Z0-9_#+\-]{2,}")


@dataclass
class KeywordExtraction:
    keywords: List[str]
    keyword_count: int
    has_ai_signal: bool


def tokenize(value: str) -> List[str]:
    tokens = _TOKEN.findall(value.lower())
    return [t for t in tokens if t not in STOPWORDS][:MAX_TOKENS_PER_FIELD]


def extract_keywords(
    title: str,
    summary: str = "",
    categories: Iterable[str] = (),
    root_keywords: Iterable[str] = (),
    author: Optional[str] = None,
) -> KeywordExtraction:
    text = f"{title}\n{summary}".lower()
    ordered: List[str] = []
    seen: Set[str] = set()
    has_ai_signal = False

    def _add(value: str):
        normalized = normalize_keyword(value)[:120]
        if normalized and normalized != "ai" and normalized not in seen:
            seen.add(normalized)
            ordered.append(normalized)

    for matcher in AI_MATCHERS:
        matches = [m.group(0) for m in matcher.finditer(text)]
        if matches:
            has_ai_signal = True
        for match in matches:
            _add(match)

    for category in categories:
        _add(category)
    for token in tokenize(title):
        _add(token)
    for token in tokenize(summary):
        _add(token)
    for root in root_keywords:
        root = normalize_keyword(root)
        if root and root in text:
            _add(root)
    if author:
        _add(author)

    return KeywordExtraction(
        keywords=ordered[:MAX_KEYWORDS],
        keyword_count=len(ordered),
        has_ai_signal=has_ai_signal,
    )
