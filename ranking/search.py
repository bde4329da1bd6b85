"""Keyword search and trending topics over already-ranked section lists."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from ingestion.models.domain import Article

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def relevance_score(article: Article, term: str) -> int:
    """제목 일치 > 번역 제목 > 본문 > 태그 순으로 가산."""
    term = term.strip().lower()
    title = article.title.lower()
    score = 0
    if term in title:
        score += 10
        if title.startswith(term):
            score += 5
    if article.translated_title and term in article.translated_title.lower():
        score += 8
    if term in article.description.lower():
        score += 5
    if any(term in tag.lower() for tag in article.tags):
        score += 3
    return score


def search_articles(articles: Iterable[Article], term: str, limit: int) -> List[Article]:
    """Matches sorted by relevance, newest first on ties; one entry per article id."""
    scored: Dict[str, Tuple[int, Article]] = {}
    for article in articles:
        score = relevance_score(article, term)
        if score <= 0 or article.id in scored:
            continue
        scored[article.id] = (score, article)
    ranked = sorted(
        scored.values(),
        key=lambda pair: (-pair[0], -(pair[1].published_at or _EPOCH).timestamp(), pair[1].id),
    )
    return [article for _, article in ranked[:limit]]


def trending_topics(articles: Iterable[Article], top: int = 10) -> List[Tuple[str, int]]:
    counts = Counter(tag for article in articles for tag in article.tags)
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top]
