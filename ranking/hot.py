"""Keyword importance rating, tags, and the gravity-decay "hot" score."""

from __future__ import annotations

from datetime import datetime
from typing import List, Sequence

from ingestion.models.domain import Article

from .scoring import AGE_SENTINEL_MINUTES, trust_score

URGENT_KEYWORDS = (
    "breaking", "urgent", "alert", "emergency", "crisis", "disaster",
    "긴급", "속보", "재난", "위기", "사고", "응급",
    "速報", "緊急",
)
IMPORTANT_KEYWORDS = (
    "president", "government", "election", "economy", "market", "policy",
    "war", "peace", "treaty", "agreement", "summit", "conference",
    "대통령", "정부", "선거", "경제", "시장", "정책", "전쟁", "평화", "협정", "정상회담",
)
BUSINESS_KEYWORDS = (
    "stock", "market", "investment", "finance", "economy", "trade", "company",
    "earnings", "profit", "revenue", "merger", "acquisition",
    "주식", "시장", "투자", "금융", "경제", "무역", "기업", "수익", "인수합병",
)
BUZZ_KEYWORDS = (
    "viral", "trending", "celebrity", "entertainment", "social media",
    "meme", "influencer", "youtube", "tiktok", "instagram",
    "바이럴", "트렌드", "연예인", "엔터테인먼트", "소셜미디어", "인플루언서",
)
SPORTS_KEYWORDS = (
    "sports", "olympic", "football", "soccer", "basketball", "baseball",
    "스포츠", "올림픽", "축구", "농구", "야구",
)
RELIABLE_SOURCES = ("bbc", "reuters", "ap news", "cnn", "연합뉴스", "yonhap", "kbs", "mbc", "nhk")

BASE_RATING = 3.0
HOT_TAG_THRESHOLD = 4.9
TAG_PRIORITY = ("urgent", "important", "hot", "buzz")

# (upper bound in hours, bonus)
_RECENCY_BONUS = ((1, 1.2), (6, 0.8), (24, 0.6), (48, 0.4), (72, 0.2))


def _contains(text: str, keywords: Sequence[str]) -> bool:
    return any(k in text for k in keywords)


def _text(article: Article) -> str:
    return f"{article.title} {article.description}".lower()


def importance_rating(article: Article, now: datetime) -> float:
    """1–5 rating rounded to the nearest 0.5."""
    text = _text(article)
    score = BASE_RATING
    if _contains(text, URGENT_KEYWORDS):
        score += 2.0
    if _contains(text, IMPORTANT_KEYWORDS):
        score += 1.5
    if _contains(text, BUZZ_KEYWORDS):
        score += 1.0
    if _contains(text, SPORTS_KEYWORDS):
        score -= 0.5

    if now.weekday() < 5:
        if _contains(text, BUSINESS_KEYWORDS) or _contains(text, IMPORTANT_KEYWORDS):
            score += 0.5
    elif _contains(text, BUZZ_KEYWORDS):
        score += 0.5

    if article.published_at is not None:
        hours = (now - article.published_at).total_seconds() / 3600.0
        for bound, bonus in _RECENCY_BONUS:
            if hours < bound:
                score += bonus
                break

    source = article.source_name.lower()
    if any(s in source for s in RELIABLE_SOURCES):
        score += 0.5
    if len(article.description) > 200:
        score += 0.3

    return min(5.0, max(1.0, round(score * 2) / 2))


def importance_tags(article: Article, rating: float) -> List[str]:
    text = _text(article)
    found = set()
    if _contains(text, URGENT_KEYWORDS):
        found.add("urgent")
    if _contains(text, IMPORTANT_KEYWORDS):
        found.add("important")
    if _contains(text, BUZZ_KEYWORDS):
        found.add("buzz")
    if rating >= HOT_TAG_THRESHOLD:
        found.add("hot")
    return [t for t in TAG_PRIORITY if t in found][:4]


def hot_score(rating: float, age_hours: float, gravity: float = 1.6) -> float:
    """``rating² / (age_hours + 2) ** gravity``."""
    return (rating ** 2) / ((max(0.0, age_hours) + 2.0) ** gravity)


def hot_sort_key(article: Article):
    return (
        -(article.hot_score or 0.0),
        article.age_minutes if article.age_minutes is not None else AGE_SENTINEL_MINUTES,
        -(article.trust_score if article.trust_score is not None else trust_score(article)),
        article.id,
    )
