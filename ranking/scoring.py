"""Composite score features: freshness, velocity, engagement, trust, diversity, locale."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ingestion.models.domain import Article
from ingestion.sections import DEFAULT_ACCEPTABLE_LOCALES
from ingestion.settings import Settings

from .profiles import SectionWeightProfile

# absent or unparsable publish time sinks to the bottom
AGE_SENTINEL_MINUTES = 99_999.0
DEFAULT_TRUST = 0.5

# editorial reliability tiers (5 → 1.0, 4 → 0.8, 3 → 0.6)
SOURCE_WEIGHTS: Dict[str, float] = {
    "bbc.co.uk": 1.0,
    "bbc.com": 1.0,
    "reuters.com": 1.0,
    "aljazeera.com": 0.8,
    "cnn.com": 0.8,
    "yna.co.kr": 0.8,
    "khan.co.kr": 0.6,
    "hani.co.kr": 0.6,
    "nhk.or.jp": 1.0,
    "asahi.com": 0.8,
    "mainichi.jp": 0.8,
    "ft.com": 1.0,
    "wsj.com": 1.0,
    "bloomberg.com": 1.0,
    "cnbc.com": 0.8,
    "theverge.com": 0.8,
    "arstechnica.com": 0.8,
    "techcrunch.com": 0.8,
    "wired.com": 0.8,
    "reddit.com": 0.6,
    "x.com": 0.6,
    "youtube.com": 0.8,
}


@dataclass(frozen=True)
class RankingParams:
    tau_minutes: float = 90.0
    engagement_smoothing: float = 1000.0
    diversity_penalty_base: float = 0.1
    hot_gravity: float = 1.6
    acceptable_locales: Tuple[str, ...] = DEFAULT_ACCEPTABLE_LOCALES

    @classmethod
    def from_settings(cls, settings: Settings) -> "RankingParams":
        return cls(
            tau_minutes=float(settings.rank_tau_minutes),
            engagement_smoothing=float(settings.engagement_smoothing),
            diversity_penalty_base=float(settings.diversity_penalty_base),
            hot_gravity=float(settings.hot_gravity),
        )


def domain_weight(domain: str) -> Optional[float]:
    """Table lookup that also matches parent domains (``edition.cnn.com`` → ``cnn.com``)."""
    parts = (domain or "").lower().split(".")
    for i in range(len(parts) - 1):
        weight = SOURCE_WEIGHTS.get(".".join(parts[i:]))
        if weight is not None:
            return weight
    return None


def source_weight(article: Article) -> float:
    if article.trust_hint is not None:
        return float(article.trust_hint)
    weight = domain_weight(article.source_domain)
    return DEFAULT_TRUST if weight is None else weight


def trust_score(article: Article) -> float:
    return min(1.0, source_weight(article))


def age_minutes(published_at: Optional[datetime], now: datetime) -> float:
    if published_at is None:
        return AGE_SENTINEL_MINUTES
    return max(0.0, (now - published_at).total_seconds() / 60.0)


def freshness(age: float, tau_minutes: float) -> float:
    return math.exp(-age / tau_minutes)


def velocity(engagement: int, age: float) -> float:
    return engagement / max(1.0, age)


def engagement_ratio(engagement: int, audience: int, smoothing: float) -> float:
    return engagement / (audience + smoothing)


def locale_match(language: str, preferred: Optional[str], acceptable: Sequence[str]) -> int:
    if preferred:
        return 1 if language == preferred else 0
    return 1 if language in acceptable else 0


def diversity_penalties(articles: Iterable[Article], base: float) -> List[float]:
    """Incremental per-domain penalty over the given candidate order.

    The first two articles of a domain are free; each further one adds ``base``.
    """
    counts: Dict[str, int] = {}
    penalties: List[float] = []
    for article in articles:
        domain = article.source_domain or "unknown"
        counts[domain] = counts.get(domain, 0) + 1
        penalties.append(min(1.0, base * max(0, counts[domain] - 2)))
    return penalties


def score_composite(
    articles: Sequence[Article],
    profile: SectionWeightProfile,
    params: RankingParams,
    *,
    preferred_locale: Optional[str],
    now: datetime,
) -> List[Article]:
    """Return copies of ``articles`` (same order) with every ranking feature filled in."""
    penalties = diversity_penalties(articles, params.diversity_penalty_base)
    scored: List[Article] = []
    for article, penalty in zip(articles, penalties):
        age = age_minutes(article.published_at, now)
        fresh = freshness(age, params.tau_minutes)
        vel = velocity(article.engagement_count, age)
        eng = engagement_ratio(article.engagement_count, article.audience_size, params.engagement_smoothing)
        trust = trust_score(article)
        loc = locale_match(article.language, preferred_locale, params.acceptable_locales)
        composite = (
            profile.freshness * fresh
            + profile.velocity * vel
            + profile.engagement * eng
            + profile.source_trust * trust
            - profile.diversity * penalty
            + profile.locale * loc
        )
        scored.append(
            article.model_copy(
                update={
                    "age_minutes": age,
                    "freshness_score": fresh,
                    "velocity": vel,
                    "engagement_ratio": eng,
                    "trust_score": trust,
                    "diversity_penalty": penalty,
                    "locale_match": loc,
                    "composite_score": composite,
                }
            )
        )
    return scored


def composite_sort_key(article: Article):
    return (
        -(article.composite_score or 0.0),
        article.age_minutes if article.age_minutes is not None else AGE_SENTINEL_MINUTES,
        -(article.trust_score or 0.0),
        article.id,
    )
