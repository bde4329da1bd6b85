"""Section ranking: recent-window filter → dedup/cluster → rating → strategy sort."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from ingestion.models.domain import Article
from ingestion.sections import RankingStrategy, SectionConfig
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

from .dedup import ClusterEngine, exact_dedup
from .hot import hot_score, hot_sort_key, importance_rating, importance_tags
from .profiles import SectionWeightProfile
from .scoring import RankingParams, composite_sort_key, score_composite

logger = get_logger(__name__)


def filter_recent(articles: Sequence[Article], now: datetime, window_hours: int) -> List[Article]:
    """Drop dated articles older than the window; undated ones stay (they sink later)."""
    cutoff = now - timedelta(hours=window_hours)
    return [a for a in articles if a.published_at is None or a.published_at >= cutoff]


class RankingEngine:
    """랭킹 엔진. ``now``는 항상 호출자가 넘긴다(결정적 정렬)."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        cluster_engine: Optional[ClusterEngine] = None,
        params: Optional[RankingParams] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.params = params or RankingParams.from_settings(self.settings)
        self.cluster_engine = cluster_engine or ClusterEngine(self.settings.cluster_threshold)

    def prepare(self, articles: Sequence[Article], now: datetime) -> List[Article]:
        recent = filter_recent(articles, now, self.settings.recent_window_hours)
        unique = exact_dedup(recent)
        clustered = self.cluster_engine.cluster(unique)
        logger.debug(
            "ranking.prepared",
            extra={"input": len(articles), "recent": len(recent), "unique": len(unique), "clusters": len(clustered)},
        )
        return clustered

    def rank(
        self,
        section: SectionConfig,
        articles: Sequence[Article],
        *,
        now: datetime,
        strategy: Optional[RankingStrategy] = None,
        profile: Optional[SectionWeightProfile] = None,
    ) -> List[Article]:
        strategy = strategy or self.settings.ranking_strategy(section)
        profile = profile or self.settings.weight_profile(section.name)
        candidates = self.prepare(articles, now)
        scored = score_composite(
            candidates,
            profile,
            self.params,
            preferred_locale=section.preferred_locale,
            now=now,
        )
        rated: List[Article] = []
        for article in scored:
            rating = importance_rating(article, now)
            rated.append(
                article.model_copy(
                    update={
                        "rating": rating,
                        "tags": importance_tags(article, rating),
                        "hot_score": hot_score(rating, (article.age_minutes or 0.0) / 60.0, self.params.hot_gravity),
                    }
                )
            )
        key = hot_sort_key if strategy == "hot" else composite_sort_key
        return sorted(rated, key=key)
