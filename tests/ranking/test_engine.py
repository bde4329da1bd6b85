from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ingestion.models.domain import Article
from ingestion.sections import get_section
from ingestion.settings import Settings
from ranking.engine import RankingEngine, filter_recent
from ranking.profiles import SectionWeightProfile

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _article(title: str, url: str, domain: str, published_at=None, **kwargs) -> Article:
    return Article(
        title=title,
        canonical_url=url,
        source_name=domain,
        source_domain=domain,
        published_at=published_at,
        language="en",
        **kwargs,
    )


def _engine(**overrides) -> RankingEngine:
    return RankingEngine(Settings(redis_url="", **overrides))


def test_world_scenario_merges_near_duplicates_and_ranks_fresh_first():
    a = _article("Summit opens with pledge on climate finance", "https://www.reuters.com/a", "reuters.com", NOW)
    b = _article(
        "Ceasefire talks resume in Cairo", "https://edition.cnn.com/b", "cnn.com", NOW - timedelta(hours=2)
    )
    c = _article(
        "Ceasefire talks resume in Cairo", "https://www.bbc.co.uk/c", "bbc.co.uk", NOW - timedelta(hours=2)
    )

    ranked = _engine().rank(
        get_section("world"),
        [a, b, c],
        now=NOW,
        strategy="composite",
        profile=SectionWeightProfile.parse("0.6,0.1,0.05,0.15,0.05,0.05"),
    )

    assert len(ranked) == 2
    assert ranked[0].canonical_url == a.canonical_url
    merged = ranked[1]
    assert merged.cluster_size == 2
    # higher source weight wins the representative slot
    assert merged.source_domain == "bbc.co.uk"


def test_filter_recent_keeps_undated_articles():
    fresh = _article("Fresh", "https://ex.com/1", "ex.com", NOW - timedelta(hours=1))
    old = _article("Old", "https://ex.com/2", "ex.com", NOW - timedelta(hours=13))
    undated = _article("Undated", "https://ex.com/3", "ex.com")

    assert filter_recent([fresh, old, undated], NOW, 12) == [fresh, undated]


def test_rank_fills_rating_tags_and_hot_score():
    article = _article("Breaking: markets tumble", "https://www.ft.com/1", "ft.com", NOW - timedelta(minutes=20))

    [ranked] = _engine().rank(get_section("business"), [article], now=NOW)

    assert ranked.rating == 5.0
    assert "urgent" in ranked.tags
    assert ranked.hot_score is not None and ranked.hot_score > 0
    assert ranked.composite_score is not None
    assert ranked.trust_score == 1.0


def test_hot_strategy_orders_by_hot_score():
    older_urgent = _article("Breaking: dam collapse", "https://ex.com/1", "ex.com", NOW - timedelta(hours=6))
    fresh_plain = _article("Local bakery opens", "https://ex.com/2", "ex.com", NOW - timedelta(minutes=5))

    ranked = _engine().rank(get_section("japan"), [older_urgent, fresh_plain], now=NOW)

    hot_scores = [a.hot_score for a in ranked]
    assert hot_scores == sorted(hot_scores, reverse=True)


def test_section_strategy_override_from_settings():
    engine = _engine(RANKING_STRATEGIES={"world": "hot"})
    a = _article("Story one about trade", "https://ex.com/1", "ex.com", NOW - timedelta(hours=1))
    b = _article("Another headline entirely", "https://ex.com/2", "ex.com", NOW - timedelta(hours=2))

    ranked = engine.rank(get_section("world"), [a, b], now=NOW)

    assert [x.hot_score for x in ranked] == sorted((x.hot_score for x in ranked), reverse=True)
