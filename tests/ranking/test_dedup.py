from __future__ import annotations

import pytest

from ingestion.models.domain import Article
from ranking.dedup import ClusterEngine, exact_dedup, jaccard, tokenize_title


def _article(title: str, url: str, domain: str = "", trust=None) -> Article:
    return Article(title=title, canonical_url=url, source_name=domain or "src", source_domain=domain, trust_hint=trust)


def test_tokenize_title_strips_punctuation_and_short_tokens():
    assert tokenize_title("Hello, World! a") == frozenset({"hello", "world"})
    assert tokenize_title("속보: 국회 본회의 통과") == frozenset({"속보", "국회", "본회의", "통과"})
    assert tokenize_title("") == frozenset()


def test_jaccard_edges():
    assert jaccard(frozenset(), frozenset({"a"})) == 0.0
    assert jaccard(frozenset({"a", "b"}), frozenset({"a", "b"})) == 1.0
    assert jaccard(frozenset({"a", "b"}), frozenset({"b", "c"})) == pytest.approx(1 / 3)


def test_exact_dedup_keeps_first_occurrence():
    first = _article("Same story", "https://ex.com/1", "ex.com")
    repeat = first.model_copy(update={"source_name": "mirror"})
    other = _article("Same story", "https://other.com/1", "other.com")

    result = exact_dedup([first, repeat, other])

    assert result == [first, other]


def test_cluster_merges_near_duplicates_and_prefers_trusted_representative():
    low = _article("Leaders agree on climate deal in Geneva", "https://blog.example/1", "blog.example")
    high = _article("Leaders agree on climate deal in Geneva", "https://www.reuters.com/1", "reuters.com")
    unrelated = _article("Chip exports face new rules", "https://ex.com/2", "ex.com")

    result = ClusterEngine(0.8).cluster([low, unrelated, high])

    assert len(result) == 2
    assert result[0].canonical_url == "https://www.reuters.com/1"
    assert result[0].cluster_size == 2
    assert result[1].cluster_size == 1


def test_cluster_tie_keeps_first_representative():
    a = _article("Markets close higher on Friday", "https://a.com/1", "a.com")
    b = _article("Markets close higher on Friday", "https://b.com/1", "b.com")

    result = ClusterEngine(0.8).cluster([a, b])

    assert [x.canonical_url for x in result] == ["https://a.com/1"]


def test_clustering_is_idempotent():
    articles = [
        _article("Storm hits coastal towns overnight", "https://a.com/1", "a.com"),
        _article("Storm hits coastal towns overnight again", "https://b.com/1", "b.com"),
        _article("Storm hits coastal towns", "https://c.com/1", "c.com"),
        _article("Parliament passes budget bill", "https://d.com/1", "d.com"),
    ]
    engine = ClusterEngine(0.75)

    once = engine.cluster(articles)
    twice = engine.cluster(once)

    assert twice == once
    assert sum(a.cluster_size for a in once) == len(articles)


def test_threshold_must_be_in_range():
    with pytest.raises(ValueError):
        ClusterEngine(0.0)
    with pytest.raises(ValueError):
        ClusterEngine(1.5)
