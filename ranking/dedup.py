"""Exact dedup and Jaccard near-duplicate clustering of article titles."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from ingestion.connectors.base import fingerprint
from ingestion.models.domain import Article

from .scoring import source_weight

_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)


def exact_dedup(articles: Iterable[Article]) -> List[Article]:
    """Drop repeats of (title, canonical_url); the first occurrence wins."""
    seen = set()
    unique: List[Article] = []
    for article in articles:
        fp = fingerprint(article.canonical_url, article.title)
        if fp in seen:
            continue
        seen.add(fp)
        unique.append(article)
    return unique


def tokenize_title(title: str) -> FrozenSet[str]:
    cleaned = _PUNCT_RE.sub(" ", (title or "").lower())
    return frozenset(t for t in cleaned.split() if len(t) >= 2)


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


@dataclass
class _Cluster:
    representative: Article
    tokens: FrozenSet[str]
    size: int


class ClusterEngine:
    """Greedy single-pass clustering against each cluster's representative.

    Passes repeat until one merges nothing, so clustering its own output is a no-op.
    """

    def __init__(
        self,
        threshold: float = 0.8,
        *,
        weight_fn: Optional[Callable[[Article], float]] = None,
    ) -> None:
        if not 0.0 < threshold <= 1.0:
            raise ValueError("threshold는 (0, 1] 범위여야 합니다.")
        self.threshold = threshold
        self._weight = weight_fn or source_weight

    def _single_pass(self, articles: Sequence[Article]) -> tuple[List[_Cluster], bool]:
        clusters: List[_Cluster] = []
        merged = False
        for article in articles:
            tokens = tokenize_title(article.title)
            best: Optional[_Cluster] = None
            best_sim = 0.0
            for cluster in clusters:
                sim = jaccard(tokens, cluster.tokens)
                # strict ">" keeps the earliest cluster on ties
                if sim >= self.threshold and sim > best_sim:
                    best, best_sim = cluster, sim
            if best is None:
                clusters.append(_Cluster(article, tokens, article.cluster_size))
                continue
            merged = True
            best.size += article.cluster_size
            if self._weight(article) > self._weight(best.representative):
                best.representative = article
                best.tokens = tokens
        return clusters, merged

    def cluster(self, articles: Sequence[Article]) -> List[Article]:
        current: List[Article] = list(articles)
        while True:
            clusters, merged = self._single_pass(current)
            current = [
                c.representative
                if c.representative.cluster_size == c.size
                else c.representative.model_copy(update={"cluster_size": c.size})
                for c in clusters
            ]
            if not merged:
                return current
