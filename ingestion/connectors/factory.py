"""Builds the connector set for a section and splits it for the fast path."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import httpx

from ingestion.sections import SectionConfig
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

from .base import BaseConnector, FetcherFn, ProviderFn
from .naver import NaverNewsConnector
from .news_api import NewsAPIConnector
from .rss import RSSConnector
from .social import RedditConnector, XRecentConnector
from .youtube import YouTubeTrendingConnector

logger = get_logger(__name__)

# video sources are slow; the fast path never waits for them in phase 1
_DEFERRED_TYPES = frozenset({"video"})


@dataclass
class SourcePlan:
    section: SectionConfig
    connectors: List[BaseConnector] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def fast_split(self, subset_size: int) -> Tuple[List[BaseConnector], List[BaseConnector]]:
        """First ``subset_size`` connectors per source type go to phase 1; the rest to phase 2.

        Relative order is preserved in both halves.
        """
        per_type: Dict[str, int] = {}
        phase1: List[BaseConnector] = []
        phase2: List[BaseConnector] = []
        for connector in self.connectors:
            taken = per_type.get(connector.source_type, 0)
            if connector.source_type in _DEFERRED_TYPES or taken >= subset_size:
                phase2.append(connector)
                continue
            per_type[connector.source_type] = taken + 1
            phase1.append(connector)
        return phase1, phase2


class ConnectorFactory:
    """섹션 정의에서 커넥터 목록을 만든다.

    ``providers``는 소스 이름(news_api, naver, x, reddit, youtube)별 오프라인
    provider이며, 주입된 소스는 자격 증명 없이도 활성화된다.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        providers: Optional[Dict[str, ProviderFn]] = None,
        rss_fetcher: Optional[FetcherFn] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.providers = dict(providers or {})
        self.rss_fetcher = rss_fetcher
        self.client = client

    def _enabled(self, source: str) -> bool:
        if source in self.providers:
            return True
        cfg = self.settings
        if source == "news_api":
            return cfg.news_api_key is not None
        if source == "naver":
            return bool(cfg.naver_client_id and cfg.naver_client_secret)
        if source == "x":
            return cfg.x_bearer_token is not None
        if source == "reddit":
            return cfg.reddit_token is not None
        if source == "youtube":
            return cfg.youtube_api_key is not None
        return True

    def plan(self, section: SectionConfig) -> SourcePlan:
        plan = SourcePlan(section=section)
        common = {"settings": self.settings, "client": self.client}

        def add(source: str, connectors: List[BaseConnector]) -> None:
            if not connectors:
                return
            if not self._enabled(source):
                plan.skipped.append(source)
                return
            plan.connectors.extend(connectors)

        add("news_api", [NewsAPIConnector(q, provider=self.providers.get("news_api"), **common) for q in section.news_api])
        add("naver", [NaverNewsConnector(q, provider=self.providers.get("naver"), **common) for q in section.naver])
        add("x", [XRecentConnector(q, provider=self.providers.get("x"), **common) for q in section.x])
        add("reddit", [RedditConnector(e, provider=self.providers.get("reddit"), **common) for e in section.reddit])
        add("youtube", [YouTubeTrendingConnector(r, provider=self.providers.get("youtube"), **common) for r in section.youtube])
        add("rss", [RSSConnector(f, fetcher=self.rss_fetcher, **common) for f in section.rss])

        if plan.skipped:
            logger.info("sources.skipped", extra={"section": section.name, "skipped": plan.skipped})
        return plan
