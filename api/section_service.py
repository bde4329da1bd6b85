"""Section aggregation service: fetch → rank → enrich → cache.

Fast and full results are cached per section as the whole ranked list; pages
are sliced from the cached list on every request.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from enrichment.queue import EnrichmentQueue
from enrichment.service import ArticleEnricher
from ingestion.connectors.base import ProviderFn
from ingestion.connectors.factory import ConnectorFactory
from ingestion.models.domain import Article, SectionPayload
from ingestion.sections import SectionConfig, SectionError, get_section, section_names
from ingestion.services.cache import TieredCache, build_cache
from ingestion.services.fanout import FanOutFetcher, FanOutResult
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from llm.client.openai_client import OpenAIClient
from llm.settings import LLMSettings, get_llm_settings
from ranking.engine import RankingEngine
from ranking.search import search_articles, trending_topics

from .models import SearchResults, TrendingReport, TrendingTopic

logger = get_logger(__name__)


class ArticleNotFoundError(SectionError):
    def __init__(self, section: str, article_id: str) -> None:
        super().__init__(f"Article not found: {section}/{article_id}")
        self.section = section
        self.article_id = article_id


class InvalidSearchQueryError(SectionError, ValueError):
    def __init__(self) -> None:
        super().__init__("Search query is required")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SectionService:
    def __init__(
        self,
        *,
        cache: TieredCache,
        factory: ConnectorFactory,
        ranking: RankingEngine,
        enricher: Optional[ArticleEnricher] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache
        self.factory = factory
        self.fanout = FanOutFetcher(cache, self.settings)
        self.ranking = ranking
        self.enricher = enricher
        self._clock = clock
        self._continuations: Dict[str, "asyncio.Task[None]"] = {}

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        llm_settings: Optional[LLMSettings] = None,
        *,
        cache: Optional[TieredCache] = None,
        providers: Optional[Dict[str, ProviderFn]] = None,
        llm_client: Optional[OpenAIClient] = None,
    ) -> "SectionService":
        """환경 설정으로 전체 파이프라인을 조립한다."""
        settings = settings or get_settings()
        llm_settings = llm_settings or get_llm_settings()
        cache = cache or await build_cache(settings)
        queue = EnrichmentQueue(llm_client or OpenAIClient(llm_settings), llm_settings)
        enricher = ArticleEnricher(queue, cache, llm_settings=llm_settings, settings=settings)
        return cls(
            cache=cache,
            factory=ConnectorFactory(settings, providers=providers),
            ranking=RankingEngine(settings),
            enricher=enricher,
            settings=settings,
        )

    # keys

    @staticmethod
    def _key(section: str, mode: str) -> str:
        return f"{section}:{mode}"

    async def _cached_payload(self, section: str, mode: str) -> Optional[SectionPayload]:
        raw = await self.cache.get("section", self._key(section, mode))
        if raw is None:
            return None
        try:
            return SectionPayload.model_validate(raw)
        except ValueError:
            logger.warning("section.cache_invalid", extra={"section": section, "mode": mode})
            return None

    # pipeline

    async def _assemble(
        self,
        cfg: SectionConfig,
        fetched: FanOutResult,
        *,
        partial: bool,
        enrich: bool,
    ) -> SectionPayload:
        now = self._clock()
        ranked = self.ranking.rank(cfg, fetched.articles, now=now)[: self.settings.full_max]
        if enrich and self.enricher is not None:
            ranked = await self.enricher.enrich_many(ranked)
        return SectionPayload(
            section=cfg.name,
            articles=ranked,
            total=len(ranked),
            partial=partial,
            timestamp=now,
            strategy=self.settings.ranking_strategy(cfg),
            sources_ok=fetched.sources_ok,
            sources_failed=fetched.sources_failed,
        )

    async def _store(self, cfg: SectionConfig, mode: str, payload: SectionPayload, base_ttl: int) -> None:
        await self.cache.set(
            "section",
            self._key(cfg.name, mode),
            payload.model_dump(mode="json"),
            self.settings.section_ttl(base_ttl, cfg),
        )

    async def _load_full(self, cfg: SectionConfig, *, refresh: bool) -> SectionPayload:
        if not refresh:
            cached = await self._cached_payload(cfg.name, "full")
            if cached is not None:
                return cached
        plan = self.factory.plan(cfg)
        fetched = await self.fanout.fetch(
            plan.connectors, self.settings.full_deadline_ms / 1000.0, bypass_cache=refresh
        )
        payload = await self._assemble(cfg, fetched, partial=False, enrich=True)
        await self._store(cfg, "full", payload, self.settings.full_ttl_seconds)
        logger.info(
            "section.full_built",
            extra={
                "section": cfg.name,
                "articles": payload.total,
                "sources_ok": payload.sources_ok,
                "sources_failed": payload.sources_failed,
            },
        )
        return payload

    # operations

    async def get_section_full(
        self, section: str, page: int = 1, limit: Optional[int] = None, *, refresh: bool = False
    ) -> SectionPayload:
        cfg = get_section(section)
        payload = await self._load_full(cfg, refresh=refresh)
        return payload.page(page, limit or self.settings.full_max)

    async def get_section_fast(
        self, section: str, page: int = 1, limit: Optional[int] = None, *, refresh: bool = False
    ) -> SectionPayload:
        cfg = get_section(section)
        limit = limit or self.settings.fast_first_batch
        if not refresh:
            cached = await self._cached_payload(cfg.name, "fast")
            if cached is not None:
                return cached.page(page, limit)

        plan = self.factory.plan(cfg)
        phase1, phase2 = plan.fast_split(self.settings.fast_subset_size)
        first = await self.fanout.fetch(
            phase1, self.settings.fast_phase1_deadline_ms / 1000.0, bypass_cache=refresh
        )
        payload = await self._assemble(cfg, first, partial=True, enrich=False)
        await self._store(cfg, "fast", payload, self.settings.fast_ttl_seconds)
        self._schedule_continuation(cfg, first, phase2, bypass_cache=refresh)
        return payload.page(page, limit)

    async def get_article(self, section: str, article_id: str) -> Article:
        cfg = get_section(section)
        for mode in ("full", "fast"):
            cached = await self._cached_payload(cfg.name, mode)
            found = _find(cached.articles if cached else [], article_id)
            if found is not None:
                return found
        payload = await self._load_full(cfg, refresh=False)
        found = _find(payload.articles, article_id)
        if found is None:
            raise ArticleNotFoundError(cfg.name, article_id)
        return found

    async def refresh(self, section: str) -> SectionPayload:
        """Rebuild the full payload bypassing every cache layer."""
        return await self._load_full(get_section(section), refresh=True)

    async def _cached_sections(self, sections: Sequence[str]) -> Dict[str, SectionPayload]:
        """섹션별 캐시된 목록(full 우선, 없으면 fast). 캐시가 없는 섹션은 건너뛴다."""
        found: Dict[str, SectionPayload] = {}
        for name in sections:
            payload = await self._cached_payload(name, "full") or await self._cached_payload(name, "fast")
            if payload is not None:
                found[name] = payload
        return found

    async def search(self, query: str, section: Optional[str] = None, limit: int = 20) -> SearchResults:
        """Keyword search across cached section lists; never triggers a fetch."""
        term = (query or "").strip()
        if not term:
            raise InvalidSearchQueryError()
        sections = [get_section(section).name] if section else section_names()
        cached = await self._cached_sections(sections)
        results = search_articles(
            (a for payload in cached.values() for a in payload.articles), term, limit
        )
        return SearchResults(
            query=term, results=results, total=len(results), sections=list(cached), timestamp=self._clock()
        )

    async def trending(self, per_section: int = 10, top: int = 10) -> TrendingReport:
        """Tag counts over the top ``per_section`` cached articles of every section."""
        cached = await self._cached_sections(section_names())
        articles = [a for payload in cached.values() for a in payload.articles[:per_section]]
        return TrendingReport(
            trending=[TrendingTopic(topic=t, count=c) for t, c in trending_topics(articles, top)],
            total_articles=len(articles),
            sections=list(cached),
            timestamp=self._clock(),
        )

    # background continuation

    def _schedule_continuation(
        self, cfg: SectionConfig, first: FanOutResult, remaining: Sequence[Any], *, bypass_cache: bool
    ) -> None:
        running = self._continuations.get(cfg.name)
        if running is not None and not running.done():
            logger.debug("section.continuation_in_flight", extra={"section": cfg.name})
            return
        task = asyncio.create_task(
            self._continue(cfg, first, list(remaining), bypass_cache), name=f"continuation:{cfg.name}"
        )
        self._continuations[cfg.name] = task
        task.add_done_callback(lambda t, name=cfg.name: self._forget(name, t))

    def _forget(self, section: str, task: "asyncio.Task[None]") -> None:
        if self._continuations.get(section) is task:
            del self._continuations[section]

    async def _continue(
        self, cfg: SectionConfig, first: FanOutResult, remaining: List[Any], bypass_cache: bool
    ) -> None:
        try:
            rest = await self.fanout.fetch(
                remaining, self.settings.fast_phase2_deadline_ms / 1000.0, bypass_cache=bypass_cache
            )
            payload = await self._assemble(cfg, first.merge(rest), partial=False, enrich=True)
            await self._store(cfg, "fast", payload, self.settings.full_ttl_seconds)
            logger.info("section.continuation_done", extra={"section": cfg.name, "articles": payload.total})
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("section.continuation_failed", extra={"section": cfg.name})

    async def wait_for_background(self) -> None:
        tasks = list(self._continuations.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            "cache": self.cache.backend_name,
            "continuations": sorted(n for n, t in self._continuations.items() if not t.done()),
        }
        if self.enricher is not None:
            status["enrichment"] = self.enricher.queue.status()
        return status

    async def aclose(self) -> None:
        tasks = list(self._continuations.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._continuations.clear()
        if self.enricher is not None:
            await self.enricher.queue.aclose()


def _find(articles: List[Article], article_id: str) -> Optional[Article]:
    for article in articles:
        if article.id == article_id:
            return article
    return None
