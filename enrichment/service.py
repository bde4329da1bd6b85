"""Article enrichment: translation, bullet summary and gated detailed summary.

Every call goes through the ``EnrichmentQueue``; results are cached in the
``enrichment`` namespace keyed by a hash of the input text. Any failure falls
back to the original text, so enrichment never fails a section request.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any, List, Optional, Sequence

from ingestion.models.domain import Article
from ingestion.services.cache import TieredCache
from ingestion.settings import Settings, get_settings
from ingestion.utils.language import is_language
from ingestion.utils.logging import get_logger
from llm.client.openai_client import LLMError
from llm.prompts import build_detail_messages, build_summary_messages, build_translate_messages, parse_bullets
from llm.settings import LLMSettings, get_llm_settings

from .queue import EnrichmentQueue, EnrichmentTask

logger = get_logger(__name__)


def content_key(kind: str, *parts: Any) -> str:
    data = "\x1f".join(str(p) for p in (kind, *parts)).encode("utf-8")
    return f"{kind}:{hashlib.sha256(data).hexdigest()}"


class ArticleEnricher:
    def __init__(
        self,
        queue: EnrichmentQueue,
        cache: TieredCache,
        *,
        llm_settings: Optional[LLMSettings] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.queue = queue
        self.cache = cache
        self.llm_settings = llm_settings or get_llm_settings()
        self.settings = settings or get_settings()
        self.queue.result_sink = self._store_result

    @property
    def target_language(self) -> str:
        return self.llm_settings.target_language

    async def _store_result(self, task: EnrichmentTask, content: str) -> None:
        value: Any = content
        if task.kind == "translate":
            # output not in the target script is not worth keeping
            if not is_language(content, self.target_language):
                return
        elif task.kind == "summarize":
            value = parse_bullets(content, self.llm_settings.summary_points)
            if not value:
                return
        await self.cache.set("enrichment", task.key, value, self.settings.enrichment_ttl_seconds)

    async def translate(self, text: str) -> str:
        if not text or not text.strip():
            return text
        if is_language(text, self.target_language) or not self.queue.available:
            return text
        key = content_key("translate", self.target_language, text)
        cached = await self.cache.get("enrichment", key)
        if isinstance(cached, str):
            return cached
        messages = build_translate_messages(
            text, self.target_language, max_chars=self.llm_settings.translate_input_chars
        )
        try:
            result = await self.queue.run(
                "translate", key, {"messages": messages, "max_tokens": self.llm_settings.translate_max_tokens}
            )
        except LLMError:
            return text
        return result if is_language(result, self.target_language) else text

    async def summarize(self, article: Article) -> List[str]:
        fallback = [article.description] if article.description else [article.title]
        if not self.queue.available:
            return fallback
        text = f"{article.title}\n{article.description}".strip()
        points = self.llm_settings.summary_points
        key = content_key("summarize", self.target_language, points, text)
        cached = await self.cache.get("enrichment", key)
        if isinstance(cached, list) and cached:
            return [str(b) for b in cached]
        messages = build_summary_messages(
            text, points, self.target_language, max_chars=self.llm_settings.translate_input_chars
        )
        try:
            content = await self.queue.run(
                "summarize", key, {"messages": messages, "max_tokens": self.llm_settings.summary_max_tokens}
            )
        except LLMError:
            return fallback
        return parse_bullets(content, points) or fallback

    async def detail(self, article: Article) -> Optional[str]:
        if (article.rating or 0.0) < self.llm_settings.detail_rating_threshold:
            return None
        if not self.queue.available or not article.description:
            return None
        key = content_key("detail", self.target_language, article.title, article.description)
        cached = await self.cache.get("enrichment", key)
        if isinstance(cached, str):
            return cached
        messages = build_detail_messages(
            article.title, article.description, self.target_language, max_chars=self.llm_settings.detail_input_chars
        )
        try:
            return await self.queue.run(
                "detail", key, {"messages": messages, "max_tokens": self.llm_settings.detail_max_tokens}
            )
        except LLMError:
            return None

    async def enrich(self, article: Article) -> Article:
        if article.is_enriched:
            return article
        title, description, bullets, detailed = await asyncio.gather(
            self.translate(article.title),
            self.translate(article.description),
            self.summarize(article),
            self.detail(article),
        )
        return article.model_copy(
            update={
                "translated_title": title,
                "translated_description": description,
                "summary_bullets": bullets,
                "detailed_summary": detailed,
            }
        )

    async def enrich_many(self, articles: Sequence[Article], top_n: Optional[int] = None) -> List[Article]:
        """Enrich the first ``top_n`` articles; the rest pass through unchanged, order kept."""
        limit = self.llm_settings.enrich_top_n if top_n is None else top_n
        head = await asyncio.gather(*(self.enrich(a) for a in articles[:limit]))
        logger.debug("enrich.batch", extra={"enriched": len(head), "total": len(articles)})
        return [*head, *articles[limit:]]
