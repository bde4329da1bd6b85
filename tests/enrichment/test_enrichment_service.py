from __future__ import annotations

from typing import Any, Dict, List

import pytest
import pytest_asyncio

from enrichment.queue import EnrichmentQueue
from enrichment.service import ArticleEnricher, content_key
from ingestion.models.domain import Article
from ingestion.services.cache import InMemoryBackend, TieredCache
from ingestion.settings import Settings
from llm.client.openai_client import OpenAIClient, PermanentLLMError
from llm.settings import LLMSettings


class _Provider:
    """Answers by prompt type so one provider serves every enrichment kind."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: List[str] = []
        self.fail = fail

    async def __call__(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        system = payload["messages"][0]["content"]
        if "번역가" in system:
            kind, content = "translate", "한국어 번역 결과"
        elif "요약 전문가" in system:
            kind, content = "summarize", "- 첫 번째 요점\n- 두 번째 요점"
        else:
            kind, content = "detail", "상세 요약 본문"
        self.calls.append(kind)
        if self.fail:
            raise PermanentLLMError("rejected")
        return {
            "choices": [{"message": {"content": content}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 10},
            "model": "gpt-4o-mini",
            "headers": {},
        }


def _article(**kwargs: Any) -> Article:
    data = {
        "title": "Leaders agree on climate deal",
        "description": "Negotiators reached a deal late on Friday.",
        "canonical_url": "https://www.reuters.com/climate",
        "source_name": "Reuters",
    }
    data.update(kwargs)
    return Article(**data)


@pytest_asyncio.fixture
async def make_enricher():
    queues: List[EnrichmentQueue] = []

    def _make(provider=None):
        llm_settings = LLMSettings()
        queue = EnrichmentQueue(OpenAIClient(llm_settings, provider=provider), llm_settings)
        queues.append(queue)
        cache = TieredCache(InMemoryBackend())
        return ArticleEnricher(queue, cache, llm_settings=llm_settings, settings=Settings(redis_url=""))

    yield _make
    for queue in queues:
        await queue.aclose()


@pytest.mark.asyncio
async def test_translate_uses_queue_then_cache(make_enricher):
    provider = _Provider()
    enricher = make_enricher(provider)

    first = await enricher.translate("Leaders agree on climate deal")
    second = await enricher.translate("Leaders agree on climate deal")

    assert first == second == "한국어 번역 결과"
    assert provider.calls == ["translate"]
    key = content_key("translate", "ko", "Leaders agree on climate deal")
    assert await enricher.cache.get("enrichment", key) == "한국어 번역 결과"


@pytest.mark.asyncio
async def test_text_already_in_target_language_is_not_translated(make_enricher):
    provider = _Provider()
    enricher = make_enricher(provider)

    assert await enricher.translate("국회 본회의 통과") == "국회 본회의 통과"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_provider_unavailable_passes_text_through(make_enricher):
    enricher = make_enricher(None)
    article = _article()

    enriched = await enricher.enrich(article)

    assert enriched.translated_title == article.title
    assert enriched.summary_bullets == [article.description]
    assert enriched.detailed_summary is None


@pytest.mark.asyncio
async def test_failures_fall_back_to_original(make_enricher):
    provider = _Provider(fail=True)
    enricher = make_enricher(provider)
    article = _article(rating=5.0)

    enriched = await enricher.enrich(article)

    assert enriched.translated_title == article.title
    assert enriched.translated_description == article.description
    assert enriched.summary_bullets == [article.description]
    assert enriched.detailed_summary is None
    assert len(enricher.queue.dead_letters) == 4


@pytest.mark.asyncio
async def test_detail_only_for_high_rated_articles(make_enricher):
    provider = _Provider()
    enricher = make_enricher(provider)

    assert await enricher.detail(_article(rating=3.0)) is None
    assert await enricher.detail(_article(rating=4.5)) == "상세 요약 본문"
    assert provider.calls == ["detail"]


@pytest.mark.asyncio
async def test_summary_is_parsed_into_bullets(make_enricher):
    enricher = make_enricher(_Provider())

    assert await enricher.summarize(_article()) == ["첫 번째 요점", "두 번째 요점"]


@pytest.mark.asyncio
async def test_enrich_many_only_touches_top_n(make_enricher):
    enricher = make_enricher(_Provider())
    articles = [
        _article(canonical_url="https://ex.com/1", title="First headline here"),
        _article(canonical_url="https://ex.com/2", title="Second headline here"),
    ]

    result = await enricher.enrich_many(articles, top_n=1)

    assert result[0].is_enriched
    assert result[0].translated_title == "한국어 번역 결과"
    assert result[1] is articles[1]
    assert not result[1].is_enriched
