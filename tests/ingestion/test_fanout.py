from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from ingestion.connectors.base import BaseConnector, PermanentSourceError, SourceUnavailable
from ingestion.services.cache import InMemoryBackend, TieredCache
from ingestion.services.fanout import FanOutFetcher
from ingestion.settings import Settings


class _StubConnector(BaseConnector):
    source = "stub"

    def __init__(
        self,
        name: str,
        items: Optional[List[Dict[str, Any]]] = None,
        *,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        soft_failure: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.items = items or []
        self.delay = delay
        self.error = error
        self._soft = soft_failure
        self.calls = 0

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, "name": self.name}

    async def _fetch_raw(self) -> List[Dict[str, Any]]:
        self.calls += 1
        self.soft_failure = self._soft
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.items


def _item(n: int) -> Dict[str, Any]:
    return {"title": f"Story number {n}", "url": f"https://ex.com/{n}", "language": "en"}


def _fetcher(**overrides: Any) -> FanOutFetcher:
    return FanOutFetcher(TieredCache(InMemoryBackend()), Settings(redis_url="", **overrides))


@pytest.mark.asyncio
async def test_partial_failure_keeps_successful_sources_in_adapter_order():
    connectors = [
        _StubConnector("slow-ok", [_item(1)], delay=0.05),
        _StubConnector("broken", error=PermanentSourceError("401")),
        _StubConnector("fast-ok", [_item(2), _item(3)]),
    ]

    result = await _fetcher().fetch(connectors, deadline_seconds=1.0)

    assert [a.canonical_url for a in result.articles] == ["https://ex.com/1", "https://ex.com/2", "https://ex.com/3"]
    assert result.sources_ok == 2
    assert result.sources_failed == 1
    assert [r.status for r in result.results] == ["ok", "failed", "ok"]


@pytest.mark.asyncio
async def test_slow_source_times_out_without_blocking_others():
    connectors = [_StubConnector("hung", [_item(1)], delay=5.0), _StubConnector("ok", [_item(2)])]

    result = await _fetcher().fetch(connectors, deadline_seconds=0.05)

    assert [r.status for r in result.results] == ["timeout", "ok"]
    assert [a.canonical_url for a in result.articles] == ["https://ex.com/2"]


@pytest.mark.asyncio
async def test_all_sources_failing_yields_empty_result():
    connectors = [
        _StubConnector("a", error=SourceUnavailable("503")),
        _StubConnector("b", error=RuntimeError("boom")),
    ]

    result = await _fetcher(source_retry_once=False).fetch(connectors, deadline_seconds=1.0)

    assert result.articles == []
    assert result.sources_failed == 2


@pytest.mark.asyncio
async def test_transient_failure_is_retried_once():
    connector = _StubConnector("flaky", error=SourceUnavailable("503"))

    await _fetcher(source_retry_once=True).fetch([connector], deadline_seconds=1.0)

    assert connector.calls == 2


@pytest.mark.asyncio
async def test_successful_results_are_cached_per_source():
    fetcher = _fetcher()
    connector = _StubConnector("ok", [_item(1)])

    first = await fetcher.fetch([connector], deadline_seconds=1.0)
    second = await fetcher.fetch([connector], deadline_seconds=1.0)
    bypassed = await fetcher.fetch([connector], deadline_seconds=1.0, bypass_cache=True)

    assert first.results[0].status == "ok"
    assert second.results[0].status == "cached"
    assert second.articles == first.articles
    assert bypassed.results[0].status == "ok"
    assert connector.calls == 2


@pytest.mark.asyncio
async def test_degraded_source_is_not_cached():
    fetcher = _fetcher()
    connector = _StubConnector("feed", [], soft_failure="parse_error")

    first = await fetcher.fetch([connector], deadline_seconds=1.0)
    second = await fetcher.fetch([connector], deadline_seconds=1.0)

    assert first.results[0].status == "degraded"
    assert second.results[0].status == "degraded"
    assert connector.calls == 2
    assert first.sources_failed == 1


@pytest.mark.asyncio
async def test_merge_concatenates_phases():
    fetcher = _fetcher()
    phase1 = await fetcher.fetch([_StubConnector("p1", [_item(1)])], deadline_seconds=1.0)
    phase2 = await fetcher.fetch([_StubConnector("p2", [_item(2)])], deadline_seconds=1.0)

    merged = phase1.merge(phase2)

    assert [a.canonical_url for a in merged.articles] == ["https://ex.com/1", "https://ex.com/2"]
    assert merged.sources_ok == 2


@pytest.mark.asyncio
async def test_one_malformed_record_keeps_the_rest_of_the_source():
    connectors = [_StubConnector("mixed", [_item(1), "not-a-record", {"title": None, "url": 7}, _item(2)])]

    result = await _fetcher().fetch(connectors, deadline_seconds=1.0)

    assert [r.status for r in result.results] == ["ok"]
    assert [a.canonical_url for a in result.articles] == ["https://ex.com/1", "https://ex.com/2"]
