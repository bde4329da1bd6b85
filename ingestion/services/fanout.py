"""Concurrent fan-out over a section's connectors with per-call deadlines."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ingestion.connectors.base import BaseConnector, ConnectorError
from ingestion.models.domain import Article
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

from .cache import TieredCache

logger = get_logger(__name__)


@dataclass
class SourceResult:
    source: str
    cache_key: str
    status: str  # ok | cached | degraded | failed | timeout
    articles: List[Article] = field(default_factory=list)
    error: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status in ("ok", "cached")


@dataclass
class FanOutResult:
    results: List[SourceResult] = field(default_factory=list)

    @property
    def articles(self) -> List[Article]:
        # adapter order, independent of completion order
        return [article for result in self.results for article in result.articles]

    @property
    def sources_ok(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def sources_failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)

    def merge(self, other: "FanOutResult") -> "FanOutResult":
        return FanOutResult(results=[*self.results, *other.results])


class FanOutFetcher:
    """Runs every connector concurrently; a failed or slow source contributes nothing.

    Raw per-source results are cached in the ``source`` namespace. A degraded
    result (e.g. unparsable feed) is returned but never cached.
    """

    def __init__(self, cache: TieredCache, settings: Optional[Settings] = None) -> None:
        self.cache = cache
        self.settings = settings or get_settings()

    async def fetch(
        self,
        connectors: Sequence[BaseConnector],
        deadline_seconds: float,
        *,
        bypass_cache: bool = False,
    ) -> FanOutResult:
        if not connectors:
            return FanOutResult()
        results = await asyncio.gather(
            *(self._fetch_one(c, deadline_seconds, bypass_cache) for c in connectors)
        )
        return FanOutResult(results=list(results))

    async def _fetch_one(self, connector: BaseConnector, deadline: float, bypass_cache: bool) -> SourceResult:
        key = connector.cache_key
        started = time.monotonic()

        if not bypass_cache:
            cached = await self.cache.get("source", key)
            if cached is not None:
                try:
                    articles = [Article.model_validate(item) for item in cached]
                except (TypeError, ValueError):
                    articles = None
                if articles is not None:
                    return SourceResult(connector.source, key, "cached", articles)

        attempts = 2 if self.settings.source_retry_once else 1
        try:
            articles = await asyncio.wait_for(connector.fetch(max_attempts=attempts), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(
                "fanout.source_timeout",
                extra={"source": connector.source, "key": key, "deadline_s": deadline},
            )
            return SourceResult(connector.source, key, "timeout", error="timeout", elapsed_ms=_ms_since(started))
        except ConnectorError as exc:
            logger.warning(
                "fanout.source_failed",
                extra={"source": connector.source, "key": key, "error": str(exc), "kind": type(exc).__name__},
            )
            return SourceResult(connector.source, key, "failed", error=str(exc), elapsed_ms=_ms_since(started))
        except Exception as exc:
            logger.exception("fanout.source_crashed", extra={"source": connector.source, "key": key})
            return SourceResult(connector.source, key, "failed", error=repr(exc), elapsed_ms=_ms_since(started))

        elapsed = _ms_since(started)
        if connector.soft_failure:
            logger.warning(
                "fanout.source_degraded",
                extra={"source": connector.source, "key": key, "reason": connector.soft_failure},
            )
            return SourceResult(connector.source, key, "degraded", articles, connector.soft_failure, elapsed)

        await self.cache.set(
            "source",
            key,
            [a.model_dump(mode="json") for a in articles],
            self.settings.source_ttl_seconds,
        )
        logger.debug("fanout.source_ok", extra={"source": connector.source, "count": len(articles), "elapsed_ms": elapsed})
        return SourceResult(connector.source, key, "ok", articles, elapsed_ms=elapsed)


def _ms_since(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
