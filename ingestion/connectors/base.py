"""Connector abstraction, errors, and helpers."""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

import httpx
from pydantic import ValidationError

from ingestion.models.domain import Article, domain_from_url
from ingestion.utils.language import detect_language, normalize_language
from ingestion.utils.logging import get_logger
from ingestion.utils.retry import RetryPolicy, retry_async

logger = get_logger(__name__)


class ConnectorError(Exception):
    """Base connector error."""


class SourceUnavailable(ConnectorError):
    """Retryable error (e.g., rate limit, network hiccup, timeout)."""


class PermanentSourceError(ConnectorError):
    """Non-retryable error (e.g., 4xx semantics, missing credentials)."""


class MalformedItem(ConnectorError):
    """A single upstream item cannot be normalized; the batch continues."""


# Provider hook: receives the request description, returns the decoded upstream payload.
ProviderFn = Callable[[Dict[str, Any]], Awaitable[Any]]
# Fetcher hook for document sources (RSS): receives the URL, returns the raw body.
FetcherFn = Callable[[str], Awaitable[Any]]


def fingerprint(url: str, title: str) -> str:
    data = (url.strip() + "\n" + title.strip()).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort timestamp parsing; unparsable values become ``None``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None
    if parsed is None:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _as_int(value: Any) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


class BaseConnector(ABC):
    """Abstract async connector with retry and normalization hooks.

    Each instance is bound to one upstream call (one query, feed, endpoint).
    Subclasses implement ``_fetch_raw`` returning the raw upstream records and
    ``_map`` translating one record to the common keys understood by
    ``_normalize_item``. Mapping runs per item, so a record with an unexpected
    shape is dropped as ``MalformedItem`` and the rest of the batch survives.
    """

    source: str
    source_type: str = "news"
    # cap on items kept from one upstream call
    max_items: Optional[int] = None

    def __init__(
        self,
        *,
        provider: Optional[ProviderFn] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._provider = provider
        self._client = client
        self._timeout = timeout_seconds
        self.soft_failure: Optional[str] = None

    @property
    def cache_key(self) -> str:
        """Stable key for the per-source raw result cache."""
        params = json.dumps(self.describe(), sort_keys=True, ensure_ascii=False, default=str)
        digest = hashlib.sha256(params.encode("utf-8")).hexdigest()[:24]
        return f"{self.source}:{digest}"

    def describe(self) -> Dict[str, Any]:
        """Parameters identifying this upstream call."""
        return {"source": self.source}

    async def fetch(self, *, max_attempts: int = 1, retry_delay: float = 0.0) -> List[Article]:
        policy = RetryPolicy(
            max_retries=max(0, max_attempts - 1),
            base_delay=retry_delay,
            retry_on=(SourceUnavailable,),
        )
        raw = await retry_async(
            self._fetch_raw,
            policy,
            on_retry=lambda n, exc: logger.info(
                "connector.retry", extra={"source": self.source, "attempt": n + 1, "error": str(exc)}
            ),
        )
        return self._normalize_and_dedupe(raw)

    @abstractmethod
    async def _fetch_raw(self) -> List[Any]:
        """Return the raw upstream records."""

    def _map(self, record: Any) -> Dict[str, Any]:
        return record

    async def _request_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """GET ``url`` and decode JSON, classifying failures.

        When a provider is injected it receives the request description instead
        of the network being touched.
        """
        if self._provider is not None:
            return await self._provider({"url": url, "params": dict(params or {})})
        try:
            if self._client is not None:
                resp = await self._client.get(url, params=params, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise SourceUnavailable(f"{self.source} 타임아웃") from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"{self.source} 호출 오류: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise SourceUnavailable(f"{self.source} 일시 오류: {resp.status_code}")
        if resp.status_code >= 400:
            raise PermanentSourceError(f"{self.source} 오류: {resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise SourceUnavailable(f"{self.source} 응답 JSON 파싱 실패") from exc

    def _normalize_and_dedupe(self, items: Iterable[Any]) -> List[Article]:
        seen: set[str] = set()
        normalized: List[Article] = []
        dropped = 0
        for item in items:
            try:
                article = self._to_article(item)
            except MalformedItem as exc:
                dropped += 1
                logger.debug("connector.item_dropped", extra={"source": self.source, "reason": str(exc)})
                continue
            fp = fingerprint(article.canonical_url, article.title)
            if fp in seen:
                continue
            seen.add(fp)
            normalized.append(article)
            if self.max_items is not None and len(normalized) >= self.max_items:
                break
        if dropped:
            logger.info("connector.items_dropped", extra={"source": self.source, "dropped": dropped})
        return normalized

    def _to_article(self, record: Any) -> Article:
        try:
            return self._normalize_item(self._map(record))
        except (AttributeError, TypeError, KeyError, ValueError) as exc:
            raise MalformedItem(f"예상하지 못한 항목 형태: {exc}") from exc

    def _normalize_item(self, item: Dict[str, Any]) -> Article:
        title = str(item.get("title") or "").strip()
        url = str(item.get("url") or item.get("link") or "").strip()
        if not title or not url:
            raise MalformedItem("title/url 누락")
        description = str(item.get("description") or item.get("summary") or "").strip()
        language = normalize_language(item.get("language"))
        if language == "und":
            language = detect_language(f"{title} {description}")
        try:
            return Article(
                title=title,
                description=description,
                canonical_url=url,
                image_url=item.get("image_url") or None,
                published_at=parse_timestamp(item.get("published_at")),
                source_name=str(item.get("source_name") or self.source),
                source_domain=str(item.get("domain") or domain_from_url(url)),
                source_type=self.source_type,
                language=language,
                engagement_count=_as_int(item.get("engagement")),
                audience_size=_as_int(item.get("audience")),
                trust_hint=item.get("trust"),
            )
        except ValidationError as exc:
            raise MalformedItem(str(exc)) from exc
