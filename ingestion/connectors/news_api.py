"""News API connector (headline + search endpoints)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from ingestion.sections import NewsApiQuery
from ingestion.settings import Settings, get_settings

from .base import BaseConnector, PermanentSourceError, ProviderFn


def build_query(keyword_groups) -> Optional[str]:
    """``(("a", "b"), ("c",))`` → ``(a OR b) AND c``."""
    clauses: List[str] = []
    for group in keyword_groups:
        terms = [f'"{t}"' if " " in t else t for t in group if t.strip()]
        if not terms:
            continue
        clauses.append(terms[0] if len(terms) == 1 else "(" + " OR ".join(terms) + ")")
    return " AND ".join(clauses) or None


class NewsAPIConnector(BaseConnector):
    """Connector for NewsAPI-like sources.

    - provider 주입 시: 오프라인 모드(HTTP 미사용)
    - provider 미주입 시: 실제 HTTP 호출
    """

    source = "news_api"
    source_type = "news"

    def __init__(
        self,
        query: NewsApiQuery,
        *,
        settings: Optional[Settings] = None,
        provider: Optional[ProviderFn] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(provider=provider, client=client, timeout_seconds=self._settings.api_timeout_seconds)
        self.query = query
        self._clock = clock

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, **self.query.model_dump(exclude_none=True)}

    def _params(self, page: int) -> Dict[str, Any]:
        q = self.query
        params: Dict[str, Any] = {"pageSize": int(self._settings.news_api_page_size), "page": page}
        keywords = build_query(q.keyword_groups)
        if q.endpoint == "top-headlines":
            # top-headlines rejects domain/date filters
            if q.category:
                params["category"] = q.category
            if q.country:
                params["country"] = q.country
            if keywords:
                params["q"] = keywords
            return params

        params["sortBy"] = "publishedAt"
        if keywords:
            params["q"] = keywords
        if q.domains:
            params["domains"] = ",".join(q.domains)
        if q.exclude_domains:
            params["excludeDomains"] = ",".join(q.exclude_domains)
        if q.language:
            params["language"] = q.language
        if q.window_hours:
            since = self._clock() - timedelta(hours=q.window_hours)
            params["from"] = since.strftime("%Y-%m-%dT%H:%M:%SZ")
        return params

    async def _fetch_raw(self) -> List[Any]:
        cfg = self._settings
        if self._provider is None and not cfg.news_api_key:
            raise PermanentSourceError("NEWS_API_KEY가 설정되지 않았습니다.")
        headers = {"X-Api-Key": cfg.news_api_key.get_secret_value()} if cfg.news_api_key else {}
        url = f"{cfg.news_api_base_url.rstrip('/')}/{self.query.endpoint}"

        items: List[Any] = []
        for page in range(1, self.query.max_pages + 1):
            data = await self._request_json(url, params=self._params(page), headers=headers)
            if isinstance(data, dict) and data.get("status") == "error":
                raise PermanentSourceError(f"NewsAPI 오류: {data.get('code') or data.get('message')}")
            articles = (data or {}).get("articles") or []
            if not articles:
                break
            items.extend(articles)
        return items

    def _map(self, article: Dict[str, Any]) -> Dict[str, Any]:
        title = article.get("title") or ""
        if title.strip() == "[Removed]":
            title = ""
        source = article.get("source") or {}
        return {
            "title": title,
            "description": article.get("description") or "",
            "url": article.get("url"),
            "image_url": article.get("urlToImage"),
            "published_at": article.get("publishedAt"),
            "source_name": source.get("name") or "NewsAPI",
            "language": self.query.language or article.get("language"),
        }
