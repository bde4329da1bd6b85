"""Naver news search connector (local-language search API)."""

from __future__ import annotations

import html
import re
from typing import Any, Dict, List, Optional

import httpx

from ingestion.models.domain import domain_from_url
from ingestion.sections import NaverQuery
from ingestion.settings import Settings, get_settings

from .base import BaseConnector, PermanentSourceError, ProviderFn

_TAG_RE = re.compile(r"<[^>]+>")


def strip_markup(text: Optional[str]) -> str:
    return html.unescape(_TAG_RE.sub("", text or "")).strip()


class NaverNewsConnector(BaseConnector):
    source = "naver"
    source_type = "news"

    def __init__(
        self,
        query: NaverQuery,
        *,
        settings: Optional[Settings] = None,
        provider: Optional[ProviderFn] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(provider=provider, client=client, timeout_seconds=self._settings.api_timeout_seconds)
        self.query = query

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, "query": self.query.query, "display": self.query.display}

    async def _fetch_raw(self) -> List[Any]:
        cfg = self._settings
        if self._provider is None and not (cfg.naver_client_id and cfg.naver_client_secret):
            raise PermanentSourceError("NAVER_CLIENT_ID/SECRET이 설정되지 않았습니다.")
        headers = {}
        if cfg.naver_client_id and cfg.naver_client_secret:
            headers = {
                "X-Naver-Client-Id": cfg.naver_client_id,
                "X-Naver-Client-Secret": cfg.naver_client_secret.get_secret_value(),
            }
        params = {"query": self.query.query, "display": min(self.query.display, 100), "sort": "date"}
        data = await self._request_json(cfg.naver_endpoint, params=params, headers=headers)
        return list((data or {}).get("items") or [])

    def _map(self, item: Dict[str, Any]) -> Dict[str, Any]:
        original = item.get("originallink") or item.get("link") or ""
        domain = domain_from_url(original) if original else "news.naver.com"
        return {
            "title": strip_markup(item.get("title")),
            "description": strip_markup(item.get("description")),
            "url": original or item.get("link"),
            "published_at": item.get("pubDate"),
            "source_name": domain,
            "domain": domain,
            "language": "ko",
        }
