"""RSS/Atom connector backed by feedparser."""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
import httpx

from ingestion.sections import FeedSpec
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

from .base import BaseConnector, FetcherFn, SourceUnavailable

logger = get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


def _entry_published(entry: Any) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), timezone.utc)
    return None


def _entry_image(entry: Any) -> Optional[str]:
    for media in entry.get("media_content") or entry.get("media_thumbnail") or []:
        if media.get("url"):
            return media["url"]
    for link in entry.get("links") or []:
        if link.get("rel") == "enclosure" and str(link.get("type", "")).startswith("image"):
            return link.get("href")
    return None


class RSSConnector(BaseConnector):
    """Connector that normalizes RSS/Atom entries.

    파싱 실패는 예외 대신 빈 목록과 ``soft_failure`` 표시로 돌려준다.
    A fetcher may be injected for tests/offline; it returns the feed document.
    """

    source = "rss"
    source_type = "rss"

    def __init__(
        self,
        feed: FeedSpec,
        *,
        settings: Optional[Settings] = None,
        fetcher: Optional[FetcherFn] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(client=client, timeout_seconds=self._settings.api_timeout_seconds)
        self.feed = feed
        self.max_items = feed.max_items
        self._fetcher = fetcher

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, "url": self.feed.url, "max_items": self.feed.max_items}

    async def _download(self) -> bytes:
        if self._fetcher is not None:
            document = await self._fetcher(self.feed.url)
            return document.encode("utf-8") if isinstance(document, str) else document
        headers = {"User-Agent": self._settings.rss_user_agent}
        try:
            if self._client is not None:
                resp = await self._client.get(self.feed.url, headers=headers, timeout=self._timeout, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                    resp = await client.get(self.feed.url, headers=headers)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"RSS 호출 오류({self.feed.name}): {exc}") from exc
        if resp.status_code >= 400:
            raise SourceUnavailable(f"RSS 오류({self.feed.name}): {resp.status_code}")
        return resp.content

    async def _fetch_raw(self) -> List[Any]:
        self.soft_failure = None
        document = await self._download()
        # feedparser never raises on bad markup; it flags bozo instead
        parsed = feedparser.parse(document)
        if parsed.bozo and not parsed.entries:
            self.soft_failure = f"parse_error: {parsed.get('bozo_exception')}"
            logger.warning("rss.parse_failed", extra={"feed": self.feed.name, "url": self.feed.url})
            return []

        entries = sorted(
            parsed.entries,
            key=lambda e: _entry_published(e) or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return entries[: self.feed.max_items * 2]

    def _map(self, entry: Any) -> Dict[str, Any]:
        summary = entry.get("summary") or entry.get("description") or ""
        return {
            "title": _TAG_RE.sub("", entry.get("title") or "").strip(),
            "description": _TAG_RE.sub("", summary).strip()[:1000],
            "url": entry.get("link"),
            "image_url": _entry_image(entry),
            "published_at": _entry_published(entry),
            "source_name": self.feed.name,
            "language": entry.get("language"),
            "trust": self.feed.trust,
        }
