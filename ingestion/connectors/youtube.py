"""YouTube "most popular" connector."""

from __future__ import annotations

from typing import AbstractSet, Any, Dict, List, Optional

import httpx

from ingestion.sections import YOUTUBE_CHANNEL_WHITELIST, YouTubeRegion
from ingestion.settings import Settings, get_settings

from .base import BaseConnector, PermanentSourceError, ProviderFn

_VIDEO_COUNTERS = ("viewCount", "likeCount", "commentCount")


def _channel_id(video: Any) -> Optional[str]:
    snippet = video.get("snippet") if isinstance(video, dict) else None
    return snippet.get("channelId") if isinstance(snippet, dict) else None


class YouTubeTrendingConnector(BaseConnector):
    """mostPopular 차트를 기사 형태로 변환한다. 화이트리스트 채널만 통과."""

    source = "youtube"
    source_type = "video"

    def __init__(
        self,
        region: YouTubeRegion,
        *,
        settings: Optional[Settings] = None,
        provider: Optional[ProviderFn] = None,
        client: Optional[httpx.AsyncClient] = None,
        channel_whitelist: Optional[AbstractSet[str]] = YOUTUBE_CHANNEL_WHITELIST,
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(provider=provider, client=client, timeout_seconds=self._settings.api_timeout_seconds)
        self.region = region
        self._whitelist = channel_whitelist

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, "region": self.region.region_code, "max_results": self.region.max_results}

    async def _fetch_raw(self) -> List[Any]:
        cfg = self._settings
        if self._provider is None and not cfg.youtube_api_key:
            raise PermanentSourceError("YOUTUBE_API_KEY가 설정되지 않았습니다.")
        params = {
            "part": "snippet,statistics",
            "chart": "mostPopular",
            "regionCode": self.region.region_code,
            "maxResults": min(self.region.max_results, 50),
        }
        if cfg.youtube_api_key:
            params["key"] = cfg.youtube_api_key.get_secret_value()
        data = await self._request_json(f"{cfg.youtube_base_url.rstrip('/')}/videos", params=params)
        items = (data or {}).get("items") or []
        if self._whitelist:
            items = [v for v in items if _channel_id(v) in self._whitelist]
        return list(items)

    def _map(self, video: Dict[str, Any]) -> Dict[str, Any]:
        snippet = video.get("snippet") or {}
        stats = video.get("statistics") or {}
        engagement = 0
        for key in _VIDEO_COUNTERS:
            try:
                engagement += int(stats.get(key) or 0)
            except (TypeError, ValueError):
                continue
        thumbnails = snippet.get("thumbnails") or {}
        image = (thumbnails.get("high") or thumbnails.get("default") or {}).get("url")
        return {
            "title": snippet.get("title"),
            "description": snippet.get("description") or "",
            "url": f"https://youtube.com/watch?v={video['id']}" if video.get("id") else None,
            "image_url": image,
            "published_at": snippet.get("publishedAt"),
            "source_name": snippet.get("channelTitle") or "YouTube",
            "domain": "youtube.com",
            "language": snippet.get("defaultAudioLanguage") or snippet.get("defaultLanguage"),
            "engagement": engagement,
        }
