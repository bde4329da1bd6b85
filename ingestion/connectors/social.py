"""Social/trend connectors: X recent search and Reddit listings.

Engagement is the sum of whatever reaction counters the platform reports;
audience is the author's follower count or the subreddit subscriber count.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ingestion.sections import RedditEndpoint, XQuery
from ingestion.settings import Settings, get_settings

from .base import BaseConnector, PermanentSourceError, ProviderFn

_X_REACTIONS = ("like_count", "retweet_count", "reply_count", "quote_count")


def _sum_counters(metrics: Dict[str, Any], keys) -> int:
    total = 0
    for key in keys:
        try:
            total += int(metrics.get(key) or 0)
        except (TypeError, ValueError):
            continue
    return total


class XRecentConnector(BaseConnector):
    source = "x"
    source_type = "social"

    def __init__(
        self,
        query: XQuery,
        *,
        settings: Optional[Settings] = None,
        provider: Optional[ProviderFn] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(provider=provider, client=client, timeout_seconds=self._settings.api_timeout_seconds)
        self.query = query
        self._users: Dict[str, Any] = {}

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, "query": self.query.query, "max_results": self.query.max_results}

    async def _fetch_raw(self) -> List[Any]:
        cfg = self._settings
        if self._provider is None and not cfg.x_bearer_token:
            raise PermanentSourceError("X_BEARER_TOKEN이 설정되지 않았습니다.")
        headers = {"Authorization": f"Bearer {cfg.x_bearer_token.get_secret_value()}"} if cfg.x_bearer_token else {}
        params = {
            "query": self.query.query,
            # recent search accepts 10..100
            "max_results": max(10, min(self.query.max_results, 100)),
            "tweet.fields": "created_at,public_metrics,lang",
            "expansions": "author_id",
            "user.fields": "username,public_metrics",
        }
        data = await self._request_json(f"{cfg.x_base_url.rstrip('/')}/tweets/search/recent", params=params, headers=headers)
        data = data or {}
        # author expansions are resolved per tweet in _map
        self._users = {
            u["id"]: u for u in (data.get("includes") or {}).get("users") or [] if isinstance(u, dict) and u.get("id")
        }
        return list(data.get("data") or [])

    def _map(self, tweet: Dict[str, Any]) -> Dict[str, Any]:
        author = self._users.get(tweet.get("author_id")) or {}
        text = " ".join((tweet.get("text") or "").split())
        tweet_id = tweet.get("id")
        return {
            "title": text[:220],
            "description": text,
            "url": f"https://x.com/i/web/status/{tweet_id}" if tweet_id else None,
            "published_at": tweet.get("created_at"),
            "source_name": f"@{author['username']}" if author.get("username") else "X",
            "domain": "x.com",
            "language": tweet.get("lang"),
            "engagement": _sum_counters(tweet.get("public_metrics") or {}, _X_REACTIONS),
            "audience": (author.get("public_metrics") or {}).get("followers_count", 0),
        }


class RedditConnector(BaseConnector):
    source = "reddit"
    source_type = "social"

    def __init__(
        self,
        endpoint: RedditEndpoint,
        *,
        settings: Optional[Settings] = None,
        provider: Optional[ProviderFn] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        super().__init__(provider=provider, client=client, timeout_seconds=self._settings.api_timeout_seconds)
        self.endpoint = endpoint

    def describe(self) -> Dict[str, Any]:
        return {"source": self.source, "path": self.endpoint.path, "limit": self.endpoint.limit}

    async def _fetch_raw(self) -> List[Any]:
        cfg = self._settings
        if self._provider is None and not cfg.reddit_token:
            raise PermanentSourceError("REDDIT_TOKEN이 설정되지 않았습니다.")
        headers = {"User-Agent": cfg.reddit_user_agent}
        if cfg.reddit_token:
            headers["Authorization"] = f"Bearer {cfg.reddit_token.get_secret_value()}"
        url = f"{cfg.reddit_base_url.rstrip('/')}{self.endpoint.path}"
        data = await self._request_json(url, params={"limit": min(self.endpoint.limit, 100)}, headers=headers)
        children = ((data or {}).get("data") or {}).get("children") or []
        return list(children)

    def _map(self, child: Dict[str, Any]) -> Dict[str, Any]:
        post = child.get("data") or {}
        permalink = post.get("permalink")
        subreddit = post.get("subreddit_name_prefixed") or "Reddit"
        return {
            "title": post.get("title"),
            "description": post.get("selftext") or "",
            "url": f"https://reddit.com{permalink}" if permalink else None,
            "image_url": post.get("thumbnail") if str(post.get("thumbnail", "")).startswith("http") else None,
            "published_at": post.get("created_utc"),
            "source_name": subreddit,
            "domain": "reddit.com",
            "language": "en",
            "engagement": _sum_counters(post, ("ups", "num_comments")),
            "audience": post.get("subreddit_subscribers", 0),
        }
