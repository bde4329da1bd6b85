"""Domain DTOs for the aggregation pipeline."""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SourceType = Literal["news", "rss", "social", "video"]


def article_id(canonical_url: str) -> str:
    """Content-addressed article id: stable across requests for the same URL."""
    return hashlib.sha256(canonical_url.strip().encode("utf-8")).hexdigest()[:16]


def domain_from_url(url: str) -> str:
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return "unknown"
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or "unknown"


class Article(BaseModel):
    """Normalized article shared by every stage of the pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str = Field("", description="canonical_url 기반 콘텐츠 주소 ID")
    title: str
    description: str = ""
    canonical_url: str
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    source_name: str
    source_domain: str = ""
    source_type: SourceType = "news"
    language: str = Field("und", description="ISO 639-1 추정값")
    engagement_count: int = Field(0, ge=0)
    audience_size: int = Field(0, ge=0)
    trust_hint: Optional[float] = Field(None, ge=0.0, description="소스별 신뢰도 오버라이드")

    # ranking
    age_minutes: Optional[float] = None
    freshness_score: Optional[float] = None
    velocity: Optional[float] = None
    engagement_ratio: Optional[float] = None
    trust_score: Optional[float] = None
    diversity_penalty: Optional[float] = None
    locale_match: Optional[int] = None
    composite_score: Optional[float] = None
    hot_score: Optional[float] = None
    rating: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    cluster_size: int = Field(1, ge=1)

    # enrichment
    translated_title: Optional[str] = None
    translated_description: Optional[str] = None
    summary_bullets: Optional[List[str]] = None
    detailed_summary: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_required(cls, v: str) -> str:
        s = " ".join(v.split())
        if not s:
            raise ValueError("title은 공백일 수 없습니다.")
        return s

    @field_validator("canonical_url")
    @classmethod
    def _url_required(cls, v: str) -> str:
        s = v.strip()
        if not s.startswith(("http://", "https://")):
            raise ValueError("canonical_url은 http(s) URL이어야 합니다.")
        return s

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def _derive_identity(self) -> "Article":
        # frozen model: populate derived identity through object.__setattr__
        if not self.id:
            object.__setattr__(self, "id", article_id(self.canonical_url))
        if not self.source_domain:
            object.__setattr__(self, "source_domain", domain_from_url(self.canonical_url))
        return self

    @property
    def is_enriched(self) -> bool:
        return self.summary_bullets is not None


class SectionPayload(BaseModel):
    """Assembled section result as cached and served."""

    section: str
    articles: List[Article] = Field(default_factory=list)
    total: int = 0
    partial: bool = False
    timestamp: datetime
    strategy: str = "composite"
    sources_ok: int = 0
    sources_failed: int = 0

    def page(self, page: int, limit: int) -> "SectionPayload":
        start = max(0, (page - 1) * limit)
        return self.model_copy(update={"articles": self.articles[start : start + limit]})
