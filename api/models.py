from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from ingestion.models.domain import Article, SectionPayload

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope shared by every endpoint."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


class SectionPage(BaseModel):
    section: str
    articles: List[Article] = Field(default_factory=list)
    total: int
    partial: bool
    timestamp: datetime
    page: int
    limit: int
    strategy: str = "composite"
    sources_ok: int = 0
    sources_failed: int = 0

    @classmethod
    def from_payload(cls, payload: SectionPayload, *, page: int, limit: int) -> "SectionPage":
        return cls(**payload.model_dump(), page=page, limit=limit)


class ServiceStatus(BaseModel):
    status: str = "ok"
    cache: str
    continuations: List[str] = Field(default_factory=list)
    enrichment: Optional[Dict[str, Any]] = None


class ReplayResult(BaseModel):
    replayed: int


class SearchResults(BaseModel):
    query: str
    results: List[Article] = Field(default_factory=list)
    total: int = 0
    sections: List[str] = Field(default_factory=list, description="검색에 사용된 캐시 섹션")
    timestamp: datetime


class TrendingTopic(BaseModel):
    topic: str
    count: int


class TrendingReport(BaseModel):
    trending: List[TrendingTopic] = Field(default_factory=list)
    total_articles: int = 0
    sections: List[str] = Field(default_factory=list)
    timestamp: datetime
