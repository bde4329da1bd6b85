from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from ingestion.models.domain import Article

from .models import ApiResponse, ReplayResult, SearchResults, SectionPage, ServiceStatus, TrendingReport
from .section_service import SectionService

router = APIRouter(prefix="/api")

_SERVICE: Optional[SectionService] = None


async def get_section_service() -> SectionService:
    """Lazily assembled process-wide service (tests override this dependency)."""
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = await SectionService.create()
    return _SERVICE


async def shutdown_section_service() -> None:
    global _SERVICE
    if _SERVICE is not None:
        await _SERVICE.aclose()
        _SERVICE = None


ServiceDep = Annotated[SectionService, Depends(get_section_service)]
PageParam = Annotated[int, Query(ge=1)]
LimitParam = Annotated[Optional[int], Query(ge=1, le=100)]
RefreshParam = Annotated[bool, Query(description="캐시를 무시하고 다시 수집")]


@router.get("/health", response_model=ApiResponse[ServiceStatus])
async def health_route(service: ServiceDep) -> ApiResponse[ServiceStatus]:
    return ApiResponse[ServiceStatus](data=ServiceStatus(**service.status()))


@router.post("/enrichment/replay", response_model=ApiResponse[ReplayResult])
async def replay_dead_letters_route(service: ServiceDep) -> ApiResponse[ReplayResult]:
    replayed = service.enricher.queue.replay_dead_letters() if service.enricher is not None else 0
    return ApiResponse[ReplayResult](data=ReplayResult(replayed=replayed))


@router.get("/search", response_model=ApiResponse[SearchResults])
async def search_route(
    service: ServiceDep,
    q: Annotated[str, Query(description="검색어 (제목/번역 제목/본문/태그)")] = "",
    section: Annotated[Optional[str], Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ApiResponse[SearchResults]:
    return ApiResponse[SearchResults](data=await service.search(q, section, limit))


@router.get("/trending", response_model=ApiResponse[TrendingReport])
async def trending_route(service: ServiceDep) -> ApiResponse[TrendingReport]:
    return ApiResponse[TrendingReport](data=await service.trending())


@router.get("/article/{section}/{article_id}", response_model=ApiResponse[Article])
async def article_route(section: str, article_id: str, service: ServiceDep) -> ApiResponse[Article]:
    return ApiResponse[Article](data=await service.get_article(section, article_id))


@router.get("/{section}/fast", response_model=ApiResponse[SectionPage])
async def section_fast_route(
    section: str,
    service: ServiceDep,
    page: PageParam = 1,
    limit: LimitParam = None,
    refresh: RefreshParam = False,
) -> ApiResponse[SectionPage]:
    limit = limit or service.settings.fast_first_batch
    payload = await service.get_section_fast(section, page, limit, refresh=refresh)
    return ApiResponse[SectionPage](data=SectionPage.from_payload(payload, page=page, limit=limit))


@router.get("/{section}", response_model=ApiResponse[SectionPage])
async def section_full_route(
    section: str,
    service: ServiceDep,
    page: PageParam = 1,
    limit: LimitParam = None,
    refresh: RefreshParam = False,
) -> ApiResponse[SectionPage]:
    limit = limit or service.settings.full_max
    payload = await service.get_section_full(section, page, limit, refresh=refresh)
    return ApiResponse[SectionPage](data=SectionPage.from_payload(payload, page=page, limit=limit))
