"""Celery task that warms a section's full payload."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from celery import shared_task

from ingestion.sections import resolve_section_name
from ingestion.utils.logging import get_logger

# Service factory is kept pluggable for tests; it must return an object with
# ``async refresh(section)`` and ``async aclose()``.
SERVICE_FACTORY: Optional[Callable[[], Awaitable[Any]]] = None


async def _default_factory():
    from api.section_service import SectionService

    return await SectionService.create()


async def _refresh_async(section: str) -> Dict[str, Any]:
    factory = SERVICE_FACTORY or _default_factory
    service = await factory()
    try:
        payload = await service.refresh(section)
    finally:
        await service.aclose()
    return {
        "section": payload.section,
        "articles": payload.total,
        "sources_ok": payload.sources_ok,
        "sources_failed": payload.sources_failed,
    }


def refresh_core(section: str) -> Dict[str, Any]:
    """Core logic to rebuild and cache one section; test-friendly."""
    name = resolve_section_name(section)
    trace_id = str(uuid.uuid4())
    logger = get_logger(__name__)
    logger.info("refresh.start", extra={"trace_id": trace_id, "section": name})
    summary = asyncio.run(_refresh_async(name))
    logger.info("refresh.done", extra={"trace_id": trace_id, **summary})
    return summary


@shared_task(name="ingestion.tasks.refresh.refresh_section")
def refresh_section(section: str) -> Dict[str, Any]:  # pragma: no cover - wrapper
    return refresh_core(section)
