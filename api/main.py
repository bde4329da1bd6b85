from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# 프로젝트 루트의 .env 파일 명시적 로딩
project_root = Path(__file__).parent.parent
env_path = project_root / ".env"

if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ingestion.sections import UnknownSectionError
from ingestion.settings import get_settings
from ingestion.utils.logging import configure_logging, get_logger

from .section_service import ArticleNotFoundError, InvalidSearchQueryError
from .routes import router, shutdown_section_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    configure_logging(settings.structlog_level, json_enabled=settings.log_json)
    yield
    await shutdown_section_service()


app = FastAPI(title="Emark News API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(router)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "data": None, "error": message})


@app.exception_handler(UnknownSectionError)
async def unknown_section_handler(_request: Request, exc: UnknownSectionError) -> JSONResponse:
    return _envelope(400, f"Unknown section: {exc.section}")


@app.exception_handler(InvalidSearchQueryError)
async def invalid_search_handler(_request: Request, exc: InvalidSearchQueryError) -> JSONResponse:
    return _envelope(400, str(exc))


@app.exception_handler(ArticleNotFoundError)
async def article_not_found_handler(_request: Request, exc: ArticleNotFoundError) -> JSONResponse:
    return _envelope(404, f"Article not found: {exc.article_id}")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api.unhandled_error", extra={"path": request.url.path})
    return _envelope(500, "Internal server error")


@app.get("/healthz", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
