"""Configuration models for the aggregation service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Dict, List, Optional, Set

from pydantic import (
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from ingestion.sections import RankingStrategy, SectionConfig, resolve_section_name
from ranking.profiles import DEFAULT_PROFILES, SectionWeightProfile


class RefreshSchedule(BaseModel):
    """Represents a periodic section warm-up job configuration."""

    section: str = Field(..., description="대상 섹션 이름.")
    interval_minutes: PositiveInt = Field(..., description="갱신 주기 (분 단위).")
    enabled: bool = Field(True, description="스케줄 사용 여부.")

    @field_validator("section")
    @classmethod
    def _known_section(cls, value: str) -> str:
        return resolve_section_name(value)


def _parse_json_setting(value: Any, name: str, expected: type) -> Any:
    if value in (None, ""):
        return expected()
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{name}는 JSON이어야 합니다.") from exc
        value = parsed
    if not isinstance(value, expected):
        raise ValueError(f"{name}는 {expected.__name__} 형태여야 합니다.")
    return value


class Settings(BaseSettings):
    """Aggregation 서비스 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: Optional[str] = Field(
        "redis://localhost:6379/0",
        alias="REDIS_URL",
        description="캐시/Celery 브로커 Redis DSN. 비우면 인메모리 캐시만 사용.",
    )
    cache_prefix: str = Field("emark", alias="CACHE_PREFIX", description="캐시 키 접두사")
    memory_cache_max_entries: PositiveInt = Field(
        2048, alias="MEMORY_CACHE_MAX_ENTRIES", description="인메모리 캐시 LRU 상한"
    )

    # upstream credentials
    news_api_key: Optional[SecretStr] = Field(None, alias="NEWS_API_KEY", description="뉴스 API 인증 키.")
    news_api_base_url: str = Field("https://newsapi.org/v2", alias="NEWS_API_BASE_URL")
    news_api_page_size: PositiveInt = Field(20, alias="NEWS_API_PAGE_SIZE", description="News API 페이지 크기(≤100)")
    naver_client_id: Optional[str] = Field(None, alias="NAVER_CLIENT_ID")
    naver_client_secret: Optional[SecretStr] = Field(None, alias="NAVER_CLIENT_SECRET")
    naver_endpoint: str = Field("https://openapi.naver.com/v1/search/news.json", alias="NAVER_ENDPOINT")
    x_bearer_token: Optional[SecretStr] = Field(None, alias="X_BEARER_TOKEN")
    x_base_url: str = Field("https://api.twitter.com/2", alias="X_BASE_URL")
    reddit_token: Optional[SecretStr] = Field(None, alias="REDDIT_TOKEN")
    reddit_user_agent: str = Field("emark-buzz/1.0", alias="REDDIT_USER_AGENT")
    reddit_base_url: str = Field("https://oauth.reddit.com", alias="REDDIT_BASE_URL")
    youtube_api_key: Optional[SecretStr] = Field(None, alias="YOUTUBE_API_KEY")
    youtube_base_url: str = Field("https://www.googleapis.com/youtube/v3", alias="YOUTUBE_BASE_URL")
    rss_user_agent: str = Field("EmarkNews/1.0 (News Aggregator)", alias="RSS_USER_AGENT")

    # fan-out
    api_timeout_seconds: PositiveFloat = Field(5.0, alias="API_TIMEOUT_SECONDS", description="업스트림 HTTP 타임아웃(초)")
    full_deadline_ms: PositiveInt = Field(5000, alias="FULL_DEADLINE_MS")
    fast_phase1_deadline_ms: PositiveInt = Field(600, alias="FAST_PHASE1_DEADLINE_MS")
    fast_phase2_deadline_ms: PositiveInt = Field(1500, alias="FAST_PHASE2_DEADLINE_MS")
    fast_subset_size: PositiveInt = Field(2, alias="FAST_SUBSET_SIZE", description="빠른 길 1단계의 소스 타입별 호출 수")
    fast_first_batch: PositiveInt = Field(24, alias="FAST_FIRST_BATCH_SIZE")
    full_max: PositiveInt = Field(100, alias="FAST_FULL_MAX", description="섹션 결과 최대 개수 / 기본 페이지 크기")
    source_retry_once: bool = Field(True, alias="SOURCE_RETRY_ONCE")

    # cache TTLs (seconds, scaled per section)
    fast_ttl_seconds: PositiveInt = Field(60, alias="FAST_REDIS_TTL_SEC")
    full_ttl_seconds: PositiveInt = Field(600, alias="FULL_REDIS_TTL_SEC")
    source_ttl_seconds: PositiveInt = Field(600, alias="SOURCE_REDIS_TTL_SEC")
    enrichment_ttl_seconds: PositiveInt = Field(86_400, alias="ENRICHMENT_REDIS_TTL_SEC")

    # ranking
    rank_tau_minutes: PositiveFloat = Field(90.0, alias="RANK_TAU_MIN")
    engagement_smoothing: PositiveFloat = Field(1000.0, alias="ENGAGEMENT_SMOOTHING")
    diversity_penalty_base: float = Field(0.1, ge=0.0, alias="DIVERSITY_PENALTY_BASE")
    cluster_threshold: float = Field(0.8, gt=0.0, le=1.0, alias="CLUSTER_THRESHOLD")
    hot_gravity: PositiveFloat = Field(1.6, alias="HOT_GRAVITY")
    recent_window_hours: PositiveInt = Field(12, alias="RECENT_WINDOW_HOURS")
    section_weights: Dict[str, SectionWeightProfile] = Field(
        default_factory=dict,
        alias="SECTION_WEIGHTS",
        description='섹션별 가중치 오버라이드 (JSON 객체, 값은 "f,v,e,s,d,l" 또는 객체).',
    )
    ranking_strategies: Dict[str, RankingStrategy] = Field(
        default_factory=dict,
        alias="RANKING_STRATEGIES",
        description="섹션별 랭킹 전략 오버라이드 (composite|hot).",
    )

    # ops
    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    refresh_schedules: List[RefreshSchedule] = Field(
        default_factory=list,
        alias="REFRESH_SCHEDULES",
        description="JSON 배열 형태의 섹션 캐시 예열 스케줄.",
    )
    celery_worker_concurrency: PositiveInt = Field(2, alias="CELERY_WORKER_CONCURRENCY")
    celery_task_soft_time_limit: PositiveInt = Field(120, alias="CELERY_TASK_SOFT_TIME_LIMIT")

    @field_validator("redis_url")
    @classmethod
    def _validate_redis_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if "://" not in value:
            raise ValueError("REDIS_URL은 유효한 DSN 문자열이어야 합니다.")
        return value.strip()

    @field_validator("news_api_page_size")
    @classmethod
    def _validate_page_size(cls, v: int) -> int:
        if v > 100:
            raise ValueError("NEWS_API_PAGE_SIZE는 100 이하여야 합니다.")
        return v

    @field_validator("section_weights", mode="before")
    @classmethod
    def _parse_section_weights(cls, value: Any) -> Dict[str, SectionWeightProfile]:
        raw = _parse_json_setting(value, "SECTION_WEIGHTS", dict)
        return {resolve_section_name(k): SectionWeightProfile.parse(v) for k, v in raw.items()}

    @field_validator("ranking_strategies", mode="before")
    @classmethod
    def _parse_strategies(cls, value: Any) -> Dict[str, str]:
        raw = _parse_json_setting(value, "RANKING_STRATEGIES", dict)
        return {resolve_section_name(k): str(v).strip().lower() for k, v in raw.items()}

    @field_validator("refresh_schedules", mode="before")
    @classmethod
    def _parse_refresh_schedules(cls, value: Any) -> List[Any]:
        return _parse_json_setting(value, "REFRESH_SCHEDULES", list)

    @field_validator("refresh_schedules")
    @classmethod
    def _validate_unique_schedule(cls, value: List[RefreshSchedule]) -> List[RefreshSchedule]:
        seen: Set[str] = set()
        for schedule in value:
            if schedule.section in seen:
                raise ValueError(f"중복된 스케줄 항목이 존재합니다: {schedule.section}")
            seen.add(schedule.section)
        return value

    def weight_profile(self, section: str) -> SectionWeightProfile:
        return self.section_weights.get(section) or DEFAULT_PROFILES.get(section) or SectionWeightProfile()

    def ranking_strategy(self, section: SectionConfig) -> RankingStrategy:
        return self.ranking_strategies.get(section.name, section.strategy)

    def section_ttl(self, base_seconds: int, section: SectionConfig) -> int:
        return max(1, int(round(base_seconds * section.ttl_scale)))


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
