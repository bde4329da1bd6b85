"""Settings for the enrichment (OpenAI LLM) pipeline."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import (
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Environment-driven configuration for translation/summarization."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    openai_api_key: Optional[str] = Field(
        None, alias="OPENAI_API_KEY", description="OpenAI API key (없으면 원문 그대로 통과)"
    )
    llm_model: str = Field("gpt-4o-mini", alias="LLM_MODEL", description="OpenAI model name")
    llm_temperature: PositiveFloat = Field(0.2, alias="LLM_TEMPERATURE", description="Sampling temperature")
    translate_max_tokens: PositiveInt = Field(220, alias="TRANSLATE_MAX_TOKENS")
    summary_max_tokens: PositiveInt = Field(220, alias="SUMMARY_MAX_TOKENS")
    detail_max_tokens: PositiveInt = Field(500, alias="DETAIL_MAX_TOKENS")
    llm_cost_limit_usd: PositiveFloat = Field(0.02, alias="LLM_COST_LIMIT_USD", description="Per-request cost cap (USD)")
    llm_request_timeout_seconds: PositiveFloat = Field(
        20.0,
        alias="LLM_REQUEST_TIMEOUT_SECONDS",
        description="HTTP request timeout in seconds",
    )
    target_language: str = Field("ko", alias="TARGET_LANGUAGE", description="번역 대상 언어 (ISO 639-1)")

    # enrichment queue
    initial_concurrency: PositiveInt = Field(8, alias="ENRICH_INITIAL_CONCURRENCY")
    min_concurrency: PositiveInt = Field(2, alias="ENRICH_MIN_CONCURRENCY")
    max_concurrency: PositiveInt = Field(24, alias="ENRICH_MAX_CONCURRENCY")
    headroom_ratio: PositiveFloat = Field(
        0.5, alias="ENRICH_HEADROOM_RATIO", description="remaining < concurrency × ratio 이면 감속"
    )
    max_retries: int = Field(5, ge=0, alias="ENRICH_MAX_RETRIES", description="일시 오류 재시도 횟수")
    backoff_base_seconds: PositiveFloat = Field(0.4, alias="ENRICH_BACKOFF_BASE_SEC")
    backoff_max_seconds: PositiveFloat = Field(6.4, alias="ENRICH_BACKOFF_MAX_SEC")
    dead_letter_max: PositiveInt = Field(
        500, alias="ENRICH_DEAD_LETTER_MAX", description="보관할 dead letter 최대 개수 (초과 시 가장 오래된 것부터 제거)"
    )
    enrich_top_n: PositiveInt = Field(24, alias="ENRICH_TOP_N", description="섹션당 enrichment 대상 상위 기사 수")
    detail_rating_threshold: float = Field(4.0, ge=1.0, le=5.0, alias="DETAIL_RATING_THRESHOLD")
    summary_points: PositiveInt = Field(5, alias="SUMMARY_POINTS")
    translate_input_chars: PositiveInt = Field(1600, alias="TRANSLATE_INPUT_CHARS")
    detail_input_chars: PositiveInt = Field(2000, alias="DETAIL_INPUT_CHARS")

    @field_validator("openai_api_key")
    @classmethod
    def _blank_key_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        s = v.strip()
        return s or None

    @field_validator("target_language")
    @classmethod
    def _lang_code(cls, v: str) -> str:
        s = v.strip().lower()[:2]
        if len(s) != 2:
            raise ValueError("TARGET_LANGUAGE는 ISO 639-1 코드여야 합니다.")
        return s

    @model_validator(mode="after")
    def _concurrency_bounds(self) -> "LLMSettings":
        if not (self.min_concurrency <= self.initial_concurrency <= self.max_concurrency):
            raise ValueError("ENRICH_MIN ≤ ENRICH_INITIAL ≤ ENRICH_MAX_CONCURRENCY 여야 합니다.")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("ENRICH_BACKOFF_MAX_SEC는 BASE 이상이어야 합니다.")
        return self


@lru_cache()
def get_llm_settings() -> LLMSettings:
    try:
        return LLMSettings()
    except ValidationError as exc:
        raise RuntimeError(f"LLM 설정 검증 실패: {exc}") from exc


def reset_llm_settings_cache() -> None:
    get_llm_settings.cache_clear()  # type: ignore[attr-defined]
