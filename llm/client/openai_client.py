"""OpenAI LLM 클라이언트 래퍼 (비동기 chat completions).

특징
- 요청당 비용 상한(사전 추정 + 사후 usage 기준) 적용
- 응답 헤더의 rate-limit 잔여량(x-ratelimit-remaining-*)을 결과에 포함
- openai 예외를 Transient/Permanent로 분류
- Provider 주입으로 테스트 시 네트워크/실제 의존성 제거
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from llm.settings import LLMSettings, get_llm_settings


class LLMError(Exception):
    """LLM 호출 관련 기본 오류."""


class TransientLLMError(LLMError):
    """일시 오류(재시도 대상). 429이면 ``rate_limited``가 참."""

    def __init__(self, message: str, *, rate_limited: bool = False, headers: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message)
        self.rate_limited = rate_limited
        self.headers = dict(headers or {})


class PermanentLLMError(LLMError):
    """영구 오류(재시도 불가)."""


# Provider: payload → {"choices": [...], "usage": {...}, "model": str, "headers": {...}}
ProviderFn = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


_PRICE_PER_1K_TOKENS_USD: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"prompt": 0.00015, "completion": 0.0006},
    "gpt-4o": {"prompt": 0.0025, "completion": 0.0100},
}


def _estimate_cost_usd(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    price = _PRICE_PER_1K_TOKENS_USD.get(model, _PRICE_PER_1K_TOKENS_USD["gpt-4o-mini"])
    return (
        (prompt_tokens / 1000.0) * price["prompt"]
        + (completion_tokens / 1000.0) * price["completion"]
    )


def _estimate_tokens_from_messages(messages: List[dict]) -> int:
    """길이 기반 보수적 토큰 추정."""
    total_chars = 0
    for message in messages:
        content = message.get("content", "") if isinstance(message, dict) else ""
        total_chars += len(str(content))
    return max(1, math.ceil(total_chars / 4))


def _header_int(headers: Mapping[str, Any], name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CompletionResult:
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float = 0.0
    remaining_requests: Optional[int] = None
    remaining_tokens: Optional[int] = None


@dataclass(frozen=True)
class OpenAIClient:
    settings: LLMSettings
    provider: Optional[ProviderFn] = None
    # lazily built SDK client and its call wrapper, shared by every request
    _sdk: Dict[str, Any] = field(default_factory=dict, init=False, repr=False, compare=False)

    @classmethod
    def from_env(cls, provider: Optional[ProviderFn] = None) -> "OpenAIClient":
        return cls(get_llm_settings(), provider=provider)

    @property
    def available(self) -> bool:
        return self.provider is not None or bool(self.settings.openai_api_key)

    def _get_provider(self) -> ProviderFn:
        if self.provider is not None:
            return self.provider
        if "call" in self._sdk:
            return self._sdk["call"]
        if not self.settings.openai_api_key:
            raise PermanentLLMError("OPENAI_API_KEY가 설정되지 않았습니다.")

        import openai

        client = openai.AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            timeout=float(self.settings.llm_request_timeout_seconds),
            max_retries=0,
        )

        async def _call(payload: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - 네트워크 미사용
            try:
                raw = await client.chat.completions.with_raw_response.create(**payload)
            except openai.RateLimitError as exc:
                raise TransientLLMError("LLM rate limit", rate_limited=True, headers=exc.response.headers) from exc
            except (openai.APITimeoutError, openai.APIConnectionError) as exc:
                raise TransientLLMError(f"LLM 연결 오류: {exc}") from exc
            except openai.APIStatusError as exc:
                if exc.status_code >= 500:
                    raise TransientLLMError(f"LLM 서버 오류: {exc.status_code}") from exc
                raise PermanentLLMError(f"LLM 요청 거부: {exc.status_code}") from exc
            resp = raw.parse()
            return {
                "choices": [{"message": {"content": resp.choices[0].message.content if resp.choices else ""}}],
                "usage": {
                    "prompt_tokens": getattr(resp.usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(resp.usage, "completion_tokens", 0),
                },
                "model": resp.model,
                "headers": dict(raw.headers),
            }

        self._sdk.update(client=client, call=_call)
        return _call

    async def aclose(self) -> None:
        """SDK 클라이언트(연결 풀)를 닫는다. 다음 호출 시 다시 생성된다."""
        client = self._sdk.pop("client", None)
        self._sdk.pop("call", None)
        if client is not None:
            await client.close()

    def _build_payload(self, messages: List[dict], max_tokens: int, temperature: Optional[float]) -> Dict[str, Any]:
        return {
            "model": self.settings.llm_model,
            "messages": messages,
            "temperature": float(temperature if temperature is not None else self.settings.llm_temperature),
            "max_tokens": int(max_tokens),
        }

    async def complete(
        self,
        messages: List[dict],
        *,
        max_tokens: int,
        temperature: Optional[float] = None,
    ) -> CompletionResult:
        """Single chat completion; retries are the caller's concern."""
        payload = self._build_payload(messages, max_tokens, temperature)
        model = payload["model"]
        estimated = _estimate_cost_usd(model, _estimate_tokens_from_messages(messages), int(max_tokens))
        if estimated > float(self.settings.llm_cost_limit_usd):
            raise PermanentLLMError("예상 비용 상한 초과")

        provider = self._get_provider()
        try:
            resp = await asyncio.wait_for(provider(payload), timeout=float(self.settings.llm_request_timeout_seconds))
        except asyncio.TimeoutError as exc:
            raise TransientLLMError("LLM 요청 타임아웃 초과") from exc

        model = resp.get("model") or model
        usage = resp.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens", 0))
        completion_tokens = int(usage.get("completion_tokens", 0))
        cost = _estimate_cost_usd(model, prompt_tokens, completion_tokens)
        if cost > float(self.settings.llm_cost_limit_usd):
            raise PermanentLLMError("LLM 비용 상한 초과")

        content = ((resp.get("choices") or [{}])[0].get("message") or {}).get("content") or ""
        if not content.strip():
            raise TransientLLMError("LLM 응답이 비어 있습니다.")
        headers = resp.get("headers") or {}
        return CompletionResult(
            content=content.strip(),
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost_usd=cost,
            remaining_requests=_header_int(headers, "x-ratelimit-remaining-requests"),
            remaining_tokens=_header_int(headers, "x-ratelimit-remaining-tokens"),
        )
