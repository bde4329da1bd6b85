from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest

from enrichment.queue import AdaptiveLimiter, EnrichmentQueue, TaskState
from llm.client.openai_client import OpenAIClient, PermanentLLMError, TransientLLMError
from llm.settings import LLMSettings

PAYLOAD = {"messages": [{"role": "user", "content": "hello"}], "max_tokens": 32}


def _ok(content: str = "결과", remaining_requests: Any = None) -> Dict[str, Any]:
    headers = {}
    if remaining_requests is not None:
        headers["x-ratelimit-remaining-requests"] = str(remaining_requests)
    return {
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        "model": "gpt-4o-mini",
        "headers": headers,
    }


def _queue(provider, slept: List[float] | None = None, **overrides) -> EnrichmentQueue:
    settings = LLMSettings(**overrides)

    async def _sleep(delay: float) -> None:
        if slept is not None:
            slept.append(delay)

    return EnrichmentQueue(OpenAIClient(settings, provider=provider), settings, sleep=_sleep)


@pytest.mark.asyncio
async def test_transient_failures_retry_until_budget_then_dead_letter_once():
    calls = {"n": 0}
    slept: List[float] = []

    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        calls["n"] += 1
        raise TransientLLMError("503")

    queue = _queue(provider, slept)
    try:
        with pytest.raises(TransientLLMError):
            await queue.run("translate", "translate:a", PAYLOAD)
    finally:
        await queue.aclose()

    assert calls["n"] == 6  # first call + 5 retries
    assert slept == [0.4, 0.8, 1.6, 3.2, 6.4]
    assert len(queue.dead_letters) == 1
    task = queue.dead_letters[0]
    assert task.state is TaskState.DEAD_LETTERED
    assert task.attempt_count == 6
    assert task.last_error == "503"


@pytest.mark.asyncio
async def test_permanent_failure_is_dead_lettered_without_retry():
    calls = {"n": 0}

    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        calls["n"] += 1
        raise PermanentLLMError("400")

    queue = _queue(provider)
    try:
        with pytest.raises(PermanentLLMError):
            await queue.run("summarize", "summarize:a", PAYLOAD)
    finally:
        await queue.aclose()

    assert calls["n"] == 1
    assert [t.key for t in queue.dead_letters] == ["summarize:a"]


@pytest.mark.asyncio
async def test_transient_failure_recovers_on_retry():
    calls = {"n": 0}

    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        calls["n"] += 1
        if calls["n"] == 1:
            raise TransientLLMError("429", rate_limited=True)
        return _ok("번역 결과")

    queue = _queue(provider, [])
    try:
        result = await queue.run("translate", "translate:b", PAYLOAD)
    finally:
        await queue.aclose()

    assert result == "번역 결과"
    assert len(queue.dead_letters) == 0
    # 8 → 6 on the rate limit, +1 after the successful call
    assert queue.limiter.concurrency == 7


@pytest.mark.asyncio
async def test_identical_in_flight_tasks_share_one_call():
    calls = {"n": 0}
    gate = asyncio.Event()

    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        calls["n"] += 1
        await gate.wait()
        return _ok()

    queue = _queue(provider)
    try:
        first = queue.submit("translate", "translate:same", PAYLOAD)
        second = queue.submit("translate", "translate:same", PAYLOAD)
        assert first is second
        gate.set()
        assert await first == "결과"
    finally:
        await queue.aclose()

    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limit():
    state = {"running": 0, "peak": 0}

    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        state["running"] += 1
        state["peak"] = max(state["peak"], state["running"])
        await asyncio.sleep(0.01)
        state["running"] -= 1
        return _ok()

    queue = _queue(
        provider,
        ENRICH_MIN_CONCURRENCY=1,
        ENRICH_INITIAL_CONCURRENCY=2,
        ENRICH_MAX_CONCURRENCY=2,
    )
    try:
        results = await asyncio.gather(*(queue.run("summarize", f"summarize:{i}", PAYLOAD) for i in range(6)))
    finally:
        await queue.aclose()

    assert results == ["결과"] * 6
    assert state["peak"] <= 2


@pytest.mark.asyncio
async def test_replay_requeues_dead_letters_and_delivers_to_sink():
    mode = {"fail": True}
    delivered = asyncio.Event()
    stored: List[str] = []

    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        if mode["fail"]:
            raise PermanentLLMError("quota")
        return _ok("재처리 완료")

    async def sink(task, content: str) -> None:
        stored.append(f"{task.key}={content}")
        delivered.set()

    queue = _queue(provider)
    queue.result_sink = sink
    try:
        with pytest.raises(PermanentLLMError):
            await queue.run("detail", "detail:x", PAYLOAD)
        assert len(queue.dead_letters) == 1

        mode["fail"] = False
        assert queue.replay_dead_letters() == 1
        assert len(queue.dead_letters) == 0
        await asyncio.wait_for(delivered.wait(), timeout=1.0)
    finally:
        await queue.aclose()

    assert stored == ["detail:x=재처리 완료"]
    assert queue.replay_dead_letters() == 0


@pytest.mark.asyncio
async def test_status_reports_queue_state():
    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        return _ok(remaining_requests=100)

    queue = _queue(provider)
    try:
        await queue.run("translate", "translate:s", PAYLOAD)
        status = queue.status()
    finally:
        await queue.aclose()

    assert status["dead_letters"] == 0
    assert status["remaining_requests"] == 100
    assert status["provider_available"] is True
    assert status["concurrency"] == 9


def test_limiter_decreases_on_low_headroom_and_respects_bounds():
    limiter = AdaptiveLimiter(10, floor=2, ceiling=11, headroom_ratio=0.5)

    limiter.observe(remaining_requests=3)  # 3 < 10 * 0.5
    assert limiter.concurrency == 8

    limiter.observe(remaining_requests=1000)
    limiter.observe(remaining_requests=1000)
    limiter.observe(remaining_requests=1000)
    limiter.observe(remaining_requests=1000)
    assert limiter.concurrency == 11

    for _ in range(20):
        limiter.decrease()
    assert limiter.concurrency == 2


@pytest.mark.asyncio
async def test_dead_letters_are_capped_and_oldest_evicted(caplog):
    async def provider(_: Dict[str, Any]) -> Dict[str, Any]:
        raise PermanentLLMError("quota exhausted")

    queue = _queue(provider, ENRICH_DEAD_LETTER_MAX=3)
    try:
        for i in range(5):
            with pytest.raises(PermanentLLMError):
                await queue.run("translate", f"translate:{i}", PAYLOAD)
    finally:
        await queue.aclose()

    assert [t.key for t in queue.dead_letters] == ["translate:2", "translate:3", "translate:4"]
    assert queue.status()["dead_letters"] == 3
    assert sum(r.getMessage() == "enrich.dead_letter_evicted" for r in caplog.records) == 2


@pytest.mark.asyncio
async def test_aclose_closes_the_sdk_client(monkeypatch: pytest.MonkeyPatch):
    import openai

    closed: List[bool] = []

    class _SDK:
        def __init__(self, **_: Any) -> None:
            pass

        async def close(self) -> None:
            closed.append(True)

    monkeypatch.setattr(openai, "AsyncOpenAI", _SDK)
    settings = LLMSettings(OPENAI_API_KEY="sk-test")
    queue = EnrichmentQueue(OpenAIClient(settings), settings)
    queue.client._get_provider()

    await queue.aclose()

    assert closed == [True]
