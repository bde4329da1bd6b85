"""Bounded, adaptive-concurrency queue in front of the text-generation provider.

Task lifecycle::

    queued → running → succeeded
                     → retrying → queued        (transient failure, retries left)
                     → dead_lettered            (permanent failure or retries exhausted)

Concurrency follows the provider's rate-limit headers: low remaining headroom
shrinks it multiplicatively, otherwise it grows by one, within [floor, ceiling].
"""

from __future__ import annotations

import asyncio
import enum
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Literal, Optional, Set

from ingestion.utils.logging import get_logger
from ingestion.utils.retry import RetryPolicy
from llm.client.openai_client import LLMError, OpenAIClient, PermanentLLMError, TransientLLMError
from llm.settings import LLMSettings, get_llm_settings

logger = get_logger(__name__)

TaskKind = Literal["translate", "summarize", "detail"]
SleepFn = Callable[[float], Awaitable[None]]
ResultSink = Callable[["EnrichmentTask", str], Awaitable[None]]


def _consume_outcome(future: "asyncio.Future[str]") -> None:
    if not future.cancelled():
        future.exception()


class TaskState(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    DEAD_LETTERED = "dead_lettered"


@dataclass(eq=False)
class EnrichmentTask:
    key: str
    kind: TaskKind
    payload: Dict[str, Any]
    attempt_count: int = 0
    state: TaskState = TaskState.QUEUED
    last_error: Optional[str] = None
    future: Optional["asyncio.Future[str]"] = field(default=None, repr=False)

    def describe(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "attempt_count": self.attempt_count,
            "state": self.state.value,
            "last_error": self.last_error,
        }


class AdaptiveLimiter:
    """Concurrency gate whose limit tracks provider headroom."""

    def __init__(
        self,
        initial: int = 8,
        *,
        floor: int = 2,
        ceiling: int = 24,
        headroom_ratio: float = 0.5,
        decrease_factor: float = 0.8,
    ) -> None:
        self.concurrency = initial
        self.floor = floor
        self.ceiling = ceiling
        self.headroom_ratio = headroom_ratio
        self.decrease_factor = decrease_factor
        self.running = 0
        self.remaining_requests: Optional[int] = None
        self.remaining_tokens: Optional[int] = None
        self._cond = asyncio.Condition()

    def decrease(self) -> None:
        self.concurrency = max(self.floor, int(self.concurrency * self.decrease_factor))

    def increase(self) -> None:
        self.concurrency = min(self.ceiling, self.concurrency + 1)

    def observe(self, remaining_requests: Optional[int], remaining_tokens: Optional[int] = None) -> None:
        if remaining_requests is not None:
            self.remaining_requests = remaining_requests
        if remaining_tokens is not None:
            self.remaining_tokens = remaining_tokens
        if self.remaining_requests is not None and self.remaining_requests < self.concurrency * self.headroom_ratio:
            self.decrease()
        else:
            self.increase()

    async def acquire(self) -> None:
        async with self._cond:
            await self._cond.wait_for(lambda: self.running < self.concurrency)
            self.running += 1

    async def release(self) -> None:
        async with self._cond:
            self.running = max(0, self.running - 1)
            self._cond.notify_all()


class EnrichmentQueue:
    """Producer/consumer queue of enrichment calls.

    ``run()`` enqueues and waits for the outcome: the generated text, or the
    final error once the task is dead-lettered. A task is dead-lettered exactly
    once and stays listed until replayed or until ``dead_letter_max`` newer
    dead letters push it out.
    """

    def __init__(
        self,
        client: OpenAIClient,
        settings: Optional[LLMSettings] = None,
        *,
        sleep: Optional[SleepFn] = None,
        result_sink: Optional[ResultSink] = None,
    ) -> None:
        self.client = client
        self.settings = settings or get_llm_settings()
        self.limiter = AdaptiveLimiter(
            self.settings.initial_concurrency,
            floor=self.settings.min_concurrency,
            ceiling=self.settings.max_concurrency,
            headroom_ratio=self.settings.headroom_ratio,
        )
        self.retry_policy = RetryPolicy(
            max_retries=self.settings.max_retries,
            base_delay=self.settings.backoff_base_seconds,
            max_delay=self.settings.backoff_max_seconds,
            retry_on=(TransientLLMError,),
        )
        self.result_sink = result_sink
        self.dead_letters: Deque[EnrichmentTask] = deque(maxlen=self.settings.dead_letter_max)
        self._sleep = sleep or asyncio.sleep
        self._queue: "asyncio.Queue[EnrichmentTask]" = asyncio.Queue()
        self._inflight: Dict[str, EnrichmentTask] = {}
        self._background: Set["asyncio.Task[Any]"] = set()
        self._dispatcher: Optional["asyncio.Task[None]"] = None

    @property
    def available(self) -> bool:
        return self.client.available

    def start(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch(), name="enrichment-dispatcher")

    async def aclose(self) -> None:
        tasks = [t for t in (self._dispatcher, *self._background) if t is not None]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatcher = None
        self._background.clear()
        for task in self._inflight.values():
            if task.future is not None and not task.future.done():
                task.future.cancel()
        self._inflight.clear()
        await self.client.aclose()

    def submit(self, kind: TaskKind, key: str, payload: Dict[str, Any]) -> "asyncio.Future[str]":
        """Enqueue a task; an identical key already in flight shares its future."""
        existing = self._inflight.get(key)
        if existing is not None and existing.future is not None and not existing.future.done():
            return existing.future
        task = EnrichmentTask(key=key, kind=kind, payload=payload)
        task.future = asyncio.get_running_loop().create_future()
        self._inflight[key] = task
        self._enqueue(task)
        return task.future

    async def run(self, kind: TaskKind, key: str, payload: Dict[str, Any]) -> str:
        return await asyncio.shield(self.submit(kind, key, payload))

    def replay_dead_letters(self) -> int:
        """Requeue every dead-lettered task with a fresh retry budget."""
        replayed = list(self.dead_letters)
        self.dead_letters.clear()
        for task in replayed:
            task.attempt_count = 0
            task.last_error = None
            task.future = asyncio.get_running_loop().create_future()
            # nobody awaits a replayed task; results reach callers through the sink
            task.future.add_done_callback(_consume_outcome)
            self._inflight[task.key] = task
            self._enqueue(task)
        if replayed:
            logger.info("enrich.replay", extra={"count": len(replayed)})
        return len(replayed)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.limiter.running,
            "queued": self._queue.qsize(),
            "concurrency": self.limiter.concurrency,
            "dead_letters": len(self.dead_letters),
            "remaining_requests": self.limiter.remaining_requests,
            "remaining_tokens": self.limiter.remaining_tokens,
            "provider_available": self.available,
        }

    def _enqueue(self, task: EnrichmentTask) -> None:
        task.state = TaskState.QUEUED
        self._queue.put_nowait(task)
        self.start()

    def _track(self, coro: Awaitable[Any]) -> None:
        bg = asyncio.ensure_future(coro)
        self._background.add(bg)
        bg.add_done_callback(self._background.discard)

    async def _dispatch(self) -> None:
        while True:
            task = await self._queue.get()
            await self.limiter.acquire()
            self._track(self._run(task))

    async def _run(self, task: EnrichmentTask) -> None:
        task.state = TaskState.RUNNING
        task.attempt_count += 1
        try:
            result = await self.client.complete(
                task.payload["messages"],
                max_tokens=int(task.payload["max_tokens"]),
            )
        except TransientLLMError as exc:
            if exc.rate_limited:
                self.limiter.decrease()
            await self.limiter.release()
            self._retry_or_dead_letter(task, exc)
            return
        except LLMError as exc:
            await self.limiter.release()
            self._dead_letter(task, exc)
            return
        except Exception as exc:
            await self.limiter.release()
            logger.exception("enrich.task_crashed", extra={"key": task.key, "kind": task.kind})
            self._dead_letter(task, PermanentLLMError(f"enrichment task crashed: {exc!r}"))
            return

        self.limiter.observe(result.remaining_requests, result.remaining_tokens)
        await self.limiter.release()
        task.state = TaskState.SUCCEEDED
        self._inflight.pop(task.key, None)
        if self.result_sink is not None:
            try:
                await self.result_sink(task, result.content)
            except Exception:
                logger.exception("enrich.sink_failed", extra={"key": task.key, "kind": task.kind})
        if task.future is not None and not task.future.done():
            task.future.set_result(result.content)

    def _retry_or_dead_letter(self, task: EnrichmentTask, exc: TransientLLMError) -> None:
        task.last_error = str(exc)
        retries_done = task.attempt_count - 1
        if retries_done >= self.retry_policy.max_retries:
            self._dead_letter(task, exc)
            return
        delay = self.retry_policy.delay_for(task.attempt_count)
        task.state = TaskState.RETRYING
        logger.info(
            "enrich.retry",
            extra={"key": task.key, "kind": task.kind, "attempt": task.attempt_count, "delay_s": delay},
        )
        self._track(self._requeue_later(task, delay))

    async def _requeue_later(self, task: EnrichmentTask, delay: float) -> None:
        if delay > 0:
            await self._sleep(delay)
        self._enqueue(task)

    def _dead_letter(self, task: EnrichmentTask, exc: BaseException) -> None:
        if task.state is TaskState.DEAD_LETTERED:
            return
        task.state = TaskState.DEAD_LETTERED
        task.last_error = str(exc)
        if len(self.dead_letters) == self.dead_letters.maxlen:
            evicted = self.dead_letters[0]
            logger.warning(
                "enrich.dead_letter_evicted",
                extra={"key": evicted.key, "kind": evicted.kind, "limit": self.dead_letters.maxlen},
            )
        self.dead_letters.append(task)
        self._inflight.pop(task.key, None)
        logger.warning(
            "enrich.dead_letter",
            extra={"key": task.key, "kind": task.kind, "attempts": task.attempt_count, "error": str(exc)},
        )
        if task.future is not None and not task.future.done():
            task.future.set_exception(exc)
