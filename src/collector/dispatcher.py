"""
Query Dispatcher

Fans out one engine call per (query, engine) pair and collects a terminal
EngineResult for each.

Batch lifecycle:
    pending -> dispatched -> completed | partially_completed | failed

- Concurrency: a global worker bound plus a per-engine semaphore
  (EngineConfig.max_concurrency) to respect each engine's rate limits.
- Per-call timeout: asyncio.wait_for with the engine's per_call_timeout.
- Retry: timeout, rate_limited and transport/server failures are retried
  up to max_retries times with exponential backoff and jitter. Auth and
  malformed failures are final.
- Batch deadline: calls still pending at expiry are cancelled and
  recorded as timeouts; completed results are kept.
"""

import asyncio
import dataclasses
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from src.integrations.base import EngineAdapter
from src.models import BatchStatus, CallStatus, EngineResult, FailureKind, Query
from src.utils.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)

DEADLINE_CANCEL_MESSAGE = "cancelled at batch deadline"


@dataclass
class RetryConfig:
    """Configuration for retry backoff."""
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter_min: float = 0.5
    jitter_max: float = 1.5


@dataclass
class DispatchConfig:
    """Configuration for one dispatcher."""
    max_workers: int = 10
    batch_deadline: Optional[float] = 120.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DispatchConfig":
        return cls(
            max_workers=settings.MAX_WORKERS,
            batch_deadline=settings.BATCH_DEADLINE,
            retry=RetryConfig(base_delay=settings.RETRY_BASE_DELAY),
        )


# ============================================================================
# BATCH
# ============================================================================

_TRANSITIONS = {
    BatchStatus.PENDING: {BatchStatus.DISPATCHED},
    BatchStatus.DISPATCHED: {
        BatchStatus.COMPLETED,
        BatchStatus.PARTIALLY_COMPLETED,
        BatchStatus.FAILED,
    },
}


@dataclass
class DispatchBatch:
    """All calls for one set of queries across one set of engines."""
    queries: List[Query]
    engine_ids: List[str]
    status: BatchStatus = BatchStatus.PENDING
    results: Dict[Tuple[str, str], EngineResult] = field(default_factory=dict)
    deadline: Optional[float] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cancelled_calls: int = 0

    def _transition(self, new_status: BatchStatus):
        allowed = _TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise RuntimeError(f"Invalid batch transition {self.status.value} -> {new_status.value}")
        self.status = new_status

    def mark_dispatched(self):
        self._transition(BatchStatus.DISPATCHED)
        self.started_at = datetime.now(timezone.utc)

    def record(self, result: EngineResult):
        if self.status != BatchStatus.DISPATCHED:
            raise RuntimeError(f"Cannot record results on a {self.status.value} batch")
        self.results[(result.query, result.engine_id)] = result

    def finish(self) -> BatchStatus:
        """Settle the terminal status from recorded results."""
        ok = self.ok_count
        if ok and ok == self.call_count:
            final = BatchStatus.COMPLETED
        elif ok:
            final = BatchStatus.PARTIALLY_COMPLETED
        else:
            final = BatchStatus.FAILED
        self._transition(final)
        self.finished_at = datetime.now(timezone.utc)
        return final

    @property
    def call_count(self) -> int:
        return len(self.queries) * len(self.engine_ids)

    @property
    def ok_count(self) -> int:
        return sum(1 for r in self.results.values() if r.ok)

    @property
    def all_results(self) -> List[EngineResult]:
        """Results in query order, then engine order."""
        ordered = []
        for query in self.queries:
            ordered.extend(self.results_for(query.text))
        return ordered

    @property
    def failed_results(self) -> List[EngineResult]:
        return [r for r in self.all_results if not r.ok]

    def results_for(self, query_text: str) -> List[EngineResult]:
        return [
            self.results[(query_text, engine_id)]
            for engine_id in self.engine_ids
            if (query_text, engine_id) in self.results
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "queries": [q.to_dict() for q in self.queries],
            "engine_ids": list(self.engine_ids),
            "call_count": self.call_count,
            "ok_count": self.ok_count,
            "cancelled_calls": self.cancelled_calls,
            "deadline": self.deadline,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "results": [r.to_dict() for r in self.all_results],
        }


# ============================================================================
# DISPATCHER
# ============================================================================

def normalize_queries(queries: Sequence[Union[str, Query]]) -> List[Query]:
    """Coerce to Query objects, dropping duplicate texts."""
    normalized: List[Query] = []
    seen = set()
    for item in queries:
        query = item if isinstance(item, Query) else Query(text=str(item))
        text = query.text.strip() if query.text else ""
        if not text:
            raise ConfigurationError("Query text must be non-empty")
        if text != query.text:
            query = Query(text=text, topic=query.topic)
        if text in seen:
            logger.debug(f"Dropping duplicate query {text[:60]!r}")
            continue
        seen.add(text)
        normalized.append(query)
    return normalized


class QueryDispatcher:
    """
    Runs a batch of queries against every configured engine.

    Usage:
        dispatcher = QueryDispatcher(adapters, DispatchConfig(batch_deadline=60))
        batch = await dispatcher.dispatch([Query("best crm for startups")])
        for result in batch.all_results:
            ...
    """

    def __init__(
        self,
        adapters: Sequence[EngineAdapter],
        config: Optional[DispatchConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize dispatcher.

        Args:
            adapters: One adapter per engine (engine ids must be unique)
            config: Dispatch configuration
            rng: Random source for backoff jitter
            sleep: Backoff sleep, replaceable in tests

        Raises:
            ConfigurationError: Empty engine set or duplicate engine ids
        """
        if not adapters:
            raise ConfigurationError("At least one engine adapter is required")
        engine_ids = [a.engine_id for a in adapters]
        if len(set(engine_ids)) != len(engine_ids):
            raise ConfigurationError(f"Duplicate engine ids: {engine_ids}")

        self.adapters = list(adapters)
        self.config = config or DispatchConfig()
        if self.config.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        self._rng = rng or random.Random()
        self._sleep = sleep

    @property
    def engine_ids(self) -> List[str]:
        return [a.engine_id for a in self.adapters]

    def validate_deadline(self, deadline: Optional[float]):
        """Every per-call timeout must be shorter than the batch deadline."""
        if deadline is None:
            return
        if deadline <= 0:
            raise ConfigurationError(f"Batch deadline must be positive, got {deadline}")
        for adapter in self.adapters:
            if adapter.config.per_call_timeout >= deadline:
                raise ConfigurationError(
                    f"{adapter.engine_id} per-call timeout {adapter.config.per_call_timeout}s "
                    f"must be shorter than the batch deadline {deadline}s"
                )

    def backoff_delay(self, attempt: int) -> float:
        """base * exponential_base**attempt * jitter, capped at max_delay."""
        retry = self.config.retry
        jitter = self._rng.uniform(retry.jitter_min, retry.jitter_max)
        return min(retry.base_delay * (retry.exponential_base ** attempt) * jitter, retry.max_delay)

    async def dispatch(
        self,
        queries: Sequence[Union[str, Query]],
        deadline: Optional[float] = None,
    ) -> DispatchBatch:
        """
        Execute every (query, engine) call and settle the batch.

        Args:
            queries: Queries to run
            deadline: Batch deadline in seconds (defaults to config)

        Returns:
            DispatchBatch in a terminal state with one result per call

        Raises:
            ConfigurationError: Empty query list or invalid deadline
        """
        normalized = normalize_queries(queries)
        if not normalized:
            raise ConfigurationError("At least one query is required")

        deadline = deadline if deadline is not None else self.config.batch_deadline
        self.validate_deadline(deadline)

        batch = DispatchBatch(queries=normalized, engine_ids=self.engine_ids, deadline=deadline)
        batch.mark_dispatched()
        logger.info(
            f"Dispatching {batch.call_count} calls "
            f"({len(normalized)} queries x {len(self.adapters)} engines)"
        )

        workers = asyncio.Semaphore(self.config.max_workers)
        engine_limits = {
            a.engine_id: asyncio.Semaphore(a.config.max_concurrency)
            for a in self.adapters
        }
        attempts: Dict[Tuple[str, str], int] = {}

        tasks = {}
        for query in normalized:
            for adapter in self.adapters:
                task = asyncio.create_task(
                    self._run_call(query, adapter, workers, engine_limits[adapter.engine_id], attempts)
                )
                tasks[task] = (query, adapter)

        done, pending = await asyncio.wait(tasks.keys(), timeout=deadline)

        for task in done:
            batch.record(task.result())

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            now = datetime.now(timezone.utc)
            for task in pending:
                query, adapter = tasks[task]
                batch.record(EngineResult(
                    engine_id=adapter.engine_id,
                    query=query.text,
                    status=CallStatus.TIMEOUT,
                    attempts=attempts.get((query.text, adapter.engine_id), 1),
                    failure=FailureKind.TIMEOUT,
                    error_message=DEADLINE_CANCEL_MESSAGE,
                    captured_at=now,
                ))
            batch.cancelled_calls = len(pending)
            logger.warning(f"Batch deadline {deadline}s reached, cancelled {len(pending)} pending calls")

        status = batch.finish()
        logger.info(f"Batch {status.value}: {batch.ok_count}/{batch.call_count} calls ok")
        return batch

    async def _run_call(
        self,
        query: Query,
        adapter: EngineAdapter,
        workers: asyncio.Semaphore,
        engine_limit: asyncio.Semaphore,
        attempts: Dict[Tuple[str, str], int],
    ) -> EngineResult:
        """One (query, engine) call including retries."""
        key = (query.text, adapter.engine_id)
        max_retries = adapter.config.max_retries
        attempt = 0

        while True:
            attempts[key] = attempt + 1
            async with engine_limit:
                async with workers:
                    result = await self._call_once(adapter, query.text)

            if result.ok or not result.retryable or attempt >= max_retries:
                break

            delay = self.backoff_delay(attempt)
            logger.warning(
                f"{adapter.engine_id} {result.status.value} "
                f"(attempt {attempt + 1}/{max_retries + 1}). Retrying in {delay:.2f}s..."
            )
            await self._sleep(delay)
            attempt += 1

        return dataclasses.replace(result, attempts=attempt + 1)

    async def _call_once(self, adapter: EngineAdapter, query_text: str) -> EngineResult:
        timeout = adapter.config.per_call_timeout
        try:
            return await asyncio.wait_for(adapter.query(query_text), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{adapter.engine_id} timed out after {timeout}s")
            return EngineResult(
                engine_id=adapter.engine_id,
                query=query_text,
                status=CallStatus.TIMEOUT,
                failure=FailureKind.TIMEOUT,
                error_message=f"no response within {timeout}s",
                captured_at=datetime.now(timezone.utc),
            )
        except Exception as e:
            logger.warning(f"{adapter.engine_id} adapter raised {type(e).__name__}: {e}")
            return EngineResult(
                engine_id=adapter.engine_id,
                query=query_text,
                status=CallStatus.ERROR,
                failure=FailureKind.TRANSPORT,
                error_message=f"{type(e).__name__}: {e}",
                captured_at=datetime.now(timezone.utc),
            )
