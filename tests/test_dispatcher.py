"""
Tests for the query dispatcher.

These tests verify:
- Batch lifecycle and terminal status under partial failure
- Retry policy (retryable vs final failures)
- Per-call timeouts and the batch deadline
- Per-engine concurrency limits
- Configuration errors
"""

import asyncio
import random

import pytest

from src.collector.dispatcher import (
    DEADLINE_CANCEL_MESSAGE,
    DispatchBatch,
    DispatchConfig,
    QueryDispatcher,
    RetryConfig,
    normalize_queries,
)
from src.integrations.base import EngineError
from src.models import BatchStatus, CallStatus, EngineResult, FailureKind, Query
from src.utils.config import ConfigurationError

QUERIES = ["best crm for startups", "crm with email automation"]


def timeout_error():
    return EngineError("timed out", status=CallStatus.TIMEOUT, failure=FailureKind.TIMEOUT)


def server_error():
    return EngineError("502", status=CallStatus.ERROR, failure=FailureKind.SERVER, status_code=502)


def auth_error():
    return EngineError("401", status=CallStatus.ERROR, failure=FailureKind.AUTH, status_code=401)


# =============================================================================
# BATCH OUTCOMES
# =============================================================================

class TestBatchOutcome:
    """Test terminal batch status."""

    def test_all_ok_is_completed(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapters = [
            fake_adapter("perplexity", default=("answer", ["https://example.com"])),
            fake_adapter("chatgpt", default=("answer", None)),
        ]
        batch = asyncio.run(QueryDispatcher(adapters, sleep=sleep).dispatch(QUERIES))

        assert batch.status == BatchStatus.COMPLETED
        assert batch.call_count == 4
        assert batch.ok_count == 4
        assert [(r.query, r.engine_id) for r in batch.all_results] == [
            (QUERIES[0], "perplexity"), (QUERIES[0], "chatgpt"),
            (QUERIES[1], "perplexity"), (QUERIES[1], "chatgpt"),
        ]
        assert batch.started_at is not None
        assert batch.finished_at is not None

    def test_one_ok_two_timeouts_is_partial(self, fake_adapter, no_sleep):
        """Three engines, two time out after their retry: partially completed."""
        sleep, delays = no_sleep
        adapters = [
            fake_adapter("perplexity", default=("answer", [])),
            fake_adapter("chatgpt", default=timeout_error()),
            fake_adapter("claude", default=timeout_error()),
        ]
        batch = asyncio.run(QueryDispatcher(adapters, sleep=sleep).dispatch(QUERIES[:1]))

        assert batch.status == BatchStatus.PARTIALLY_COMPLETED
        failed = batch.failed_results
        assert {r.engine_id for r in failed} == {"chatgpt", "claude"}
        assert all(r.status == CallStatus.TIMEOUT for r in failed)
        assert all(r.attempts == 2 for r in failed)
        assert len(delays) == 2

    def test_adapter_exception_is_absorbed(self, fake_adapter, no_sleep):
        """An adapter bug fails its own calls, not the batch."""
        sleep, _ = no_sleep

        class BrokenAdapter(fake_adapter):
            async def query(self, query_text):
                raise RuntimeError("adapter bug")

        adapters = [
            fake_adapter("perplexity", default=("answer", ["https://example.com"])),
            BrokenAdapter("chatgpt"),
        ]
        batch = asyncio.run(QueryDispatcher(adapters, sleep=sleep).dispatch(QUERIES))

        assert batch.status == BatchStatus.PARTIALLY_COMPLETED
        assert batch.ok_count == 2
        failed = batch.failed_results
        assert [r.engine_id for r in failed] == ["chatgpt", "chatgpt"]
        assert all(r.status == CallStatus.ERROR for r in failed)
        assert all(r.failure == FailureKind.TRANSPORT for r in failed)
        assert all("RuntimeError" in r.error_message for r in failed)

    def test_all_failed(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapters = [
            fake_adapter("perplexity", default=auth_error()),
            fake_adapter("chatgpt", default=server_error()),
        ]
        batch = asyncio.run(QueryDispatcher(adapters, sleep=sleep).dispatch(QUERIES))

        assert batch.status == BatchStatus.FAILED
        assert batch.ok_count == 0
        assert len(batch.all_results) == 4

    def test_results_are_terminal_engine_results(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapters = [fake_adapter("perplexity", default=RuntimeError("boom"))]
        batch = asyncio.run(QueryDispatcher(adapters, sleep=sleep).dispatch(QUERIES[:1]))

        result = batch.all_results[0]
        assert isinstance(result, EngineResult)
        assert result.status == CallStatus.ERROR
        assert result.answer_text == ""
        assert "boom" in result.error_message


# =============================================================================
# RETRY POLICY
# =============================================================================

class TestRetry:
    """Test which failures are retried."""

    def test_transient_failure_then_success(self, fake_adapter, no_sleep):
        sleep, delays = no_sleep
        adapter = fake_adapter(
            "perplexity",
            responses={QUERIES[0]: [server_error(), ("second try", ["https://example.com"])]},
        )
        batch = asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(QUERIES[:1]))

        result = batch.all_results[0]
        assert result.ok
        assert result.answer_text == "second try"
        assert result.attempts == 2
        assert len(adapter.calls) == 2
        assert len(delays) == 1

    def test_rate_limit_is_retried(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        limited = EngineError("429", status=CallStatus.RATE_LIMITED, failure=FailureKind.RATE_LIMIT)
        adapter = fake_adapter("chatgpt", default=limited, max_retries=2)
        batch = asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(QUERIES[:1]))

        assert batch.all_results[0].status == CallStatus.RATE_LIMITED
        assert batch.all_results[0].attempts == 3

    def test_auth_failure_is_final(self, fake_adapter, no_sleep):
        sleep, delays = no_sleep
        adapter = fake_adapter("chatgpt", default=auth_error())
        batch = asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(QUERIES[:1]))

        result = batch.all_results[0]
        assert result.failure == FailureKind.AUTH
        assert result.attempts == 1
        assert len(adapter.calls) == 1
        assert delays == []

    def test_malformed_is_final(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        malformed = EngineError("bad json", status=CallStatus.ERROR, failure=FailureKind.MALFORMED)
        adapter = fake_adapter("perplexity", default=malformed)
        asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(QUERIES[:1]))
        assert len(adapter.calls) == 1

    def test_no_retries_configured(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapter = fake_adapter("perplexity", default=server_error(), max_retries=0)
        asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(QUERIES[:1]))
        assert len(adapter.calls) == 1

    def test_backoff_delay(self, fake_adapter):
        config = DispatchConfig(retry=RetryConfig(base_delay=1.0, max_delay=5.0, jitter_min=1.0, jitter_max=1.0))
        dispatcher = QueryDispatcher([fake_adapter("perplexity")], config, rng=random.Random(7))
        assert dispatcher.backoff_delay(0) == 1.0
        assert dispatcher.backoff_delay(1) == 2.0
        assert dispatcher.backoff_delay(5) == 5.0

    def test_backoff_jitter_range(self, fake_adapter):
        dispatcher = QueryDispatcher([fake_adapter("perplexity")], rng=random.Random(3))
        for _ in range(20):
            assert 0.5 <= dispatcher.backoff_delay(0) <= 1.5


# =============================================================================
# TIMEOUTS AND DEADLINE
# =============================================================================

class TestTimeouts:
    """Test per-call timeout and batch deadline."""

    def test_per_call_timeout(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        slow = fake_adapter("claude", default=("late", None), delay=1.0, per_call_timeout=0.05, max_retries=0)
        batch = asyncio.run(QueryDispatcher([slow], sleep=sleep).dispatch(QUERIES[:1], deadline=2.0))

        result = batch.all_results[0]
        assert result.status == CallStatus.TIMEOUT
        assert result.failure == FailureKind.TIMEOUT
        assert batch.status == BatchStatus.FAILED

    def test_deadline_cancels_pending_calls(self, fake_adapter, no_sleep):
        """Completed results survive; calls still running at the deadline become timeouts."""
        sleep, _ = no_sleep
        fast = fake_adapter("perplexity", default=("fast", ["https://example.com"]), per_call_timeout=0.2)
        slow = fake_adapter("claude", default=("late", None), delay=5.0, per_call_timeout=0.1, max_retries=5)
        dispatcher = QueryDispatcher([fast, slow], sleep=sleep)

        batch = asyncio.run(dispatcher.dispatch(QUERIES, deadline=0.35))

        assert batch.status == BatchStatus.PARTIALLY_COMPLETED
        assert batch.cancelled_calls == 2
        kept = [r for r in batch.all_results if r.engine_id == "perplexity"]
        assert len(kept) == 2
        assert all(r.ok and r.answer_text == "fast" for r in kept)
        cancelled = [r for r in batch.all_results if r.engine_id == "claude"]
        assert len(cancelled) == 2
        assert all(r.status == CallStatus.TIMEOUT for r in cancelled)
        assert all(r.error_message == DEADLINE_CANCEL_MESSAGE for r in cancelled)
        assert all(r.attempts >= 1 for r in cancelled)

    def test_per_call_timeout_must_be_shorter_than_deadline(self, fake_adapter):
        dispatcher = QueryDispatcher([fake_adapter("perplexity", per_call_timeout=30)])
        with pytest.raises(ConfigurationError):
            asyncio.run(dispatcher.dispatch(QUERIES, deadline=30))

    def test_non_positive_deadline_rejected(self, fake_adapter):
        dispatcher = QueryDispatcher([fake_adapter("perplexity")])
        with pytest.raises(ConfigurationError):
            dispatcher.validate_deadline(0)

    def test_no_deadline(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        config = DispatchConfig(batch_deadline=None)
        batch = asyncio.run(QueryDispatcher([fake_adapter("perplexity")], config, sleep=sleep).dispatch(QUERIES))
        assert batch.status == BatchStatus.COMPLETED
        assert batch.deadline is None


# =============================================================================
# CONCURRENCY
# =============================================================================

class TestConcurrency:
    """Test concurrency bounds."""

    def test_engine_concurrency_limit(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapter = fake_adapter("perplexity", delay=0.02, max_concurrency=1)
        queries = [f"query {i}" for i in range(5)]
        batch = asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(queries))

        assert batch.ok_count == 5
        assert adapter.peak_in_flight == 1

    def test_engine_concurrency_allows_parallel_calls(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapter = fake_adapter("perplexity", delay=0.05, max_concurrency=3)
        queries = [f"query {i}" for i in range(6)]
        asyncio.run(QueryDispatcher([adapter], sleep=sleep).dispatch(queries))
        assert 1 < adapter.peak_in_flight <= 3

    def test_global_worker_limit(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        adapter = fake_adapter("perplexity", delay=0.02, max_concurrency=5)
        config = DispatchConfig(max_workers=1)
        asyncio.run(QueryDispatcher([adapter], config, sleep=sleep).dispatch(["a", "b", "c"]))
        assert adapter.peak_in_flight == 1


# =============================================================================
# CONFIGURATION AND STATE
# =============================================================================

class TestConfiguration:
    """Test dispatcher configuration errors."""

    def test_requires_adapters(self):
        with pytest.raises(ConfigurationError):
            QueryDispatcher([])

    def test_duplicate_engine_ids(self, fake_adapter):
        with pytest.raises(ConfigurationError):
            QueryDispatcher([fake_adapter("perplexity"), fake_adapter("perplexity")])

    def test_max_workers_must_be_positive(self, fake_adapter):
        with pytest.raises(ConfigurationError):
            QueryDispatcher([fake_adapter("perplexity")], DispatchConfig(max_workers=0))

    def test_empty_query_list(self, fake_adapter):
        with pytest.raises(ConfigurationError):
            asyncio.run(QueryDispatcher([fake_adapter("perplexity")]).dispatch([]))

    def test_blank_query_rejected(self):
        with pytest.raises(ConfigurationError):
            normalize_queries(["best crm", "   "])

    def test_duplicate_queries_dropped(self):
        queries = normalize_queries(["best crm", Query("best crm ", topic="x"), "crm pricing"])
        assert [q.text for q in queries] == ["best crm", "crm pricing"]


class TestBatchState:
    """Test the batch state machine."""

    def test_record_requires_dispatched(self, make_result):
        batch = DispatchBatch(queries=[Query("best crm for startups")], engine_ids=["perplexity"])
        with pytest.raises(RuntimeError):
            batch.record(make_result("perplexity"))

    def test_cannot_finish_twice(self, make_result):
        batch = DispatchBatch(queries=[Query("best crm for startups")], engine_ids=["perplexity"])
        batch.mark_dispatched()
        batch.record(make_result("perplexity"))
        assert batch.finish() == BatchStatus.COMPLETED
        with pytest.raises(RuntimeError):
            batch.finish()

    def test_to_dict(self, fake_adapter, no_sleep):
        sleep, _ = no_sleep
        batch = asyncio.run(QueryDispatcher([fake_adapter("perplexity")], sleep=sleep).dispatch(QUERIES[:1]))
        data = batch.to_dict()
        assert data["status"] == "completed"
        assert data["call_count"] == 1
        assert data["results"][0]["engine_id"] == "perplexity"
