from __future__ import annotations

import asyncio

import pytest

from mockingbird.core.clock import FakeClock
from mockingbird.core.errors import ExhaustedRetries
from mockingbird.services.review_retriever import (
    RetryPolicy,
    ReviewCycle,
    ReviewCycles,
    ReviewRetriever,
    progress_percent,
)
from mockingbird.utils.enums import ReviewState

from tests.harness.fakes import BlockingScoringSource, failing, sample_review


def test_next_delay_doubles_up_to_the_cap() -> None:
    policy = RetryPolicy()
    assert [policy.next_delay(n) for n in range(5)] == [2000, 4000, 8000, 10000, 10000]


def test_progress_is_capped_until_done() -> None:
    assert progress_percent(0) == 0
    assert progress_percent(499) == 0
    assert progress_percent(1500) == 15
    assert progress_percent(60_000) == 95
    assert progress_percent(100, done=True) == 100


def test_retrieve_succeeds_after_transient_failures() -> None:
    async def _run() -> None:
        clock = FakeClock()
        source = failing(3, then=sample_review(91.0))
        retriever = ReviewRetriever(source, RetryPolicy(), clock)

        task = asyncio.create_task(retriever.retrieve("s-1", 7, "org1"))
        await clock.run_until_idle()
        review = await task

        assert review.overall_score == 91.0
        assert len(source.calls) == 4
        assert source.calls[0] == ("s-1", 7, "org1")
        assert clock.sleeps == [2000, 4000, 8000]

    asyncio.run(_run())


@pytest.mark.parametrize("max_retries, expected_calls", [(10, 11), (5, 6), (0, 1)])
def test_retrieve_gives_up_after_max_retries(max_retries, expected_calls) -> None:
    async def _run() -> None:
        clock = FakeClock()
        source = failing(1)
        retriever = ReviewRetriever(source, RetryPolicy(max_retries=max_retries), clock)

        task = asyncio.create_task(retriever.retrieve("s-1", 7, "org1"))
        await clock.run_until_idle()

        with pytest.raises(ExhaustedRetries) as exc_info:
            await task
        assert exc_info.value.attempts == expected_calls
        assert exc_info.value.message == "Review not ready"
        assert len(source.calls) == expected_calls
        assert len(clock.sleeps) == expected_calls - 1

    asyncio.run(_run())


def test_cycle_reports_ready_with_full_progress() -> None:
    async def _run() -> None:
        clock = FakeClock()
        retriever = ReviewRetriever(failing(1, then=sample_review()), RetryPolicy(), clock)
        cycle = ReviewCycle(retriever, "s-1", 7, "org1").start()

        await clock.run_until_idle()
        await cycle.wait()

        snapshot = cycle.snapshot()
        assert snapshot["state"] is ReviewState.READY
        assert snapshot["attempt"] == 2
        assert snapshot["progress"] == 100
        assert snapshot["review"].overall_score == 82.0
        assert snapshot["next_delay_ms"] is None

    asyncio.run(_run())


def test_cycle_reports_failure_after_exhausting_retries() -> None:
    async def _run() -> None:
        clock = FakeClock()
        retriever = ReviewRetriever(failing(1), RetryPolicy(max_retries=2), clock)
        cycle = ReviewCycle(retriever, "s-1", 7, "org1").start()

        await clock.run_until_idle()
        await cycle.wait()

        assert cycle.state is ReviewState.FAILED
        assert cycle.error == "Review not ready"
        assert cycle.snapshot()["progress"] == 100

    asyncio.run(_run())


def test_cancel_stops_further_calls_and_freezes_snapshot() -> None:
    async def _run() -> None:
        clock = FakeClock()
        source = failing(1)
        retriever = ReviewRetriever(source, RetryPolicy(), clock)
        cycle = ReviewCycle(retriever, "s-1", 7, "org1").start()

        await clock.advance(0)
        await clock.advance(2000)
        assert len(source.calls) == 2

        await cycle.cancel()
        frozen = cycle.snapshot()
        await clock.advance(60_000)

        assert len(source.calls) == 2
        assert cycle.state is ReviewState.CANCELLED
        assert cycle.snapshot() == frozen

    asyncio.run(_run())


def test_cancel_ignores_response_already_in_flight() -> None:
    async def _run() -> None:
        source = BlockingScoringSource()
        retriever = ReviewRetriever(source, RetryPolicy(), FakeClock())
        cycle = ReviewCycle(retriever, "s-1", 7, "org1").start()
        await asyncio.sleep(0)
        assert source.calls == 1

        await cycle.cancel()
        source.release.set()
        await asyncio.sleep(0)

        assert cycle.state is ReviewState.CANCELLED
        assert cycle.review is None

    asyncio.run(_run())


def test_new_cycle_supersedes_previous_one() -> None:
    async def _run() -> None:
        clock = FakeClock()
        cycles = ReviewCycles()
        old_source = failing(1)
        old = await cycles.start(
            ReviewCycle(ReviewRetriever(old_source, RetryPolicy(), clock), "s-1", 7, "org1")
        )
        await clock.advance(0)

        new = await cycles.start(
            ReviewCycle(ReviewRetriever(failing(0, then=sample_review()), RetryPolicy(), clock), "s-1", 7, "org1")
        )
        await new.wait()
        await clock.run_until_idle()

        assert old.state is ReviewState.CANCELLED
        assert len(old_source.calls) == 1
        assert cycles.get("s-1") is new
        assert new.state is ReviewState.READY

        assert await cycles.cancel("missing") is False
        await cycles.cancel_all()
        assert cycles.get("s-1") is None

    asyncio.run(_run())


def test_finished_cycles_are_evicted_after_retention() -> None:
    async def _run() -> None:
        clock = FakeClock()
        cycles = ReviewCycles(retention_ms=60_000)
        for session_uuid in ("s-1", "s-2", "s-3"):
            retriever = ReviewRetriever(failing(0, then=sample_review()), RetryPolicy(), clock)
            cycle = await cycles.start(ReviewCycle(retriever, session_uuid, 7, "org1"))
            await cycle.wait()
        pending = await cycles.start(
            ReviewCycle(ReviewRetriever(failing(1), RetryPolicy(), clock), "s-4", 7, "org1")
        )
        await clock.advance(0)

        await clock.advance(59_999)
        assert cycles.get("s-1").state is ReviewState.READY
        assert len(cycles) == 4

        await clock.advance(1)
        assert cycles.get("s-1") is None
        assert len(cycles) == 1
        assert cycles.get("s-4") is pending

        await cycles.cancel_all()

    asyncio.run(_run())
