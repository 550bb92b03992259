from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from mockingbird.core.clock import Clock, RealClock
from mockingbird.core.errors import ExhaustedRetries, TransientError
from mockingbird.schemas.review import Review
from mockingbird.utils.enums import ReviewState
from mockingbird.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

PROGRESS_STEP = 5
PROGRESS_INTERVAL_MS = 500
PROGRESS_CAP = 95
DEFAULT_RETENTION_MS = 300_000


class ReviewSource(Protocol):
    async def fetch_review(self, session_uuid: str, entity_id: int, org_id: str) -> Review: ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class RetryPolicy:
    base_delay_ms: int = 2000
    backoff_factor: int = 2
    max_delay_ms: int = 10000
    max_retries: int = 10

    def next_delay(self, attempt: int) -> int:
        """Delay before retry `attempt` (0-indexed)."""
        return int(min(self.base_delay_ms * self.backoff_factor ** attempt, self.max_delay_ms))

    @classmethod
    def from_settings(cls, settings, max_retries: Optional[int] = None) -> "RetryPolicy":
        return cls(
            base_delay_ms=settings.REVIEW_BASE_DELAY_MS,
            backoff_factor=settings.REVIEW_BACKOFF_FACTOR,
            max_delay_ms=settings.REVIEW_MAX_DELAY_MS,
            max_retries=settings.REVIEW_MAX_RETRIES if max_retries is None else max_retries,
        )


@dataclass(frozen=True)
class RetrievalProgress:
    attempt: int
    elapsed_ms: int
    next_delay_ms: Optional[int]
    last_error: Optional[str]


def progress_percent(elapsed_ms: int, done: bool = False) -> int:
    if done:
        return 100
    return min(PROGRESS_CAP, (max(elapsed_ms, 0) // PROGRESS_INTERVAL_MS) * PROGRESS_STEP)


class ReviewRetriever:
    """Polls the scoring service with bounded exponential backoff."""

    def __init__(self, source: ReviewSource, policy: RetryPolicy, clock: Optional[Clock] = None):
        self.source = source
        self.policy = policy
        self.clock = clock or RealClock()

    async def retrieve(
        self,
        session_uuid: str,
        entity_id: int,
        org_id: str,
        on_progress: Optional[Callable[[RetrievalProgress], None]] = None,
    ) -> Review:
        started_ms = self.clock.now_ms()
        attempt = 0
        while True:
            if on_progress is not None:
                on_progress(RetrievalProgress(attempt + 1, self.clock.now_ms() - started_ms, None, None))
            try:
                review = await self.source.fetch_review(session_uuid, entity_id, org_id)
                logger.info("Fetched review for session %s on attempt %d", session_uuid, attempt + 1)
                return review
            except TransientError as exc:
                last_error = exc.message

            if attempt >= self.policy.max_retries:
                logger.warning(
                    "Max retries reached for session %s review, giving up: %s", session_uuid, last_error
                )
                raise ExhaustedRetries(last_error, attempts=attempt + 1)

            delay = self.policy.next_delay(attempt)
            logger.info(
                "Review attempt %d for session %s failed (%s). Retrying in %dms",
                attempt + 1, session_uuid, last_error, delay,
            )
            if on_progress is not None:
                on_progress(
                    RetrievalProgress(attempt + 1, self.clock.now_ms() - started_ms, delay, last_error)
                )
            await self.clock.sleep_ms(delay)
            attempt += 1


class ReviewCycle:
    """
    One background retrieval for one session.

    After cancel() the cycle makes no further calls and its snapshot no
    longer changes, even if a response was already on the way.
    """

    def __init__(
        self,
        retriever: ReviewRetriever,
        session_uuid: str,
        entity_id: int,
        org_id: str,
    ):
        self.retriever = retriever
        self.session_uuid = session_uuid
        self.entity_id = entity_id
        self.org_id = org_id

        self.state = ReviewState.PENDING
        self.attempt = 0
        self.next_delay_ms: Optional[int] = None
        self.review: Optional[Review] = None
        self.error: Optional[str] = None

        self._clock = retriever.clock
        self._started_ms = self._clock.now_ms()
        self._finished_ms: Optional[int] = None
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.state is not ReviewState.PENDING

    @property
    def idle_ms(self) -> Optional[int]:
        """Time since the cycle finished, None while it is still pending."""
        if self._finished_ms is None:
            return None
        return self._clock.now_ms() - self._finished_ms

    @property
    def elapsed_ms(self) -> int:
        end = self._finished_ms if self._finished_ms is not None else self._clock.now_ms()
        return end - self._started_ms

    def start(self) -> "ReviewCycle":
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if not self.done:
            self._finish(ReviewState.CANCELLED)
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        logger.info("Cancelled review cycle for session %s", self.session_uuid)

    def snapshot(self) -> dict[str, Any]:
        finished = self.state in (ReviewState.READY, ReviewState.FAILED)
        return {
            "state": self.state,
            "attempt": self.attempt,
            "max_retries": self.retriever.policy.max_retries,
            "elapsed_ms": self.elapsed_ms,
            "progress": progress_percent(self.elapsed_ms, done=finished),
            "next_delay_ms": self.next_delay_ms,
            "review": self.review,
            "error": self.error,
        }

    async def _run(self) -> None:
        try:
            review = await self.retriever.retrieve(
                self.session_uuid, self.entity_id, self.org_id, on_progress=self._on_progress
            )
        except asyncio.CancelledError:
            raise
        except ExhaustedRetries as exc:
            if not self._cancelled:
                self.error = exc.message
                self._finish(ReviewState.FAILED)
        except Exception as exc:
            logger.exception("Review cycle for session %s crashed", self.session_uuid)
            if not self._cancelled:
                self.error = str(exc) or "Failed to retrieve review"
                self._finish(ReviewState.FAILED)
        else:
            if not self._cancelled:
                self.review = review
                self._finish(ReviewState.READY)

    def _on_progress(self, progress: RetrievalProgress) -> None:
        if self._cancelled:
            return
        self.attempt = progress.attempt
        self.next_delay_ms = progress.next_delay_ms
        if progress.last_error is not None:
            self.error = progress.last_error

    def _finish(self, state: ReviewState) -> None:
        self.state = state
        self.next_delay_ms = None
        self._finished_ms = self._clock.now_ms()


class ReviewCycles:
    """
    At most one review cycle per session; starting a new one cancels the old one first.

    Finished cycles stay readable for `retention_ms` after they end and are
    evicted on the next lookup or start after that.
    """

    def __init__(self, retention_ms: int = DEFAULT_RETENTION_MS) -> None:
        self.retention_ms = retention_ms
        self._cycles: dict[str, ReviewCycle] = {}
        self._locks = KeyedLock()

    def __len__(self) -> int:
        return len(self._cycles)

    def get(self, session_uuid: str) -> Optional[ReviewCycle]:
        self.prune()
        return self._cycles.get(session_uuid)

    async def start(self, cycle: ReviewCycle) -> ReviewCycle:
        self.prune()
        async with self._locks.hold(cycle.session_uuid):
            previous = self._cycles.pop(cycle.session_uuid, None)
            if previous is not None:
                await previous.cancel()
            self._cycles[cycle.session_uuid] = cycle
            return cycle.start()

    async def cancel(self, session_uuid: str) -> bool:
        cycle = self._cycles.get(session_uuid)
        if cycle is None:
            return False
        await cycle.cancel()
        return True

    async def cancel_all(self) -> None:
        cycles = list(self._cycles.values())
        self._cycles.clear()
        for cycle in cycles:
            await cycle.cancel()

    def prune(self) -> int:
        expired = [
            session_uuid
            for session_uuid, cycle in self._cycles.items()
            if cycle.idle_ms is not None and cycle.idle_ms >= self.retention_ms
        ]
        for session_uuid in expired:
            del self._cycles[session_uuid]
        return len(expired)
