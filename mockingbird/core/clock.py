from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...

    def utcnow(self) -> datetime: ...

    async def sleep_ms(self, ms: int) -> None: ...


class RealClock:
    def now_ms(self) -> int:
        return int(time.monotonic() * 1000)

    def utcnow(self) -> datetime:
        return datetime.utcnow()

    async def sleep_ms(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000.0)


class FakeClock:
    """
    Deterministic clock for tests.

    Time only moves through advance(); sleepers wake once their deadline
    has been reached. Every requested sleep is recorded in `sleeps`.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now_ms = 0
        self._epoch = start or datetime(2024, 1, 1)
        self._sleepers: list[tuple[int, asyncio.Future[None]]] = []
        self.sleeps: list[int] = []

    def now_ms(self) -> int:
        return self._now_ms

    def utcnow(self) -> datetime:
        return self._epoch + timedelta(milliseconds=self._now_ms)

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, fut in self._sleepers if not fut.done())

    async def sleep_ms(self, ms: int) -> None:
        self.sleeps.append(ms)
        if ms <= 0:
            await asyncio.sleep(0)
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self._now_ms + ms, fut))
        await fut

    async def advance(self, ms: int) -> None:
        if ms < 0:
            raise ValueError("FakeClock.advance(ms): ms must be >= 0")
        # Let tasks scheduled in this tick register their sleepers first.
        await asyncio.sleep(0)
        self._now_ms += ms
        remaining = []
        for wake_at, fut in self._sleepers:
            if fut.done():
                continue
            if wake_at <= self._now_ms:
                fut.set_result(None)
            else:
                remaining.append((wake_at, fut))
        self._sleepers = remaining
        for _ in range(5):
            await asyncio.sleep(0)

    async def run_until_idle(self, step_ms: int = 1000, limit: int = 1000) -> None:
        """Advance in steps while anyone is sleeping."""
        for _ in range(limit):
            await asyncio.sleep(0)
            if not self.pending_sleepers:
                return
            await self.advance(step_ms)
