from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

from mockingbird.core.errors import TransientError
from mockingbird.schemas.review import Review
from mockingbird.services.voice_agent import AgentLaunch, RelayVoiceAgent


def sample_review(score: float = 82.0) -> Review:
    return Review(
        overall_score=score,
        assessment_label="Strong",
        recommendation="Hire",
        communication=8,
        technical=9,
        problem_solving=8,
        experience=7,
        summary="Clear answers with solid depth.",
    )


Outcome = Union[Review, Exception]


class FakeScoringSource:
    """Replays outcomes in order; the last one repeats once the script runs out."""

    def __init__(self, outcomes: list[Outcome]):
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, int, str]] = []
        self.closed = False

    async def fetch_review(self, session_uuid: str, entity_id: int, org_id: str) -> Review:
        self.calls.append((session_uuid, entity_id, org_id))
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


def failing(times: int, then: Optional[Review] = None) -> FakeScoringSource:
    outcomes: list[Outcome] = [TransientError("Review not ready") for _ in range(times)]
    if then is not None:
        outcomes.append(then)
    return FakeScoringSource(outcomes)


class BlockingScoringSource:
    """
    Holds requests open until `release` is set.

    Only the first `blocked_calls` requests block when it is given; later ones
    answer at once. `max_in_flight` records the most requests open together.
    """

    def __init__(self, blocked_calls: Optional[int] = None) -> None:
        self.release = asyncio.Event()
        self.blocked_calls = blocked_calls
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_review(self, session_uuid: str, entity_id: int, org_id: str) -> Review:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.blocked_calls is None or self.calls <= self.blocked_calls:
                await self.release.wait()
            return sample_review()
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        return


class CountingAgent(RelayVoiceAgent):
    instances: list["CountingAgent"] = []

    def __init__(self, api_key: str):
        super().__init__(api_key)
        self.stop_calls = 0
        CountingAgent.instances.append(self)

    async def stop(self) -> None:
        self.stop_calls += 1
        await super().stop()


class BrokenAgent(RelayVoiceAgent):
    async def start(self, agent_id: str, overrides: dict[str, Any]) -> None:
        raise ConnectionError("microphone permission denied")


def agent_launch() -> AgentLaunch:
    return AgentLaunch(
        agent_id="assistant-123",
        api_key="public-key-abc",
        agent_name="Interviewer",
        overrides={"metadata": {}, "variableValues": {}},
    )


def final(role: str, text: str) -> dict[str, Any]:
    return {"type": "transcript", "transcriptType": "final", "role": role, "transcript": text}


def partial(role: str, text: str) -> dict[str, Any]:
    return {"type": "transcript", "transcriptType": "partial", "role": role, "transcript": text}
