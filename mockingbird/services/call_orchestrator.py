from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from mockingbird.core.clock import Clock, RealClock
from mockingbird.core.errors import AgentUnavailable
from mockingbird.services.transcript import TranscriptAssembler, utterance_from_message
from mockingbird.services.voice_agent import AgentFactory, AgentLaunch, VoiceAgent
from mockingbird.utils.enums import CallEventType, CallState, SessionStatus
from mockingbird.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

USER_ENDED = "user-ended"
CALL_ENDED = "call-ended"


@dataclass(frozen=True)
class CallOutcome:
    session_uuid: str
    status: SessionStatus
    transcript: str
    started_at: Optional[datetime]
    ended_at: datetime
    ended_reason: Optional[str]


@dataclass
class CallUiState:
    mic_ready: bool = False
    speaking: bool = False
    volume: float = 0.0


CallStartedHook = Callable[[str], Awaitable[None]]
OutcomeHook = Callable[[CallOutcome], Awaitable[None]]
ReleaseCallback = Callable[["CallOrchestrator"], None]


class CompletionToken:
    """Single-assignment marker: the first claim wins, every later claim fails."""

    def __init__(self) -> None:
        self._holder: Optional[str] = None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def claimed(self) -> bool:
        return self._holder is not None

    def claim(self, holder: str) -> bool:
        if self._holder is not None:
            return False
        self._holder = holder
        return True


class CallOrchestrator:
    """
    Drives one voice call for one session.

    States move idle -> connecting -> active -> ended. Provider callbacks only
    enqueue events; a single consumer task applies them in arrival order.
    Every terminal path goes through _terminate(), guarded by a
    CompletionToken, so finalization and the review hand-off run once.
    """

    def __init__(
        self,
        session_uuid: str,
        launch: Optional[AgentLaunch],
        agent_factory: AgentFactory,
        *,
        on_call_started: Optional[CallStartedHook] = None,
        on_finalize: Optional[OutcomeHook] = None,
        on_handoff: Optional[OutcomeHook] = None,
        clock: Optional[Clock] = None,
    ):
        self.session_uuid = session_uuid
        self.launch = launch
        self._agent_factory = agent_factory
        self._on_call_started = on_call_started
        self._on_finalize = on_finalize
        self._on_handoff = on_handoff
        self._clock = clock or RealClock()

        self._state = CallState.IDLE
        self._agent: Optional[VoiceAgent] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._completion = CompletionToken()
        self._release_callbacks: list[ReleaseCallback] = []

        self.transcript = TranscriptAssembler()
        self.ui = CallUiState()
        self.started_at: Optional[datetime] = None
        self.ended_reason: Optional[str] = None
        self.failure: Optional[str] = None
        self.outcome: Optional[CallOutcome] = None

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def agent(self) -> Optional[VoiceAgent]:
        return self._agent

    @property
    def completed_by(self) -> Optional[str]:
        return self._completion.holder

    def add_release_callback(self, callback: ReleaseCallback) -> None:
        self._release_callbacks.append(callback)

    async def start(self) -> None:
        if self._state is not CallState.IDLE:
            raise RuntimeError(f"call for session {self.session_uuid} already started")
        if self.launch is None:
            raise AgentUnavailable("No voice agent configured for this entity")

        self._set_state(CallState.CONNECTING)
        try:
            agent = self._agent_factory(self.launch.api_key)
            for event_type in CallEventType:
                agent.on(event_type, partial(self._enqueue, event_type))
            self._agent = agent
            self._consumer = asyncio.create_task(self._run())
            await agent.start(self.launch.agent_id, self.launch.overrides)
        except Exception as exc:
            logger.error("Failed to start voice agent for session %s: %s", self.session_uuid, exc)
            self.failure = str(exc)
            self._completion.claim("start-failed")
            self._set_state(CallState.ENDED)
            self.transcript.close()
            await self._release()
            raise AgentUnavailable(f"Voice agent failed to start: {exc}") from exc

    async def end(self, reason: str = USER_ENDED) -> bool:
        """User "End Session". Returns False when another trigger already ended the call."""
        if self._state is CallState.ACTIVE:
            return await self._terminate("user", SessionStatus.COMPLETED, reason)
        if self._state is CallState.CONNECTING:
            return await self._terminate("user", SessionStatus.CANCELLED, reason)
        return False

    async def close(self) -> None:
        """Release the call without finalizing the session."""
        if self._completion.claim("closed"):
            self._set_state(CallState.ENDED)
            self.transcript.close()
            await self._release()
        consumer = self._consumer
        if consumer is not None and consumer is not asyncio.current_task():
            await asyncio.gather(consumer, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until every event queued so far has been applied."""
        await self._queue.join()

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state,
            "micReady": self.ui.mic_ready,
            "speaking": self.ui.speaking,
            "volume": self.ui.volume,
            "endedReason": self.ended_reason,
            "transcript": [
                {"role": turn.role.value, "lines": turn.lines}
                for turn in self.transcript.turns()
            ],
        }

    def _set_state(self, state: CallState) -> None:
        logger.info("Call %s: %s -> %s", self.session_uuid, self._state.value, state.value)
        self._state = state

    def _enqueue(self, event_type: CallEventType, payload: dict[str, Any]) -> None:
        if self._state is CallState.ENDED:
            return
        self._queue.put_nowait((event_type, payload))

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    break
                await self._dispatch(*item)
            except Exception:
                logger.exception("Error handling call event for session %s", self.session_uuid)
            finally:
                self._queue.task_done()

        # Nothing queued after the stop marker may keep drain() waiting
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def _dispatch(self, event_type: CallEventType, payload: dict[str, Any]) -> None:
        state = self._state
        if state is CallState.ENDED:
            return

        if event_type is CallEventType.CALL_START:
            if state is not CallState.CONNECTING:
                logger.debug("Ignoring call-start in state %s", state.value)
                return
            self.started_at = self._clock.utcnow()
            self.ui.mic_ready = True
            self._set_state(CallState.ACTIVE)
            if self._on_call_started is not None:
                await self._on_call_started(self.session_uuid)

        elif event_type is CallEventType.MESSAGE:
            if state is not CallState.ACTIVE:
                return
            utterance = utterance_from_message(payload, self._clock)
            if utterance is not None:
                self.transcript.append(utterance)

        elif event_type is CallEventType.VOLUME_LEVEL:
            if state is CallState.ACTIVE:
                self.ui.volume = float(payload.get("level") or 0.0)

        elif event_type is CallEventType.SPEECH_START:
            self.ui.speaking = True

        elif event_type is CallEventType.SPEECH_END:
            self.ui.speaking = False

        elif event_type is CallEventType.CALL_END:
            if state is not CallState.ACTIVE:
                # stray call-end before call-start
                logger.debug("Ignoring call-end in state %s", state.value)
                return
            await self._terminate("agent", SessionStatus.COMPLETED, payload.get("reason") or CALL_ENDED)

        elif event_type is CallEventType.ERROR:
            cause = str(payload.get("error") or payload.get("message") or "unknown error")
            if state is CallState.ACTIVE:
                await self._terminate("error", SessionStatus.COMPLETED, cause)
            elif state is CallState.CONNECTING:
                self.failure = cause
                await self._terminate("error", SessionStatus.CANCELLED, cause)

    async def _terminate(self, trigger: str, status: SessionStatus, reason: str) -> bool:
        if not self._completion.claim(trigger):
            logger.debug("Call %s already ended by %s", self.session_uuid, self._completion.holder)
            return False

        self._set_state(CallState.ENDED)
        self.ended_reason = reason
        ended_at = self._clock.utcnow()
        transcript = self.transcript.close()
        await self._release()

        outcome = CallOutcome(
            session_uuid=self.session_uuid,
            status=status,
            transcript=transcript,
            started_at=self.started_at,
            ended_at=ended_at,
            ended_reason=reason,
        )
        self.outcome = outcome
        logger.info("Call %s ended by %s (%s)", self.session_uuid, trigger, reason)

        if self._on_finalize is not None:
            try:
                await self._on_finalize(outcome)
            except Exception as exc:
                # Session was not finalized; no review for it
                logger.exception("Failed to finalize session %s", self.session_uuid)
                self.failure = str(exc) or exc.__class__.__name__
                return True
        if status is SessionStatus.COMPLETED and self._on_handoff is not None:
            await self._on_handoff(outcome)
        return True

    async def _release(self) -> None:
        agent, self._agent = self._agent, None
        if agent is not None:
            try:
                await agent.stop()
            except Exception:
                logger.exception("Failed to stop voice agent for session %s", self.session_uuid)
        if self._consumer is not None:
            self._queue.put_nowait(None)

        callbacks, self._release_callbacks = self._release_callbacks, []
        for callback in callbacks:
            callback(self)


class CallRegistry:
    """
    Holds at most one live call per session; a new launch stops the old call first.

    A call leaves the registry as soon as it releases its agent, so ended
    calls are not kept around.
    """

    def __init__(self) -> None:
        self._calls: dict[str, CallOrchestrator] = {}
        self._locks = KeyedLock()

    def __len__(self) -> int:
        return len(self._calls)

    def get(self, session_uuid: str) -> Optional[CallOrchestrator]:
        return self._calls.get(session_uuid)

    async def launch(self, orchestrator: CallOrchestrator) -> CallOrchestrator:
        async with self._locks.hold(orchestrator.session_uuid):
            previous = self._calls.pop(orchestrator.session_uuid, None)
            if previous is not None:
                logger.info("Replacing call for session %s", orchestrator.session_uuid)
                await previous.close()

            orchestrator.add_release_callback(self._discard)
            await orchestrator.start()
            if orchestrator.state is not CallState.ENDED:
                self._calls[orchestrator.session_uuid] = orchestrator
            return orchestrator

    async def close_all(self) -> None:
        calls = list(self._calls.values())
        self._calls.clear()
        for call in calls:
            await call.close()

    def _discard(self, call: CallOrchestrator) -> None:
        if self._calls.get(call.session_uuid) is call:
            del self._calls[call.session_uuid]
