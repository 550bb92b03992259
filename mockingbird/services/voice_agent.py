from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from mockingbird.core.errors import AgentUnavailable
from mockingbird.models.entity import Entity
from mockingbird.utils.enums import CallEventType, EntityType

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], None]


class VoiceAgent(Protocol):
    def on(self, event: CallEventType, handler: EventHandler) -> None: ...

    async def start(self, agent_id: str, overrides: dict[str, Any]) -> None: ...

    async def stop(self) -> None: ...


AgentFactory = Callable[[str], VoiceAgent]


@dataclass(frozen=True)
class AgentLaunch:
    agent_id: str
    api_key: str
    agent_name: str
    overrides: dict[str, Any]


def build_agent_overrides(entity: Entity, session_uuid: str) -> dict[str, Any]:
    variables: dict[str, Any] = {
        "entity_title": entity.title,
        "entity_type": entity.type,
    }
    if entity.type == EntityType.INTERVIEW.value and entity.interview:
        variables.update(
            interview_domain=entity.interview.domain,
            interview_duration=entity.interview.duration,
            interview_seniority=entity.interview.seniority,
            interview_keyskills=entity.interview.key_skills,
        )
    elif entity.type == EntityType.TRAINING.value and entity.training:
        variables.update(
            training_category=entity.training.category,
            training_difficulty=entity.training.difficulty_level,
            training_objectives=entity.training.learning_objectives,
            training_prerequisites=entity.training.prerequisites,
            training_estimated_time=entity.training.estimated_completion_time,
        )

    return {
        "metadata": {
            "entityId": entity.id,
            "session_id": session_uuid,
            "vapi_agent_name": entity.voice_agent.name if entity.voice_agent else None,
        },
        "variableValues": variables,
    }


def resolve_agent_launch(entity: Entity, session_uuid: str) -> AgentLaunch:
    agent = entity.voice_agent
    if agent is None:
        raise AgentUnavailable("No voice agent configured for this entity")
    return AgentLaunch(
        agent_id=agent.agent_id,
        api_key=agent.api_key,
        agent_name=agent.name,
        overrides=build_agent_overrides(entity, session_uuid),
    )


class RelayVoiceAgent:
    """
    Server-side stand-in for the provider's browser SDK.

    The browser holds the real audio call and relays each provider event
    to the API, which feeds it through emit(). start() only records the
    launch so the API can hand it back to the client.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key
        self.agent_id: Optional[str] = None
        self.overrides: dict[str, Any] = {}
        self.started = False
        self.stopped = False
        self._handlers: dict[CallEventType, list[EventHandler]] = defaultdict(list)

    def on(self, event: CallEventType, handler: EventHandler) -> None:
        self._handlers[CallEventType(event)].append(handler)

    async def start(self, agent_id: str, overrides: dict[str, Any]) -> None:
        if self.stopped:
            raise RuntimeError("agent already stopped")
        self.agent_id = agent_id
        self.overrides = overrides
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    def emit(self, event: CallEventType, payload: Optional[dict[str, Any]] = None) -> bool:
        if not self.started or self.stopped:
            logger.debug("Dropping %s event for inactive relay agent", event)
            return False
        for handler in self._handlers.get(CallEventType(event), []):
            handler(payload or {})
        return True
