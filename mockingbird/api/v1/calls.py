import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from mockingbird.api.deps import (
    get_agent_factory,
    get_call_registry,
    get_clock,
    get_review_cycles,
    get_scoring_client,
    get_settings,
)
from mockingbird.core.clock import Clock
from mockingbird.core.config import Settings
from mockingbird.core.database import get_db, session_scope
from mockingbird.core.errors import InvalidTransition, NotFound
from mockingbird.schemas.call import CallEventIn, CallLaunchResponse, CallSnapshot
from mockingbird.services.access_service import require_access
from mockingbird.services.call_orchestrator import CallOrchestrator, CallOutcome, CallRegistry
from mockingbird.services.entity_service import get_entity
from mockingbird.services.review_retriever import (
    RetryPolicy,
    ReviewCycle,
    ReviewCycles,
    ReviewRetriever,
    ReviewSource,
)
from mockingbird.services.session_service import (
    TERMINAL_STATUSES,
    CallDetails,
    fail_session,
    finalize_session,
    get_session,
    update_status,
)
from mockingbird.services.voice_agent import AgentFactory, RelayVoiceAgent, resolve_agent_launch
from mockingbird.utils.enums import CallState, SessionStatus

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_PATH = "/organizations/{org_id}/entities/{entity_id}/sessions/{session_id}"


def review_url(org_id: str, entity_id: int, session_id: str, token: Optional[str]) -> str:
    url = f"/{org_id}/entities/{entity_id}/sessions/{session_id}/review"
    return f"{url}?{urlencode({'token': token})}" if token else url


async def mark_call_started(session_uuid: str) -> None:
    with session_scope() as db:
        update_status(db, session_uuid, SessionStatus.IN_PROGRESS)


async def finalize_call(outcome: CallOutcome) -> None:
    details = CallDetails(
        transcript=outcome.transcript,
        started_at=outcome.started_at,
        ended_at=outcome.ended_at,
        ended_reason=outcome.ended_reason,
    )
    with session_scope() as db:
        try:
            finalize_session(db, outcome.session_uuid, outcome.status, details)
        except Exception as exc:
            logger.error("Failed to finalize session %s: %s", outcome.session_uuid, exc)
            fail_session(db, outcome.session_uuid, details, str(exc) or exc.__class__.__name__)
            raise


def review_handoff(
    cycles: ReviewCycles,
    source: ReviewSource,
    policy: RetryPolicy,
    clock: Clock,
    entity_id: int,
    org_id: str,
):
    async def handoff(outcome: CallOutcome) -> None:
        retriever = ReviewRetriever(source, policy, clock)
        await cycles.start(ReviewCycle(retriever, outcome.session_uuid, entity_id, org_id))

    return handoff


def _live_call(registry: CallRegistry, session_uuid: str) -> CallOrchestrator:
    call = registry.get(session_uuid)
    if call is None:
        raise NotFound("No call for this session")
    return call


@router.post(f"{SESSION_PATH}/call/start")
async def start_call(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
    registry: CallRegistry = Depends(get_call_registry),
    cycles: ReviewCycles = Depends(get_review_cycles),
    source: ReviewSource = Depends(get_scoring_client),
    agent_factory: AgentFactory = Depends(get_agent_factory),
):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, token)
    session = get_session(db, org_id, entity_id, session_id)

    if SessionStatus(session.status) in TERMINAL_STATUSES:
        raise InvalidTransition(f"Session is already {session.status}")

    launch = resolve_agent_launch(entity, session.session_uuid)
    call = CallOrchestrator(
        session.session_uuid,
        launch,
        agent_factory,
        on_call_started=mark_call_started,
        on_finalize=finalize_call,
        on_handoff=review_handoff(
            cycles,
            source,
            RetryPolicy.from_settings(settings, max_retries=settings.REVIEW_HANDOFF_MAX_RETRIES),
            clock,
            entity.id,
            org_id,
        ),
        clock=clock,
    )
    await registry.launch(call)
    logger.info("Call launched for session %s with agent %s", session.session_uuid, launch.agent_name)

    return {
        "success": True,
        "data": CallLaunchResponse(
            state=call.state,
            assistantId=launch.agent_id,
            publicKey=launch.api_key,
            assistantOverrides=launch.overrides,
        ).model_dump(mode="json"),
    }


@router.post(f"{SESSION_PATH}/call/events")
async def relay_call_event(
    org_id: str,
    entity_id: int,
    session_id: str,
    event: CallEventIn,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    registry: CallRegistry = Depends(get_call_registry),
):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, token)
    get_session(db, org_id, entity_id, session_id)

    call = _live_call(registry, session_id)
    accepted = False
    if isinstance(call.agent, RelayVoiceAgent):
        accepted = call.agent.emit(event.type, event.payload)
        await call.drain()

    return {
        "success": True,
        "data": {
            "accepted": accepted,
            **CallSnapshot(**call.snapshot()).model_dump(mode="json"),
        },
    }


@router.post(f"{SESSION_PATH}/call/end")
async def end_call(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    registry: CallRegistry = Depends(get_call_registry),
):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, token)
    session = get_session(db, org_id, entity_id, session_id)

    call = registry.get(session_id)
    if call is None and SessionStatus(session.status) not in TERMINAL_STATUSES:
        raise NotFound("No call for this session")

    # A call that already ended has left the registry
    ended = await call.end() if call is not None else False
    state = call.state if call is not None else CallState.ENDED

    return {
        "success": True,
        "data": {
            "ended": ended,
            "state": state.value,
            "reviewUrl": review_url(org_id, entity_id, session_id, token),
        },
    }


@router.get(f"{SESSION_PATH}/call")
async def get_call(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    registry: CallRegistry = Depends(get_call_registry),
):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, token)
    get_session(db, org_id, entity_id, session_id)

    call = _live_call(registry, session_id)
    return {"success": True, "data": CallSnapshot(**call.snapshot()).model_dump(mode="json")}
