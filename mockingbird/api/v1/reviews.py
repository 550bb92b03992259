from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from mockingbird.api.deps import get_clock, get_review_cycles, get_scoring_client, get_settings
from mockingbird.core.clock import Clock
from mockingbird.core.config import Settings
from mockingbird.core.database import get_db
from mockingbird.core.errors import NotFound, TransientError
from mockingbird.schemas.review import ReviewCycleResponse
from mockingbird.services.access_service import require_access
from mockingbird.services.entity_service import get_entity
from mockingbird.services.review_retriever import (
    RetryPolicy,
    ReviewCycle,
    ReviewCycles,
    ReviewRetriever,
    ReviewSource,
)
from mockingbird.services.session_service import get_session
from mockingbird.utils.enums import ReviewState

router = APIRouter()

SESSION_PATH = "/organizations/{org_id}/entities/{entity_id}/sessions/{session_id}"


def _authorized_session(db: Session, org_id: str, entity_id: int, session_id: str, token: Optional[str]):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, token)
    return get_session(db, org_id, entity_id, session_id)


def _cycle_response(cycle: ReviewCycle) -> dict:
    return ReviewCycleResponse(**cycle.snapshot()).model_dump(mode="json")


@router.get(f"{SESSION_PATH}/review")
async def get_session_review(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
    cycles: ReviewCycles = Depends(get_review_cycles),
    source: ReviewSource = Depends(get_scoring_client),
):
    """
    One scoring attempt for the session.

    Runs as a single-attempt cycle so it never overlaps another request for
    the same session: a pending cycle is cancelled first, and a cycle that
    already holds a review answers without a new request.
    """
    session = _authorized_session(db, org_id, entity_id, session_id, token)

    current = cycles.get(session.session_uuid)
    if current is not None and current.state is ReviewState.READY:
        return {"success": True, "data": {"review": current.review.model_dump()}}

    retriever = ReviewRetriever(source, RetryPolicy.from_settings(settings, max_retries=0), clock)
    cycle = await cycles.start(
        ReviewCycle(retriever, session.session_uuid, session.entity_id, org_id)
    )
    await cycle.wait()

    if cycle.state is not ReviewState.READY:
        raise TransientError(cycle.error or "No review available")
    return {"success": True, "data": {"review": cycle.review.model_dump()}}


@router.post(f"{SESSION_PATH}/review/poll", status_code=202)
async def start_review_poll(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    max_retries: Optional[int] = Query(default=None, ge=0, le=20),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
    cycles: ReviewCycles = Depends(get_review_cycles),
    source: ReviewSource = Depends(get_scoring_client),
):
    session = _authorized_session(db, org_id, entity_id, session_id, token)

    retriever = ReviewRetriever(source, RetryPolicy.from_settings(settings, max_retries), clock)
    cycle = await cycles.start(
        ReviewCycle(retriever, session.session_uuid, session.entity_id, org_id)
    )
    return {"success": True, "data": _cycle_response(cycle)}


@router.get(f"{SESSION_PATH}/review/poll")
async def get_review_poll(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    cycles: ReviewCycles = Depends(get_review_cycles),
):
    session = _authorized_session(db, org_id, entity_id, session_id, token)

    cycle = cycles.get(session.session_uuid)
    if cycle is None:
        raise NotFound("No review retrieval in progress")
    return {"success": True, "data": _cycle_response(cycle)}


@router.delete(f"{SESSION_PATH}/review/poll")
async def cancel_review_poll(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    cycles: ReviewCycles = Depends(get_review_cycles),
):
    session = _authorized_session(db, org_id, entity_id, session_id, token)

    if not await cycles.cancel(session.session_uuid):
        raise NotFound("No review retrieval in progress")
    return {"success": True, "data": _cycle_response(cycles.get(session.session_uuid))}
