from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from mockingbird.core.database import get_db
from mockingbird.core.identity import CurrentUser, get_current_user, require_user
from mockingbird.schemas.entity import EntityResponse
from mockingbird.schemas.session import SessionResponse, SessionStartRequest, SessionStarted
from mockingbird.services.access_service import require_access
from mockingbird.services.entity_service import get_entity
from mockingbird.services.organization_service import require_membership
from mockingbird.services.session_service import (
    create_session,
    get_latest_session,
    get_session,
    list_sessions,
)

router = APIRouter()

ENTITY_PATH = "/organizations/{org_id}/entities/{entity_id}"


def _started(session) -> dict:
    metadata = session.session_metadata or {}
    return SessionStarted(
        sessionId=session.session_uuid,
        type=metadata.get("type") or "unknown",
        metadata=metadata,
    ).model_dump()


@router.post(f"{ENTITY_PATH}/sessions/start", status_code=201)
async def start_entity_session(
    org_id: str,
    entity_id: int,
    body: SessionStartRequest,
    db: Session = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_current_user),
):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, body.token)

    session = create_session(
        db,
        entity_id=entity.id,
        org_id=org_id,
        user_id=user.id if user else None,
        token=body.token,
        metadata=body.metadata,
    )
    return {"success": True, "data": _started(session)}


@router.get(f"{ENTITY_PATH}/sessions/start")
async def get_latest_entity_session(
    org_id: str,
    entity_id: int,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_current_user),
):
    entity = get_entity(db, org_id, entity_id)
    require_access(db, entity, token)

    session = get_latest_session(
        db,
        entity_id=entity.id,
        user_id=user.id if user else None,
        token=token,
    )
    return {"success": True, "data": _started(session)}


@router.get(f"{ENTITY_PATH}/sessions")
async def list_entity_sessions(
    org_id: str,
    entity_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    require_membership(db, org_id, user)
    entity = get_entity(db, org_id, entity_id)

    sessions = list_sessions(db, org_id, entity.id)
    return {
        "success": True,
        "data": [SessionResponse.model_validate(s).model_dump(mode="json") for s in sessions],
    }


@router.get(f"{ENTITY_PATH}/sessions/{{session_id}}")
async def get_entity_session(
    org_id: str,
    entity_id: int,
    session_id: str,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
):
    entity = get_entity(db, org_id, entity_id)
    decision = require_access(db, entity, token)
    session = get_session(db, org_id, entity_id, session_id)

    return {
        "success": True,
        "data": {
            **SessionResponse.model_validate(session).model_dump(mode="json"),
            "entity": EntityResponse.model_validate(entity).model_dump(mode="json"),
            "hasValidToken": decision.allowed,
        },
    }
