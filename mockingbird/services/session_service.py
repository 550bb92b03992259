import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from mockingbird.core.errors import InvalidTransition, NotFound
from mockingbird.models.session import EntitySession
from mockingbird.utils.enums import SessionStatus

logger = logging.getLogger(__name__)

# Current status -> statuses it may move to
VALID_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.CREATED: {SessionStatus.IN_PROGRESS, SessionStatus.CANCELLED},
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.CANCELLED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {SessionStatus.COMPLETED, SessionStatus.CANCELLED}


@dataclass(frozen=True)
class CallDetails:
    transcript: str
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    ended_reason: Optional[str]


def create_session(
    db: Session,
    entity_id: int,
    org_id: str,
    user_id: Optional[str] = None,
    token: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> EntitySession:
    session = EntitySession(
        session_uuid=str(uuid4()),
        entity_id=entity_id,
        org_id=org_id,
        user_id=user_id,
        token=token,
        status=SessionStatus.CREATED.value,
        session_metadata={
            "started_at": datetime.utcnow().isoformat(),
            **(metadata or {}),
        },
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("Created session %s for entity %s (org %s)", session.session_uuid, entity_id, org_id)
    return session


def get_session(db: Session, org_id: str, entity_id: int, session_uuid: str) -> EntitySession:
    session = (
        db.query(EntitySession)
        .filter(
            EntitySession.session_uuid == session_uuid,
            EntitySession.org_id == org_id,
            EntitySession.entity_id == entity_id,
        )
        .first()
    )
    if not session:
        raise NotFound("Session not found")
    return session


def get_latest_session(
    db: Session,
    entity_id: int,
    user_id: Optional[str] = None,
    token: Optional[str] = None,
) -> EntitySession:
    """Most recent session of the caller: by user when signed in, else by invite token."""
    query = db.query(EntitySession).filter(EntitySession.entity_id == entity_id)
    if user_id:
        query = query.filter(EntitySession.user_id == user_id)
    elif token:
        query = query.filter(EntitySession.token == token)
    else:
        raise NotFound("No active session found")

    session = query.order_by(EntitySession.created_at.desc(), EntitySession.id.desc()).first()
    if not session:
        raise NotFound("No active session found")
    return session


def list_sessions(db: Session, org_id: str, entity_id: int) -> list[EntitySession]:
    return (
        db.query(EntitySession)
        .filter(
            EntitySession.org_id == org_id,
            EntitySession.entity_id == entity_id,
        )
        .order_by(EntitySession.created_at.desc(), EntitySession.id.desc())
        .all()
    )


def _allowed_from(status: SessionStatus) -> list[str]:
    return [current.value for current, targets in VALID_TRANSITIONS.items() if status in targets]


def _status_values(status: SessionStatus, now: datetime) -> dict[str, Any]:
    values: dict[str, Any] = {"status": status.value, "updated_at": now}
    if status == SessionStatus.IN_PROGRESS:
        values["started_at"] = now
    elif status in TERMINAL_STATUSES:
        values["ended_at"] = now
    return values


def _call_detail_values(details: CallDetails, now: datetime) -> dict[str, Any]:
    return {
        "call_transcript": details.transcript,
        "call_started_time": details.started_at,
        "call_ended_time": details.ended_at or now,
        "call_ended_reason": details.ended_reason,
        "updated_at": now,
    }


def _by_uuid(db: Session, session_uuid: str):
    return db.query(EntitySession).filter(EntitySession.session_uuid == session_uuid)


def _reload(db: Session, session_uuid: str) -> EntitySession:
    session = _by_uuid(db, session_uuid).first()
    if not session:
        raise NotFound("Session not found")
    db.refresh(session)
    return session


def update_status(db: Session, session_uuid: str, status: SessionStatus) -> EntitySession:
    """
    Compare-and-set status update.

    The UPDATE only matches rows whose current status may move to `status`,
    so duplicate terminal triggers cannot both win. Repeating the current
    status is a no-op; any other move raises InvalidTransition.
    """
    status = SessionStatus(status)
    allowed_from = _allowed_from(status)

    updated = 0
    if allowed_from:
        updated = (
            _by_uuid(db, session_uuid)
            .filter(EntitySession.status.in_(allowed_from))
            .update(_status_values(status, datetime.utcnow()), synchronize_session=False)
        )
        db.commit()

    session = _reload(db, session_uuid)

    if updated:
        logger.info("Session %s -> %s", session_uuid, status.value)
        return session

    if session.status == status.value:
        return session

    raise InvalidTransition(
        f"Session cannot move from {session.status} to {status.value}"
    )


def record_call_details(db: Session, session_uuid: str, details: CallDetails) -> EntitySession:
    updated = (
        _by_uuid(db, session_uuid)
        .filter(EntitySession.call_ended_time.is_(None))
        .update(_call_detail_values(details, datetime.utcnow()), synchronize_session=False)
    )
    db.commit()

    session = _reload(db, session_uuid)
    if not updated:
        raise InvalidTransition("Call details already recorded")
    return session


def finalize_session(
    db: Session,
    session_uuid: str,
    status: SessionStatus,
    details: CallDetails,
) -> EntitySession:
    """Terminal status and call details in one transaction; both land or neither does."""
    status = SessionStatus(status)
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"{status.value} is not a terminal status")

    now = datetime.utcnow()
    moved = recorded = 0
    try:
        moved = (
            _by_uuid(db, session_uuid)
            .filter(EntitySession.status.in_(_allowed_from(status)))
            .update(_status_values(status, now), synchronize_session=False)
        )
        if moved:
            recorded = (
                _by_uuid(db, session_uuid)
                .filter(EntitySession.call_ended_time.is_(None))
                .update(_call_detail_values(details, now), synchronize_session=False)
            )
        if moved and recorded:
            db.commit()
        else:
            db.rollback()
    except Exception:
        db.rollback()
        raise

    session = _reload(db, session_uuid)
    if not moved:
        raise InvalidTransition(
            f"Session cannot move from {session.status} to {status.value}"
        )
    if not recorded:
        raise InvalidTransition("Call details already recorded")

    logger.info("Session %s finalized as %s", session_uuid, status.value)
    return session


def fail_session(
    db: Session,
    session_uuid: str,
    details: CallDetails,
    error: str,
) -> Optional[EntitySession]:
    """
    Park a session whose finalization failed.

    A non-terminal session becomes cancelled with the error kept in its
    metadata; call details are stored if none were recorded yet. Returns
    None when the session does not exist.
    """
    db.rollback()
    session = _by_uuid(db, session_uuid).first()
    if not session:
        return None

    now = datetime.utcnow()
    metadata = {**(session.session_metadata or {}), "finalize_error": error}
    moved = (
        _by_uuid(db, session_uuid)
        .filter(EntitySession.status.in_(_allowed_from(SessionStatus.CANCELLED)))
        .update(
            {**_status_values(SessionStatus.CANCELLED, now), EntitySession.session_metadata: metadata},
            synchronize_session=False,
        )
    )
    (
        _by_uuid(db, session_uuid)
        .filter(EntitySession.call_ended_time.is_(None))
        .update(_call_detail_values(details, now), synchronize_session=False)
    )
    db.commit()

    if moved:
        logger.warning("Session %s cancelled after failed finalization: %s", session_uuid, error)
    return _reload(db, session_uuid)
