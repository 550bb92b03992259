import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from mockingbird.core.errors import Forbidden
from mockingbird.models.entity import Entity
from mockingbird.models.invite import Invite
from mockingbird.utils.enums import Visibility

logger = logging.getLogger(__name__)

MISSING_TOKEN = "missing_token"
INVALID_TOKEN = "invalid_token"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


def authorize(db: Session, entity: Entity, presented_token: Optional[str]) -> AccessDecision:
    """
    Decide whether the caller may view the entity or one of its sessions.

    Only private entities are gated, by an invite issued for that exact
    entity. The lookup runs on every call; decisions are never cached.
    """
    if entity.visibility != Visibility.PRIVATE.value:
        return AccessDecision(allowed=True, reason=entity.visibility)

    if not presented_token:
        return AccessDecision(allowed=False, reason=MISSING_TOKEN)

    invite = (
        db.query(Invite.id)
        .filter(
            Invite.entity_id == entity.id,
            Invite.invite_code == presented_token,
        )
        .first()
    )
    if invite is None:
        return AccessDecision(allowed=False, reason=INVALID_TOKEN)

    return AccessDecision(allowed=True, reason="invite")


def require_access(db: Session, entity: Entity, presented_token: Optional[str]) -> AccessDecision:
    decision = authorize(db, entity, presented_token)
    if not decision.allowed:
        logger.info("Access denied to entity %s: %s", entity.id, decision.reason)
        raise Forbidden("Unauthorized access to private entity", reason=decision.reason)
    return decision
