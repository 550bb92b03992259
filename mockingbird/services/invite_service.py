import logging
import secrets

from sqlalchemy.orm import Session

from mockingbird.models.entity import Entity
from mockingbird.models.invite import Invite
from mockingbird.schemas.invite import InviteRecipient

logger = logging.getLogger(__name__)


def generate_invite_code() -> str:
    return secrets.token_urlsafe(24)


def create_invites(
    db: Session,
    entity: Entity,
    recipients: list[InviteRecipient],
    created_by: str,
) -> list[Invite]:
    invites = [
        Invite(
            invite_code=generate_invite_code(),
            entity_id=entity.id,
            organization_id=entity.organization_id,
            name=recipient.name or None,
            email=recipient.email or None,
            phone=recipient.phone or None,
            created_by=created_by,
        )
        for recipient in recipients
    ]
    db.add_all(invites)
    db.commit()
    for invite in invites:
        db.refresh(invite)

    logger.info("Created %d invites for entity %s", len(invites), entity.id)
    return invites


def list_invites(db: Session, entity: Entity) -> list[Invite]:
    return (
        db.query(Invite)
        .filter(Invite.entity_id == entity.id)
        .order_by(Invite.created_at.asc(), Invite.id.asc())
        .all()
    )
