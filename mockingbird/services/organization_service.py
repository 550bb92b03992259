import logging

from sqlalchemy.orm import Session

from mockingbird.core.errors import Forbidden, NotFound
from mockingbird.core.identity import CurrentUser
from mockingbird.models.organization import Organization, OrganizationMember

logger = logging.getLogger(__name__)


def get_organization(db: Session, org_id: str) -> Organization:
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if not org:
        raise NotFound("Organization not found")
    return org


def require_membership(db: Session, org_id: str, user: CurrentUser) -> OrganizationMember:
    get_organization(db, org_id)
    membership = (
        db.query(OrganizationMember)
        .filter(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user.id,
        )
        .first()
    )
    if not membership:
        logger.info("User %s is not a member of org %s", user.id, org_id)
        raise Forbidden("Not a member of this organization")
    return membership
