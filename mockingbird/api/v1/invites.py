from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mockingbird.core.database import get_db
from mockingbird.core.identity import CurrentUser, require_user
from mockingbird.schemas.invite import InviteCreate, InviteResponse
from mockingbird.services.entity_service import get_entity
from mockingbird.services.invite_service import create_invites, list_invites
from mockingbird.services.organization_service import require_membership

router = APIRouter()

ENTITY_PATH = "/organizations/{org_id}/entities/{entity_id}"


@router.get(f"{ENTITY_PATH}/invites")
async def list_entity_invites(
    org_id: str,
    entity_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    require_membership(db, org_id, user)
    entity = get_entity(db, org_id, entity_id)

    invites = list_invites(db, entity)
    return {
        "success": True,
        "data": [InviteResponse.model_validate(i).model_dump(mode="json") for i in invites],
    }


@router.post(f"{ENTITY_PATH}/invites", status_code=201)
async def create_entity_invites(
    org_id: str,
    entity_id: int,
    body: InviteCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    require_membership(db, org_id, user)
    entity = get_entity(db, org_id, entity_id)

    invites = create_invites(db, entity, body.invites, created_by=user.id)
    return {
        "success": True,
        "data": [InviteResponse.model_validate(i).model_dump(mode="json") for i in invites],
    }
