from sqlalchemy.orm import Session

from mockingbird.core.errors import NotFound
from mockingbird.models.entity import Entity


def get_entity(db: Session, org_id: str, entity_id: int) -> Entity:
    entity = (
        db.query(Entity)
        .filter(Entity.id == entity_id, Entity.organization_id == org_id)
        .first()
    )
    if not entity:
        raise NotFound("Entity not found")
    return entity
