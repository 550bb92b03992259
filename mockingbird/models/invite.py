from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from datetime import datetime
from mockingbird.core.database import Base


class Invite(Base):
    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invite_code = Column(String, unique=True, index=True, nullable=False)

    entity_id = Column(Integer, ForeignKey("entities.id"), index=True, nullable=False)
    organization_id = Column(String, index=True)

    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String, nullable=True)
