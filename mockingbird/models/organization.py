from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from datetime import datetime
from mockingbird.core.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)


class OrganizationMember(Base):
    __tablename__ = "user_organizations"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    role = Column(String, default="member")  # owner | admin | member

    created_at = Column(DateTime, default=datetime.utcnow)
