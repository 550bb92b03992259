from sqlalchemy import Column, String, Integer, DateTime, Text, JSON
from datetime import datetime
from mockingbird.core.database import Base


class EntitySession(Base):
    __tablename__ = "entity_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_uuid = Column(String(36), unique=True, index=True, nullable=False)

    entity_id = Column(Integer, index=True, nullable=False)
    org_id = Column(String, index=True, nullable=False)
    user_id = Column(String, index=True, nullable=True)
    token = Column(String, nullable=True)

    status = Column(String, default="created")  # created | in_progress | completed | cancelled
    session_metadata = Column("metadata", JSON, default=dict, nullable=False)

    call_transcript = Column(Text, nullable=True)
    call_started_time = Column(DateTime, nullable=True)
    call_ended_time = Column(DateTime, nullable=True)
    call_ended_reason = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
