from sqlalchemy import Column, String, Integer, DateTime
from datetime import datetime
from mockingbird.core.database import Base


class VoiceAgentConfig(Base):
    __tablename__ = "vapi_agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)

    # Provider-side assistant id and the public key used to open the call
    agent_id = Column(String, nullable=False)
    api_key = Column(String, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
