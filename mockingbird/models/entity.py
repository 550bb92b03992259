from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from mockingbird.core.database import Base
from mockingbird.models.agent import VoiceAgentConfig  # noqa: F401


class Entity(Base):
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String, index=True, nullable=False)

    type = Column(String, nullable=False)  # interview | training
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default="draft")  # draft | published | licensed | invite-only
    visibility = Column(String, default="private")  # private | public | licensed

    voice_agent_id = Column(Integer, ForeignKey("vapi_agents.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String, nullable=True)

    voice_agent = relationship("VoiceAgentConfig", lazy="joined")
    interview = relationship("InterviewDetails", uselist=False, lazy="joined")
    training = relationship("TrainingDetails", uselist=False, lazy="joined")


class InterviewDetails(Base):
    __tablename__ = "interview_entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Integer, ForeignKey("entities.id"), index=True)

    domain = Column(String, nullable=False)
    seniority = Column(String, nullable=False)
    key_skills = Column(Text, nullable=True)
    duration = Column(String, nullable=True)


class TrainingDetails(Base):
    __tablename__ = "training_entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Integer, ForeignKey("entities.id"), index=True)

    category = Column(String, nullable=False)
    difficulty_level = Column(String, nullable=False)
    prerequisites = Column(Text, nullable=True)
    learning_objectives = Column(Text, nullable=True)
    estimated_completion_time = Column(String, nullable=True)
