from pydantic import BaseModel
from typing import Optional

from mockingbird.utils.enums import EntityType, Visibility


class InterviewDetailsResponse(BaseModel):
    domain: str
    seniority: str
    key_skills: Optional[str] = None
    duration: Optional[str] = None

    class Config:
        from_attributes = True


class TrainingDetailsResponse(BaseModel):
    category: str
    difficulty_level: str
    prerequisites: Optional[str] = None
    learning_objectives: Optional[str] = None
    estimated_completion_time: Optional[str] = None

    class Config:
        from_attributes = True


class VoiceAgentSummary(BaseModel):
    # The api key is never part of an entity payload
    id: int
    name: str

    class Config:
        from_attributes = True


class EntityResponse(BaseModel):
    id: int
    organization_id: str
    type: EntityType
    title: str
    description: Optional[str] = None
    status: str
    visibility: Visibility
    voice_agent: Optional[VoiceAgentSummary] = None
    interview: Optional[InterviewDetailsResponse] = None
    training: Optional[TrainingDetailsResponse] = None

    class Config:
        from_attributes = True
