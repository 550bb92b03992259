from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional

from mockingbird.utils.enums import SessionStatus


class SessionStartRequest(BaseModel):
    token: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    session_uuid: str
    entity_id: int
    org_id: str
    user_id: Optional[str] = None
    status: SessionStatus
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="session_metadata")
    call_transcript: Optional[str] = None
    call_started_time: Optional[datetime] = None
    call_ended_time: Optional[datetime] = None
    call_ended_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionStarted(BaseModel):
    sessionId: str
    type: str
    metadata: dict[str, Any]
