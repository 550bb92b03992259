from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class InviteRecipient(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, max_length=20)


class InviteCreate(BaseModel):
    invites: list[InviteRecipient] = Field(min_length=1)


class InviteResponse(BaseModel):
    id: int
    invite_code: str
    entity_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
