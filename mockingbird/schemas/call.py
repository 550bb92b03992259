from pydantic import BaseModel, Field
from typing import Any, Optional

from mockingbird.utils.enums import CallEventType, CallState


class CallEventIn(BaseModel):
    """One provider event relayed by the browser, payload kept as sent."""

    type: CallEventType
    payload: dict[str, Any] = Field(default_factory=dict)


class CallLaunchResponse(BaseModel):
    state: CallState
    assistantId: str
    publicKey: str
    assistantOverrides: dict[str, Any]


class TranscriptTurn(BaseModel):
    role: str
    lines: list[str]


class CallSnapshot(BaseModel):
    state: CallState
    micReady: bool
    speaking: bool
    volume: float
    endedReason: Optional[str] = None
    transcript: list[TranscriptTurn]
