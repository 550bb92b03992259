from enum import Enum


class EntityType(str, Enum):
    INTERVIEW = "interview"
    TRAINING = "training"


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"
    LICENSED = "licensed"


class SessionStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CallState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDED = "ended"


class CallEventType(str, Enum):
    MESSAGE = "message"
    VOLUME_LEVEL = "volume-level"
    SPEECH_START = "speech-start"
    SPEECH_END = "speech-end"
    CALL_START = "call-start"
    CALL_END = "call-end"
    ERROR = "error"


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ReviewState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"
