class MockingbirdError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(MockingbirdError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(MockingbirdError):
    status_code = 403
    default_message = "Access denied"

    def __init__(self, message: str | None = None, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


class NotFound(MockingbirdError):
    status_code = 404
    default_message = "Not found"


class InvalidTransition(MockingbirdError):
    status_code = 409
    default_message = "Invalid session status transition"


class AgentUnavailable(MockingbirdError):
    """No voice agent configured for the entity, or the agent failed to start."""

    status_code = 409
    default_message = "No voice agent configured for this entity"


class TransientError(MockingbirdError):
    status_code = 503
    default_message = "Scoring service unavailable"


class ExhaustedRetries(MockingbirdError):
    status_code = 504
    default_message = "No review available"

    def __init__(self, message: str | None = None, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts
