from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    PROJECT_NAME: str = "Mockingbird Session Backend"
    API_V1_PREFIX: str = "/api/v1"

    DATABASE_URL: str = "sqlite:///./mockingbird.db"

    CORS_ORIGINS: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )
    LOG_LEVEL: str = "INFO"

    # Scoring service
    SCORING_SERVICE_URL: str = "http://localhost:54321/functions/v1/session-scoring-retriever-v2"
    SCORING_TIMEOUT_SECONDS: float = 15.0

    # Review retry policy
    REVIEW_BASE_DELAY_MS: int = 2000
    REVIEW_BACKOFF_FACTOR: int = 2
    REVIEW_MAX_DELAY_MS: int = 10000
    REVIEW_MAX_RETRIES: int = 10
    REVIEW_HANDOFF_MAX_RETRIES: int = 5
    # How long a finished review cycle stays readable
    REVIEW_RETENTION_MS: int = 300_000

    # Identity headers set by the auth proxy
    IDENTITY_USER_HEADER: str = "X-User-Id"
    IDENTITY_EMAIL_HEADER: str = "X-User-Email"

    class Config:
        env_file = ".env"


settings = Settings()
