import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from mockingbird.core.errors import TransientError
from mockingbird.schemas.review import Review

logger = logging.getLogger(__name__)


class ScoringClient:
    """Single-attempt client for the external session scoring function."""

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def fetch_review(self, session_uuid: str, entity_id: int, org_id: str) -> Review:
        try:
            response = await self._client.post(
                self.url,
                json={
                    "sessionId": session_uuid,
                    "entityId": str(entity_id),
                    "orgId": org_id,
                },
            )
        except httpx.HTTPError as exc:
            raise TransientError(f"Scoring service request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = response.text.strip() or f"HTTP {response.status_code}"
            raise TransientError(f"Failed to fetch session review: {detail}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientError("Scoring service returned malformed JSON") from exc

        review = payload.get("review") if isinstance(payload, dict) else None
        if not review:
            raise TransientError("No review available")

        try:
            return Review.model_validate(review)
        except ValidationError as exc:
            raise TransientError(f"Malformed review payload: {exc.error_count()} errors") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
