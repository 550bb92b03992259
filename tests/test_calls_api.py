from __future__ import annotations

import asyncio
import time
from datetime import datetime

import pytest

from mockingbird.api.v1.calls import finalize_call, review_url
from mockingbird.core.errors import InvalidTransition
from mockingbird.services.call_orchestrator import CallOutcome
from mockingbird.services.session_service import get_session, update_status
from mockingbird.utils.enums import SessionStatus

from tests.harness.fakes import final, partial

BASE = "/api/v1/organizations/org1/entities/7"


def _start_session(client) -> str:
    response = client.post(f"{BASE}/sessions/start", json={"metadata": {"type": "interview"}})
    return response.json()["data"]["sessionId"]


def _relay(client, session_id: str, event_type: str, payload=None) -> dict:
    response = client.post(
        f"{BASE}/sessions/{session_id}/call/events",
        json={"type": event_type, "payload": payload or {}},
    )
    assert response.status_code == 200
    return response.json()["data"]


def _wait_for_review(client, session_id: str, attempts: int = 100) -> dict:
    for _ in range(attempts):
        data = client.get(f"{BASE}/sessions/{session_id}/review/poll").json()["data"]
        if data["state"] != "pending":
            return data
        time.sleep(0.02)
    raise AssertionError("review retrieval did not finish")


def test_full_call_flow(client, seed, scoring) -> None:
    seed.org("org1")
    seed.entity(entity_id=7)
    session_id = _start_session(client)

    launched = client.post(f"{BASE}/sessions/{session_id}/call/start")
    assert launched.status_code == 200
    launch = launched.json()["data"]
    assert launch["state"] == "connecting"
    assert launch["assistantId"] == "assistant-123"
    assert launch["publicKey"] == "public-key-abc"
    assert launch["assistantOverrides"]["metadata"]["session_id"] == session_id
    assert launch["assistantOverrides"]["variableValues"]["interview_domain"] == "Software Engineering"

    assert _relay(client, session_id, "call-start")["state"] == "active"
    session = client.get(f"{BASE}/sessions/{session_id}").json()["data"]
    assert session["status"] == "in_progress"

    _relay(client, session_id, "message", final("assistant", "Tell me about yourself"))
    _relay(client, session_id, "message", partial("user", "I have fi"))
    _relay(client, session_id, "message", final("user", "I have five years"))
    snapshot = _relay(client, session_id, "volume-level", {"level": 0.3})
    assert snapshot["volume"] == 0.3
    assert [turn["role"] for turn in snapshot["transcript"]] == ["assistant", "user"]

    ended = client.post(f"{BASE}/sessions/{session_id}/call/end").json()["data"]
    assert ended["ended"] is True
    assert ended["state"] == "ended"
    assert ended["reviewUrl"] == f"/org1/entities/7/sessions/{session_id}/review"

    again = client.post(f"{BASE}/sessions/{session_id}/call/end").json()["data"]
    assert again["ended"] is False

    session = client.get(f"{BASE}/sessions/{session_id}").json()["data"]
    assert session["status"] == "completed"
    assert session["call_transcript"] == "AI: Tell me about yourself\nUser: I have five years"
    assert session["call_ended_reason"] == "user-ended"
    assert session["ended_at"] is not None

    assert len(client.app.state.calls) == 0
    late = client.post(
        f"{BASE}/sessions/{session_id}/call/events",
        json={"type": "message", "payload": final("user", "still here")},
    )
    assert late.status_code == 404

    review = _wait_for_review(client, session_id)
    assert review["state"] == "ready"
    assert review["progress"] == 100
    assert review["review"]["overall_score"] == 82.0
    assert scoring.calls[0] == (session_id, 7, "org1")

    fetched = client.get(f"{BASE}/sessions/{session_id}/review")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["review"]["overall_score"] == 82.0
    assert len(scoring.calls) == 1


def test_agent_ended_call_completes_session(client, seed) -> None:
    seed.org("org1")
    seed.entity(entity_id=7)
    session_id = _start_session(client)
    client.post(f"{BASE}/sessions/{session_id}/call/start")
    _relay(client, session_id, "call-start")

    data = _relay(client, session_id, "call-end", {"reason": "assistant-ended-call"})

    assert data["state"] == "ended"
    session = client.get(f"{BASE}/sessions/{session_id}").json()["data"]
    assert session["status"] == "completed"
    assert session["call_ended_reason"] == "assistant-ended-call"


def test_ending_before_call_start_cancels_session(client, seed, scoring) -> None:
    seed.org("org1")
    seed.entity(entity_id=7)
    session_id = _start_session(client)
    client.post(f"{BASE}/sessions/{session_id}/call/start")

    _relay(client, session_id, "call-end")
    assert client.get(f"{BASE}/sessions/{session_id}/call").json()["data"]["state"] == "connecting"

    ended = client.post(f"{BASE}/sessions/{session_id}/call/end").json()["data"]
    assert ended["ended"] is True

    session = client.get(f"{BASE}/sessions/{session_id}").json()["data"]
    assert session["status"] == "cancelled"
    assert client.get(f"{BASE}/sessions/{session_id}/review/poll").status_code == 404
    assert scoring.calls == []


def test_entity_without_voice_agent_cannot_start_call(client, seed) -> None:
    seed.org("org1")
    seed.entity(entity_id=7, with_agent=False)
    session_id = _start_session(client)

    response = client.post(f"{BASE}/sessions/{session_id}/call/start")

    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "No voice agent configured for this entity"}
    session = client.get(f"{BASE}/sessions/{session_id}").json()["data"]
    assert session["status"] == "created"


def test_finished_session_cannot_start_another_call(client, seed, db) -> None:
    seed.org("org1")
    seed.entity(entity_id=7)
    session_id = _start_session(client)
    update_status(db, session_id, SessionStatus.CANCELLED)

    response = client.post(f"{BASE}/sessions/{session_id}/call/start")
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_call_routes_without_live_call(client, seed) -> None:
    seed.org("org1")
    seed.entity(entity_id=7)
    session_id = _start_session(client)

    assert client.get(f"{BASE}/sessions/{session_id}/call").status_code == 404
    assert client.post(f"{BASE}/sessions/{session_id}/call/end").status_code == 404


def test_private_call_routes_need_the_invite(client, seed) -> None:
    seed.org("org1")
    entity = seed.entity(entity_id=7, visibility="private")
    seed.invite(entity, "ABC123")
    session_id = client.post(
        f"{BASE}/sessions/start", json={"token": "ABC123"}
    ).json()["data"]["sessionId"]

    assert client.post(f"{BASE}/sessions/{session_id}/call/start").status_code == 403

    launched = client.post(f"{BASE}/sessions/{session_id}/call/start", params={"token": "ABC123"})
    assert launched.status_code == 200

    ended = client.post(
        f"{BASE}/sessions/{session_id}/call/end", params={"token": "ABC123"}
    ).json()["data"]
    assert ended["reviewUrl"].endswith("/review?token=ABC123")


def test_review_url_encodes_the_token() -> None:
    assert review_url("org1", 7, "s-1", None) == "/org1/entities/7/sessions/s-1/review"
    assert review_url("org1", 7, "s-1", "a&b c") == "/org1/entities/7/sessions/s-1/review?token=a%26b+c"


def test_failed_finalize_leaves_session_cancelled(client, seed, db) -> None:
    seed.org("org1")
    seed.entity(entity_id=7)
    session_id = _start_session(client)
    outcome = CallOutcome(
        session_uuid=session_id,
        status=SessionStatus.COMPLETED,
        transcript="AI: Hello",
        started_at=None,
        ended_at=datetime(2024, 1, 1, 10, 15),
        ended_reason="user-ended",
    )

    with pytest.raises(InvalidTransition):
        asyncio.run(finalize_call(outcome))

    db.expire_all()
    session = get_session(db, "org1", 7, session_id)
    assert session.status == "cancelled"
    assert session.call_transcript == "AI: Hello"
    assert session.session_metadata["type"] == "interview"
    assert session.session_metadata["finalize_error"] == "Session cannot move from created to completed"
