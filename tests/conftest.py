from __future__ import annotations

import os

# Tests always run against a private in-memory database
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from mockingbird.core.database import Base, SessionLocal, engine, init_db
from mockingbird.main import create_app
from mockingbird.models.agent import VoiceAgentConfig
from mockingbird.models.entity import Entity, InterviewDetails, TrainingDetails
from mockingbird.models.invite import Invite
from mockingbird.models.organization import Organization, OrganizationMember

from tests.harness.fakes import FakeScoringSource, sample_review


class Seeder:
    def __init__(self, db):
        self.db = db

    def org(self, org_id: str = "org1", slug: str | None = None) -> Organization:
        org = Organization(id=org_id, slug=slug or org_id, name=f"Org {org_id}")
        self.db.add(org)
        self.db.commit()
        return org

    def member(self, org_id: str, user_id: str, role: str = "member") -> OrganizationMember:
        member = OrganizationMember(organization_id=org_id, user_id=user_id, role=role)
        self.db.add(member)
        self.db.commit()
        return member

    def agent(self, org_id: str = "org1") -> VoiceAgentConfig:
        agent = VoiceAgentConfig(
            organization_id=org_id,
            name="Interviewer",
            agent_id="assistant-123",
            api_key="public-key-abc",
        )
        self.db.add(agent)
        self.db.commit()
        return agent

    def entity(
        self,
        entity_id: int | None = None,
        org_id: str = "org1",
        visibility: str = "public",
        entity_type: str = "interview",
        with_agent: bool = True,
    ) -> Entity:
        entity = Entity(
            id=entity_id,
            organization_id=org_id,
            type=entity_type,
            title="Backend Engineer Mock Interview",
            description="Practice round",
            status="published",
            visibility=visibility,
            voice_agent_id=self.agent(org_id).id if with_agent else None,
            created_by="owner-1",
        )
        self.db.add(entity)
        self.db.commit()

        if entity_type == "interview":
            self.db.add(
                InterviewDetails(
                    entity_id=entity.id,
                    domain="Software Engineering",
                    seniority="Senior",
                    key_skills="Python, SQL",
                    duration="30 minutes",
                )
            )
        else:
            self.db.add(
                TrainingDetails(
                    entity_id=entity.id,
                    category="Sales",
                    difficulty_level="Beginner",
                    learning_objectives="Handle objections",
                )
            )
        self.db.commit()
        self.db.refresh(entity)
        return entity

    def invite(self, entity: Entity, code: str) -> Invite:
        invite = Invite(
            invite_code=code,
            entity_id=entity.id,
            organization_id=entity.organization_id,
            created_by="owner-1",
        )
        self.db.add(invite)
        self.db.commit()
        return invite


@pytest.fixture
def db():
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def scoring() -> FakeScoringSource:
    return FakeScoringSource([sample_review()])


@pytest.fixture
def client(db, scoring):
    app = create_app(scoring_client=scoring)
    with TestClient(app) as test_client:
        yield test_client
