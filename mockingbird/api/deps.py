from fastapi import Request

from mockingbird.core.clock import Clock
from mockingbird.core.config import Settings
from mockingbird.services.call_orchestrator import CallRegistry
from mockingbird.services.review_retriever import ReviewCycles, ReviewSource
from mockingbird.services.voice_agent import AgentFactory


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_call_registry(request: Request) -> CallRegistry:
    return request.app.state.calls


def get_review_cycles(request: Request) -> ReviewCycles:
    return request.app.state.review_cycles


def get_scoring_client(request: Request) -> ReviewSource:
    return request.app.state.scoring_client


def get_agent_factory(request: Request) -> AgentFactory:
    return request.app.state.agent_factory
