"""Shared fixtures for the ROI backend tests.

Services are async; tests drive them with ``asyncio.run`` on a fresh
in-memory store per test.
"""
import asyncio
from typing import Any, Dict

import pytest

from roi_backend.agent_service import AgentService
from roi_backend.config import Settings
from roi_backend.storage import InMemoryRecordStore
from roi_backend.study_service import StudyService


@pytest.fixture
def run():
    return asyncio.run


@pytest.fixture
def settings() -> Settings:
    return Settings(openrouter_api_key=None)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def agent_service(store) -> AgentService:
    return AgentService(store)


@pytest.fixture
def study_service(store) -> StudyService:
    return StudyService(store)


def agent_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "name": "Email Drafter",
        "category": "Communication",
        "avg_time_without_agent_minutes": 15,
        "avg_time_with_agent_minutes": 5,
        "avg_usage_count": 31500,
        "default_usage_discount_percent": 50,
        "avg_hourly_wage": 50,
    }
    payload.update(overrides)
    return payload


def study_payload(agent_id: str, **overrides: Any) -> Dict[str, Any]:
    payload = {
        "agent_id": agent_id,
        "task_description": "Draft a customer follow-up email",
        "study_date": "2024-03-01",
        "time_without_ai_minutes": 20,
        "time_with_ai_minutes": 10,
        "usage_count": 20000,
        "usage_discount_percent": 50,
        "cost_per_hour": 50,
        "notes": None,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def agent(run, agent_service):
    """A stored agent with the 15/5/31500/50%/$50 projection variables."""
    return run(agent_service.create(agent_payload()))
