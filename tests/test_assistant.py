"""Tests for the assistant snapshot, relay and conversation store."""

import os
import time
import uuid

import pytest
from pydantic_ai.models.test import TestModel

from conftest import agent_payload, study_payload
from roi_backend.agent_service import AgentService
from roi_backend.assistant import AssistantRelay
from roi_backend.assistant_context import AssistantContextBuilder
from roi_backend.conversations import ChatMessage, ConversationStore
from roi_backend.errors import StorageError
from roi_backend.logging_config import CONVERSATION_LOG_DIR, conversation_log_path
from roi_backend.storage import ALERTS, GOALS, InMemoryRecordStore
from roi_backend.study_service import StudyService


@pytest.fixture
def populated(run, store, agent_service, study_service):
    email = run(agent_service.create(agent_payload(division_id="sales")))
    run(agent_service.create(agent_payload(name="Idea Only", avg_usage_count=None, division_id="sales")))
    reports = run(agent_service.create(agent_payload(
        name="Report Writer",
        avg_time_without_agent_minutes=10,
        avg_usage_count=1000,
        default_usage_discount_percent=0,
        avg_hourly_wage=30,
        target_user_base=50,
        current_active_users=20,
    )))
    run(study_service.create(study_payload(email.id)))

    run(store.insert(GOALS, {
        "agent_id": email.id,
        "goal_type": "annual_savings",
        "target_value": 100000,
        "current_value": 83333,
        "target_date": "2024-12-31",
        "status": "at_risk",
    }))
    run(store.insert(ALERTS, {"agent_id": reports.id, "alert_type": "low_adoption", "message": "Only 40% adoption"}))
    run(store.insert(ALERTS, {"alert_type": "variance", "message": "Old", "status": "resolved"}))
    return {"email": email, "reports": reports}


def test_context_summary_and_agent_rows(run, store, agent_service, study_service, settings, populated):
    builder = AssistantContextBuilder(agent_service, study_service, store, settings=settings)

    context = run(builder.build(current_view="dashboard", selected_agent_id=populated["email"].id))

    summary = context["summary"]
    assert summary["totalAgents"] == 3
    assert summary["agentsWithProjections"] == 2
    assert summary["agentsWithActuals"] == 1
    assert summary["projectedAnnualSavings"] == 133750
    assert summary["actualMeasuredSavings"] == 83333
    assert summary["actualMeasuredTimeSaved"] == 1666.7
    assert summary["variance"] == -37.7
    assert summary["projectedFTE"] == 1.3

    rows = {row["name"]: row for row in context["agents"]}
    assert rows["Email Drafter"]["projectedAnnualSavings"] == 131250
    assert rows["Email Drafter"]["totalStudies"] == 1
    assert rows["Email Drafter"]["lastStudyDate"] == "2024-03-01"
    assert rows["Idea Only"]["hasProjections"] is False
    assert rows["Report Writer"]["adoptionRatePercent"] == 40

    assert [a["name"] for a in context["agentsNeedingValidation"]] == ["Report Writer"]
    assert context["organization"]["standardWorkHoursPerYear"] == 2080
    assert context["currentView"] == "dashboard"
    assert context["selectedAgentId"] == populated["email"].id
    assert context["division"] is None


def test_context_goals_alerts_and_recent_studies(run, store, agent_service, study_service, settings, populated):
    builder = AssistantContextBuilder(agent_service, study_service, store, settings=settings)

    context = run(builder.build())

    assert [g["goalType"] for g in context["goals"]] == ["annual_savings"]
    assert context["goals"][0]["targetDate"] == "2024-12-31"
    assert [a["type"] for a in context["alerts"]] == ["low_adoption"]
    assert len(context["recentStudies"]) == 1
    assert context["recentStudies"][0]["agentName"] == "Email Drafter"


def test_recent_studies_are_limited_and_sorted_by_study_date(run, store, agent_service, study_service, settings, agent):
    for day in range(1, 13):
        run(study_service.create(study_payload(agent.id, study_date=f"2024-01-{day:02d}")))
    builder = AssistantContextBuilder(agent_service, study_service, store, settings=settings)

    recent = run(builder.build())["recentStudies"]

    assert len(recent) == 10
    assert recent[0]["studyDate"] == "2024-01-12"
    assert recent[-1]["studyDate"] == "2024-01-03"


def test_context_scoped_to_a_division(run, store, agent_service, study_service, settings, populated):
    builder = AssistantContextBuilder(agent_service, study_service, store, settings=settings)

    sales = run(builder.build(division_id="sales"))
    unassigned = run(builder.build(division_id="unassigned"))

    assert sales["division"]["name"] == "sales"
    assert {a["name"] for a in sales["agents"]} == {"Email Drafter", "Idea Only"}
    assert sales["summary"]["projectedAnnualSavings"] == 131250
    assert sales["summary"]["totalStudies"] == 1
    assert sales["alerts"] == []

    assert unassigned["division"]["name"] == "Unassigned Agents"
    assert [a["name"] for a in unassigned["agents"]] == ["Report Writer"]
    assert unassigned["summary"]["totalStudies"] == 0
    assert len(unassigned["alerts"]) == 1


def test_context_rounds_halves_up(run, store, agent_service, study_service, settings, agent):
    # 1 minute x 150 uses = 2.5 hours at $1 an hour
    run(study_service.create(study_payload(
        agent.id,
        time_without_ai_minutes=11,
        time_with_ai_minutes=10,
        usage_count=150,
        usage_discount_percent=0,
        cost_per_hour=1,
    )))
    builder = AssistantContextBuilder(agent_service, study_service, store, settings=settings)

    context = run(builder.build())

    assert context["summary"]["actualMeasuredSavings"] == 3
    assert context["agents"][0]["actualSavings"] == 3
    assert context["summary"]["actualMeasuredTimeSaved"] == 2.5


class UnreachableGoalsStore(InMemoryRecordStore):
    async def list(self, collection, filters=None, order_by="created_at", descending=True):
        if collection in (GOALS, ALERTS):
            raise ConnectionError("goals table unreachable")
        return await super().list(collection, filters, order_by, descending)


def test_context_wraps_goal_and_alert_read_failures(run, settings):
    store = UnreachableGoalsStore()
    builder = AssistantContextBuilder(AgentService(store), StudyService(store), store, settings=settings)

    with pytest.raises(StorageError) as excinfo:
        run(builder.build())

    assert isinstance(excinfo.value.cause, ConnectionError)


def test_relay_requires_api_key_without_model(settings):
    with pytest.raises(ValueError):
        AssistantRelay(settings)


def test_relay_returns_model_output(run, settings):
    relay = AssistantRelay(settings, model=TestModel(custom_output_text="Email Drafter saves $131,250 a year."))

    reply = run(relay.reply([], "Which agent saves the most?", {"summary": {"totalAgents": 1}}))

    assert reply == "Email Drafter saves $131,250 a year."
    assert relay.config.name == "roi_analyst"


def test_render_prompt_includes_snapshot_history_and_division(settings):
    relay = AssistantRelay(settings, model=TestModel())
    history = [
        ChatMessage(role="user", content="Hi"),
        ChatMessage(role="assistant", content="Hello! Ask me about your agents."),
    ]
    context = {
        "division": {"id": "sales", "name": "sales", "description": None},
        "summary": {"totalAgents": 2},
        "agents": [{"name": "Email Drafter"}, {"name": "Idea Only"}],
    }

    prompt = relay.render_prompt(history, "What is our variance?", context)

    assert "DIVISION FILTER ACTIVE: sales" in prompt
    assert "Email Drafter, Idea Only" in prompt
    assert "Current Context:\n" in prompt
    assert '"totalAgents": 2' in prompt
    assert "Conversation so far:" in prompt
    assert prompt.rstrip().endswith("user: What is our variance?")


def test_render_prompt_without_context_or_history(settings):
    relay = AssistantRelay(settings, model=TestModel())
    assert relay.render_prompt([], "Hello") == "Hello"


def test_conversation_store_appends_and_titles(run):
    conversations = ConversationStore(ttl_seconds=3600)

    conversation = run(conversations.get_or_create())
    run(conversations.append(conversation.conversation_id, "user", "How much does the Email Drafter save us every year?" * 2))
    run(conversations.append(conversation.conversation_id, "assistant", "About $131,250."))

    stored = run(conversations.get(conversation.conversation_id))
    assert [m.role for m in stored.messages] == ["user", "assistant"]
    assert len(stored.title) == 60
    assert run(conversations.get_or_create(conversation.conversation_id)) is stored

    assert run(conversations.delete(conversation.conversation_id)) is True
    assert run(conversations.get(conversation.conversation_id)) is None


def test_conversation_store_prunes_expired(run):
    conversations = ConversationStore(ttl_seconds=60)
    conversation = run(conversations.get_or_create())
    conversation.updated_at = time.time() - 120

    assert run(conversations.get(conversation.conversation_id)) is None
    with pytest.raises(KeyError):
        run(conversations.append(conversation.conversation_id, "user", "still there?"))


def test_unknown_conversation_ids_are_replaced(run, tmp_path):
    conversations = ConversationStore(ttl_seconds=60)
    outside = os.path.relpath(tmp_path / "escape", CONVERSATION_LOG_DIR)

    conversation = run(conversations.get_or_create(outside))

    assert conversation.conversation_id != outside
    assert str(uuid.UUID(conversation.conversation_id)) == conversation.conversation_id
    assert not (tmp_path / "escape.log").exists()
    assert (CONVERSATION_LOG_DIR / f"{conversation.conversation_id}.log").exists()
    assert run(conversations.get(outside)) is None
    run(conversations.delete(conversation.conversation_id))


def test_conversation_log_path_stays_in_log_directory(tmp_path):
    with pytest.raises(ValueError):
        conversation_log_path(os.path.relpath(tmp_path / "escape", CONVERSATION_LOG_DIR))
    with pytest.raises(ValueError):
        conversation_log_path("nested/id")

    assert conversation_log_path("abc").parent == CONVERSATION_LOG_DIR.resolve()
