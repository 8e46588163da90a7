"""Tests for agent records and adoption bookkeeping."""

import pytest

from conftest import agent_payload, study_payload
from roi_backend.errors import RecordNotFoundError, RecordValidationError
from roi_backend.storage import AGENTS


def test_create_applies_defaults(run, agent_service):
    agent = run(agent_service.create({"name": "  Ticket Triage  "}))

    assert agent.name == "Ticket Triage"
    assert agent.status == "active"
    assert agent.default_usage_discount_percent == 50
    assert agent.default_cost_per_employee_hour == 20
    assert agent.adoption_rate_percent == 0
    assert agent.adoption_last_updated is None


@pytest.mark.parametrize(
    "field, value",
    [
        ("name", ""),
        ("default_usage_discount_percent", 101),
        ("avg_hourly_wage", -1),
        ("status", "retired"),
    ],
)
def test_create_rejects_invalid_fields(run, store, agent_service, field, value):
    with pytest.raises(RecordValidationError) as excinfo:
        run(agent_service.create(agent_payload(**{field: value})))

    assert excinfo.value.field == field
    assert store.collections[AGENTS] == {}


def test_adoption_rate_is_derived_from_users(run, agent_service):
    agent = run(agent_service.create(agent_payload(target_user_base=200, current_active_users=50)))

    assert agent.adoption_rate_percent == 25
    assert agent.adoption_last_updated is not None


def test_update_adoption_recomputes_rate_and_keeps_other_fields(run, agent_service, agent):
    updated = run(agent_service.update_adoption(agent.id, 400, 340, "Active logins in last 30 days"))

    assert updated.adoption_rate_percent == pytest.approx(85)
    assert updated.adoption_methodology == "Active logins in last 30 days"
    assert updated.adoption_last_updated is not None
    assert updated.avg_usage_count == agent.avg_usage_count


def test_update_missing_agent(run, agent_service):
    with pytest.raises(RecordNotFoundError):
        run(agent_service.update("ghost", {"name": "x"}))


def test_list_filters_by_status_and_division(run, agent_service):
    run(agent_service.create(agent_payload(name="A", division_id="sales")))
    run(agent_service.create(agent_payload(name="B", division_id="sales", status="inactive")))
    run(agent_service.create(agent_payload(name="C")))

    assert {a.name for a in run(agent_service.list(division_id="sales"))} == {"A", "B"}
    assert {a.name for a in run(agent_service.list(status="active", division_id="sales"))} == {"A"}
    assert {a.name for a in run(agent_service.list(division_id="unassigned"))} == {"C"}
    assert len(run(agent_service.list())) == 3


def test_delete_is_refused_while_studies_exist(run, agent_service, study_service, agent):
    study = run(study_service.create(study_payload(agent.id)))

    with pytest.raises(RecordValidationError):
        run(agent_service.delete(agent.id))

    run(study_service.delete(study.id))
    run(agent_service.delete(agent.id))
    assert run(agent_service.get_by_id(agent.id)) is None

    with pytest.raises(RecordNotFoundError):
        run(agent_service.delete(agent.id))


def test_adoption_stats(run, agent_service):
    run(agent_service.create(agent_payload(name="Low", target_user_base=100, current_active_users=10)))
    run(agent_service.create(agent_payload(name="Mid", target_user_base=100, current_active_users=50)))
    run(agent_service.create(agent_payload(name="High", target_user_base=100, current_active_users=90)))
    run(agent_service.create(agent_payload(name="Off", status="inactive", target_user_base=100, current_active_users=100)))

    stats = run(agent_service.adoption_stats())

    assert stats.total_agents == 3
    assert stats.average_adoption == pytest.approx(50)
    assert (stats.low_adoption, stats.medium_adoption, stats.high_adoption) == (1, 1, 1)
    assert stats.total_target_users == 300
    assert stats.total_active_users == 150


def test_adoption_stats_without_agents(run, agent_service):
    stats = run(agent_service.adoption_stats())
    assert stats.total_agents == 0
    assert stats.average_adoption == 0
