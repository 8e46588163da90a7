"""Tests for the study CSV export."""

import csv
import io
from datetime import date

from conftest import study_payload
from roi_backend.export import (
    STUDY_EXPORT_HEADER,
    export_filename,
    export_studies_csv,
    filter_studies,
    study_export_row,
)
from roi_backend.schemas import StudyWithAgent
from roi_backend.storage import STUDIES


def parse(text):
    return list(csv.reader(io.StringIO(text)))


def test_header_has_twelve_columns_in_order():
    rows = parse(export_studies_csv([]))

    assert rows == [list(STUDY_EXPORT_HEADER)]
    assert rows[0][0] == "Study Date"
    assert rows[0][-1] == "Potential Savings"
    assert len(rows[0]) == 12


def test_rows_carry_stored_values(run, study_service, agent):
    study = run(study_service.create(study_payload(agent.id)))

    rows = parse(export_studies_csv(run(study_service.list())))

    assert len(rows) == 2
    row = rows[1]
    assert float(row[11]) == study.potential_savings
    assert row[0] == "2024-03-01"
    assert row[1] == "Email Drafter"
    assert row[2] == "Draft a customer follow-up email"
    assert float(row[5]) == 10
    assert row[6] == "20000"
    assert float(row[8]) == 10000


def test_missing_derived_values_and_agent_export_as_defaults(run, store, study_service, agent):
    # Legacy record with no derived fields whose agent no longer exists
    run(store.insert(STUDIES, study_payload("deleted-agent")))

    study = run(study_service.list())[0]
    row = study_export_row(study)

    assert row[1] == ""
    assert row[5] == 0
    assert row[8] == 0
    assert row[10] == 0
    assert row[11] == 0


def test_descriptions_with_commas_quotes_and_newlines_survive(run, study_service, agent):
    description = 'Summarise "weekly" report, then email\nthe team'
    run(study_service.create(study_payload(agent.id, task_description=description)))

    text = export_studies_csv(run(study_service.list()))
    rows = parse(text)

    assert rows[1][2] == description
    assert len(rows) == 2


def test_export_filename():
    assert export_filename(date(2024, 3, 9)) == "time-motion-studies-2024-03-09.csv"
    assert export_filename().startswith("time-motion-studies-")


def make_study(study_id, agent_id, task, agent_name=None, notes=None):
    data = study_payload(agent_id, task_description=task, notes=notes)
    data["id"] = study_id
    if agent_name:
        data["agent"] = {"name": agent_name}
    return StudyWithAgent.model_validate(data)


def test_filter_studies_by_search_and_agent():
    studies = [
        make_study("1", "a", "Draft invoice email", agent_name="Email Drafter"),
        make_study("2", "b", "Summarise tickets", agent_name="Ticket Triage", notes="Pilot with support"),
        make_study("3", "a", "Weekly report"),
    ]

    assert [s.id for s in filter_studies(studies, search="EMAIL")] == ["1"]
    assert [s.id for s in filter_studies(studies, search="triage")] == ["2"]
    assert [s.id for s in filter_studies(studies, search="support")] == ["2"]
    assert [s.id for s in filter_studies(studies, agent_id="a")] == ["1", "3"]
    assert [s.id for s in filter_studies(studies, search="report", agent_id="b")] == []
    assert len(filter_studies(studies)) == 3
