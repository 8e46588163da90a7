"""CSV export of study records.

Values are written verbatim from the stored fields; derived fields missing
on an older record are exported as 0. Fields are quoted by the csv writer,
so commas, quotes and line breaks in descriptions survive the round trip.
"""

import csv
import io
from datetime import date
from typing import Iterable, List, Optional, Sequence

from .schemas import StudyWithAgent

STUDY_EXPORT_HEADER = (
    "Study Date",
    "Agent Name",
    "Task Description",
    "Time Without AI (min)",
    "Time With AI (min)",
    "Time Saved (min)",
    "Usage Count",
    "Usage Discount %",
    "Net Usage",
    "Cost Per Hour",
    "Net Time Saved (hours)",
    "Potential Savings",
)

EXPORT_MEDIA_TYPE = "text/csv"


def study_export_row(study: StudyWithAgent) -> List[object]:
    return [
        study.study_date.isoformat(),
        study.agent.name if study.agent else "",
        study.task_description,
        study.time_without_ai_minutes,
        study.time_with_ai_minutes,
        study.time_saved_minutes or 0,
        study.usage_count,
        study.usage_discount_percent,
        study.net_usage or 0,
        study.cost_per_hour,
        study.net_time_saved_hours or 0,
        study.potential_savings or 0,
    ]


def export_studies_csv(studies: Iterable[StudyWithAgent]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(STUDY_EXPORT_HEADER)
    for study in studies:
        writer.writerow(study_export_row(study))
    return buffer.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"time-motion-studies-{today.isoformat()}.csv"


def filter_studies(
    studies: Sequence[StudyWithAgent],
    search: Optional[str] = None,
    agent_id: Optional[str] = None,
) -> List[StudyWithAgent]:
    """Case-insensitive search over task description, agent name and notes."""
    selected = list(studies)

    if search:
        needle = search.lower()
        selected = [
            s for s in selected
            if needle in s.task_description.lower()
            or (s.agent is not None and needle in s.agent.name.lower())
            or (s.notes is not None and needle in s.notes.lower())
        ]

    if agent_id:
        selected = [s for s in selected if s.agent_id == agent_id]

    return selected
