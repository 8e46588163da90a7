"""Data snapshot handed to the analytics assistant with every message.

Key names follow the data contract spelled out in the assistant's system
prompt. Figures are rounded half up here for readability: currency to whole
units, hours to one decimal, FTE to two.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .agent_service import UNASSIGNED_DIVISION, AgentService
from .config import Settings, get_settings
from .errors import StorageError
from .metrics import calculate_fte, round_half_up
from .projections import (
    agents_needing_validation,
    has_projection_data,
    project_agent,
    variance_percent,
)
from .schemas import Alert, Goal, StudyWithAgent
from .storage import ALERTS, GOALS, RecordStore
from .study_service import StudyService

RECENT_STUDIES_LIMIT = 10


def _iso(value: Optional[Any]) -> Optional[str]:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _study_sort_key(study: StudyWithAgent):
    return study.study_date


class AssistantContextBuilder:
    def __init__(
        self,
        agent_service: AgentService,
        study_service: StudyService,
        store: RecordStore,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.agents = agent_service
        self.studies = study_service
        self.store = store
        self.settings = settings or get_settings()
        self.logger = logger or logging.getLogger(__name__)

    async def _store_call(self, operation: str, *args, **kwargs):
        try:
            return await getattr(self.store, operation)(*args, **kwargs)
        except StorageError:
            raise
        except Exception as exc:
            self.logger.exception("Storage %s failed", operation)
            raise StorageError(f"storage {operation} failed: {exc}", cause=exc) from exc

    async def build(
        self,
        division_id: Optional[str] = None,
        current_view: Optional[str] = None,
        selected_agent_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        agents = await self.agents.list(division_id=division_id)
        agent_ids = {a.id for a in agents}

        studies = await self.studies.list()
        if division_id:
            studies = [s for s in studies if s.agent_id in agent_ids]
        studies.sort(key=_study_sort_key, reverse=True)

        goal_records = await self._store_call("list", GOALS, order_by="target_date", descending=False)
        alert_records = await self._store_call("list", ALERTS, filters={"status": "active"})
        goals = [Goal.model_validate(r) for r in goal_records]
        alerts = [Alert.model_validate(r) for r in alert_records]
        if division_id:
            goals = [g for g in goals if g.agent_id in agent_ids]
            alerts = [a for a in alerts if a.agent_id in agent_ids]

        hours_per_year = self.settings.standard_work_hours_per_year
        projections = {a.id: project_agent(a, self.settings) for a in agents if has_projection_data(a)}

        projected_savings = sum(p.projected_cost_savings for p in projections.values())
        projected_hours = sum(p.projected_time_saved_hours for p in projections.values())
        actual_savings = sum(s.potential_savings or 0 for s in studies)
        actual_hours = sum(s.net_time_saved_hours or 0 for s in studies)

        agent_rows: List[Dict[str, Any]] = []
        for agent in agents:
            own = [s for s in studies if s.agent_id == agent.id]
            projection = projections.get(agent.id)
            agent_rows.append({
                "id": agent.id,
                "name": agent.name,
                "category": agent.category,
                "status": agent.status,
                "projectedAnnualSavings": round_half_up(projection.projected_cost_savings) if projection else 0,
                "projectedAnnualHours": round_half_up(projection.projected_time_saved_hours, 1) if projection else 0,
                "actualSavings": round_half_up(sum(s.potential_savings or 0 for s in own)),
                "actualHours": round_half_up(sum(s.net_time_saved_hours or 0 for s in own), 1),
                "totalStudies": len(own),
                "hasProjections": projection is not None,
                "lastStudyDate": _iso(own[0].study_date) if own else None,
                "targetUserBase": agent.target_user_base,
                "currentActiveUsers": agent.current_active_users,
                "adoptionRatePercent": round_half_up(agent.adoption_rate_percent or 0, 1),
                "adoptionLastUpdated": _iso(agent.adoption_last_updated),
                "adoptionMethodology": agent.adoption_methodology,
            })

        context = {
            "division": self._division(division_id),
            "organization": {
                "name": self.settings.organization_name,
                "totalEmployees": self.settings.total_employees,
                "fiscalYearStartMonth": self.settings.fiscal_year_start_month,
                "standardWorkHoursPerYear": hours_per_year,
            },
            "summary": {
                "totalAgents": len(agents),
                "agentsWithProjections": len(projections),
                "agentsWithActuals": len({s.agent_id for s in studies}),
                "totalStudies": len(studies),
                "projectedAnnualSavings": round_half_up(projected_savings),
                "actualMeasuredSavings": round_half_up(actual_savings),
                "projectedAnnualTimeSaved": round_half_up(projected_hours, 1),
                "actualMeasuredTimeSaved": round_half_up(actual_hours, 1),
                "variance": round_half_up(variance_percent(actual_savings, projected_savings), 1),
                "projectedFTE": round_half_up(calculate_fte(projected_hours, hours_per_year), 2),
                "actualFTE": round_half_up(calculate_fte(actual_hours, hours_per_year), 2),
            },
            "agents": agent_rows,
            "agentsNeedingValidation": [
                {"id": a.id, "name": a.name, "category": a.category}
                for a in agents_needing_validation(agents, studies)
            ],
            "goals": [
                {
                    "id": g.id,
                    "agentId": g.agent_id,
                    "goalType": g.goal_type,
                    "targetValue": g.target_value,
                    "currentValue": g.current_value,
                    "targetDate": _iso(g.target_date),
                    "status": g.status,
                    "dataSource": g.data_source,
                    "description": g.description,
                }
                for g in goals
            ],
            "alerts": [
                {
                    "id": a.id,
                    "agentId": a.agent_id,
                    "type": a.alert_type,
                    "severity": a.severity,
                    "message": a.message,
                    "createdAt": _iso(a.created_at),
                }
                for a in alerts
            ],
            "recentStudies": [
                {
                    "id": s.id,
                    "agentId": s.agent_id,
                    "agentName": s.agent.name if s.agent else None,
                    "taskDescription": s.task_description,
                    "timeSavedMinutes": s.time_saved_minutes,
                    "netTimeSavedHours": s.net_time_saved_hours,
                    "potentialSavings": s.potential_savings,
                    "studyDate": _iso(s.study_date),
                }
                for s in studies[:RECENT_STUDIES_LIMIT]
            ],
            "currentView": current_view,
            "selectedAgentId": selected_agent_id,
        }

        self.logger.info(
            "Built assistant context",
            extra={"division_id": division_id, "agents": len(agents), "studies": len(studies)},
        )
        return context

    @staticmethod
    def _division(division_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not division_id:
            return None
        if division_id == UNASSIGNED_DIVISION:
            return {"id": UNASSIGNED_DIVISION, "name": "Unassigned Agents", "description": None}
        return {"id": division_id, "name": division_id, "description": None}
