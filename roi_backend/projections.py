"""Projected vs actual savings.

Projections run an agent's average variables through ``compute_metrics``,
the same function that derives a study's stored fields, so projected and
measured figures always share one formula. Actual figures are sums of the
derived fields already stored on studies.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .agent_service import AgentService
from .config import Settings, get_settings
from .errors import RecordNotFoundError
from .metrics import (
    AdoptionAdjustedProjection,
    AgentImpact,
    calculate_adoption_adjusted_projections,
    calculate_adoption_scenario,
    calculate_fte,
    compute_metrics,
)
from .schemas import (
    ActualSummary,
    Agent,
    AgentProjection,
    GlobalSummary,
    ProjectedSummary,
    Study,
)
from .storage import AGENTS
from .study_service import StudyService


def has_projection_data(agent: Agent) -> bool:
    return (agent.avg_time_without_agent_minutes or 0) > 0 and (agent.avg_usage_count or 0) > 0


def projection_inputs(agent: Agent, settings: Settings) -> Tuple[float, float, float, float, float]:
    """Engine inputs for an agent, with configured fallbacks for unset values.

    An explicit 0% discount or $0 wage is kept; only missing values fall back.
    """
    discount = agent.default_usage_discount_percent
    if discount is None:
        discount = settings.default_usage_discount_percent

    wage = agent.avg_hourly_wage
    if wage is None:
        wage = agent.default_cost_per_employee_hour
    if wage is None:
        wage = settings.default_cost_per_hour

    return (
        agent.avg_time_without_agent_minutes or 0,
        agent.avg_time_with_agent_minutes or 0,
        agent.avg_usage_count or 0,
        discount,
        wage,
    )


def project_agent(agent: Agent, settings: Optional[Settings] = None) -> AgentProjection:
    settings = settings or get_settings()
    metrics = compute_metrics(*projection_inputs(agent, settings))
    return AgentProjection(
        agent_id=agent.id,
        name=agent.name,
        category=agent.category,
        time_saved_per_use_minutes=metrics.time_saved_minutes,
        net_usage=metrics.net_usage,
        projected_time_saved_hours=metrics.net_time_saved_hours,
        projected_cost_savings=metrics.potential_savings,
        fte_equivalent=calculate_fte(metrics.net_time_saved_hours, settings.standard_work_hours_per_year),
        adoption_rate_percent=agent.adoption_rate_percent or 0,
    )


def projected_agents(agents: Iterable[Agent], settings: Optional[Settings] = None) -> List[AgentProjection]:
    """Projections for active agents that carry projection variables."""
    settings = settings or get_settings()
    return [
        project_agent(agent, settings)
        for agent in agents
        if agent.status == "active" and has_projection_data(agent)
    ]


def projected_summary(agents: Iterable[Agent], settings: Optional[Settings] = None) -> ProjectedSummary:
    settings = settings or get_settings()
    projections = projected_agents(agents, settings)
    total_time = sum(p.projected_time_saved_hours for p in projections)
    total_savings = sum(p.projected_cost_savings for p in projections)
    count = len(projections)
    return ProjectedSummary(
        total_time_saved=total_time,
        total_savings=total_savings,
        active_agents=count,
        avg_savings_per_agent=total_savings / count if count else 0.0,
        fte_equivalent=calculate_fte(total_time, settings.standard_work_hours_per_year),
    )


def actual_summary(studies: Sequence[Study], settings: Optional[Settings] = None) -> ActualSummary:
    settings = settings or get_settings()
    total_time = sum(s.net_time_saved_hours or 0 for s in studies)
    total_savings = sum(s.potential_savings or 0 for s in studies)
    agent_count = len({s.agent_id for s in studies})
    return ActualSummary(
        total_time_saved=total_time,
        total_savings=total_savings,
        total_studies=len(studies),
        active_agents=agent_count,
        avg_savings_per_agent=total_savings / agent_count if agent_count else 0.0,
        fte_equivalent=calculate_fte(total_time, settings.standard_work_hours_per_year),
    )


def variance_percent(actual: float, projected: float) -> float:
    """How far actual savings land from projected, in percent of projected."""
    if projected <= 0:
        return 0.0
    return (actual / projected) * 100 - 100


def global_summary(
    agents: Sequence[Agent],
    studies: Sequence[Study],
    settings: Optional[Settings] = None,
) -> GlobalSummary:
    settings = settings or get_settings()
    projected = projected_summary(agents, settings)
    actual = actual_summary(studies, settings)
    return GlobalSummary(
        projected=projected,
        actual=actual,
        variance_percent=variance_percent(actual.total_savings, projected.total_savings),
        has_projected_data=projected.active_agents > 0,
        has_actual_data=actual.total_studies > 0,
    )


def agents_needing_validation(agents: Iterable[Agent], studies: Iterable[Study]) -> List[Agent]:
    """Agents with projection variables but no measured study yet."""
    studied = {s.agent_id for s in studies}
    return [a for a in agents if has_projection_data(a) and a.id not in studied]


class ProjectionAggregator:
    """Division-scoped summaries over the agent and study services."""

    def __init__(
        self,
        agent_service: AgentService,
        study_service: StudyService,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.agents = agent_service
        self.studies = study_service
        self.settings = settings or get_settings()
        self.logger = logger or logging.getLogger(__name__)

    async def scope(self, division_id: Optional[str] = None) -> Tuple[List[Agent], List[Study]]:
        agents = await self.agents.list(division_id=division_id)
        studies = await self.studies.list()
        if division_id:
            agent_ids = {a.id for a in agents}
            studies = [s for s in studies if s.agent_id in agent_ids]
        return agents, studies

    async def global_summary(self, division_id: Optional[str] = None) -> GlobalSummary:
        agents, studies = await self.scope(division_id)
        summary = global_summary(agents, studies, self.settings)
        self.logger.info(
            "Computed global summary",
            extra={
                "division_id": division_id,
                "projected_agents": summary.projected.active_agents,
                "total_studies": summary.actual.total_studies,
            },
        )
        return summary

    async def projected_agents(self, division_id: Optional[str] = None) -> List[AgentProjection]:
        agents = await self.agents.list(division_id=division_id)
        return projected_agents(agents, self.settings)

    async def _agent(self, agent_id: str) -> Agent:
        agent = await self.agents.get_by_id(agent_id)
        if agent is None:
            raise RecordNotFoundError(AGENTS, agent_id)
        return agent

    async def agent_projection(self, agent_id: str) -> AgentProjection:
        return project_agent(await self._agent(agent_id), self.settings)

    async def adoption_outlook(self, agent_id: str) -> AdoptionAdjustedProjection:
        agent = await self._agent(agent_id)
        return calculate_adoption_adjusted_projections(
            *projection_inputs(agent, self.settings),
            adoption_rate_percent=agent.adoption_rate_percent or 0,
            target_user_base=agent.target_user_base,
            current_active_users=agent.current_active_users,
            hours_per_year=self.settings.standard_work_hours_per_year,
        )

    async def adoption_scenario(self, agent_id: str, adoption_percent: float) -> AgentImpact:
        agent = await self._agent(agent_id)
        return calculate_adoption_scenario(
            *projection_inputs(agent, self.settings),
            scenario_adoption_percent=adoption_percent,
            hours_per_year=self.settings.standard_work_hours_per_year,
        )
