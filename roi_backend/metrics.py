"""ROI metrics engine.

One formula family turns time, usage and cost inputs into savings figures.
It is applied to measured time-and-motion studies and to agent-level
projection variables alike, so every caller must go through
``compute_metrics`` rather than repeating the arithmetic.

Nothing in this module rounds except ``round_half_up`` and the ``format_*``
helpers, which are for display and the assistant snapshot only.
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_WORK_HOURS_PER_YEAR = 2080


class StudyMetrics(BaseModel):
    """Derived figures for one set of study or projection inputs."""

    model_config = ConfigDict(frozen=True)

    time_saved_minutes: float
    net_usage: float
    net_time_saved_hours: float
    potential_savings: float


def compute_metrics(
    time_without_ai_minutes: float,
    time_with_ai_minutes: float,
    usage_count: float,
    usage_discount_percent: float,
    cost_per_hour: float,
) -> StudyMetrics:
    """Derive time saved, net usage, net hours and savings.

    Inputs are assumed to be inside their domain (non-negative times, usage
    and cost, discount between 0 and 100); callers validate beforehand.
    A slower AI run yields negative savings, which is reported as is.
    """
    time_saved_minutes = time_without_ai_minutes - time_with_ai_minutes
    net_usage = usage_count * (1 - usage_discount_percent / 100)
    net_time_saved_hours = (time_saved_minutes * net_usage) / 60
    potential_savings = net_time_saved_hours * cost_per_hour

    return StudyMetrics(
        time_saved_minutes=time_saved_minutes,
        net_usage=net_usage,
        net_time_saved_hours=net_time_saved_hours,
        potential_savings=potential_savings,
    )


def calculate_fte(total_hours: float, hours_per_year: float = DEFAULT_WORK_HOURS_PER_YEAR) -> float:
    return total_hours / hours_per_year


def calculate_adoption_rate(current_users: float, target_users: float) -> float:
    if target_users <= 0:
        return 0.0
    return min(100.0, (current_users / target_users) * 100)


def calculate_projected_usage_at_adoption(base_usage: float, adoption_percent: float) -> float:
    return base_usage * (adoption_percent / 100)


class AgentImpact(BaseModel):
    """Annualised impact of an agent for one usage level."""

    model_config = ConfigDict(frozen=True)

    time_saved_per_use_minutes: float
    net_usage: float
    annual_time_saved_hours: float
    annual_cost_savings: float
    fte_equivalent: float


def calculate_agent_impact(
    avg_time_without_agent_minutes: float,
    avg_time_with_agent_minutes: float,
    avg_usage_count: float,
    usage_discount_percent: float,
    avg_hourly_wage: float,
    hours_per_year: float = DEFAULT_WORK_HOURS_PER_YEAR,
) -> AgentImpact:
    metrics = compute_metrics(
        avg_time_without_agent_minutes,
        avg_time_with_agent_minutes,
        avg_usage_count,
        usage_discount_percent,
        avg_hourly_wage,
    )
    return AgentImpact(
        time_saved_per_use_minutes=metrics.time_saved_minutes,
        net_usage=metrics.net_usage,
        annual_time_saved_hours=metrics.net_time_saved_hours,
        annual_cost_savings=metrics.potential_savings,
        fte_equivalent=calculate_fte(metrics.net_time_saved_hours, hours_per_year),
    )


class OpportunityGap(BaseModel):
    time_saved_hours: float
    cost_savings: float
    fte_equivalent: float


class AdoptionMetrics(BaseModel):
    adoption_rate: float
    target_users: int
    current_users: int
    users_to_full_adoption: int


class IncrementalValue(BaseModel):
    time_saved_hours: float
    cost_savings: float


class AdoptionAdjustedProjection(BaseModel):
    current_impact: AgentImpact
    potential_impact: AgentImpact
    opportunity_gap: OpportunityGap
    adoption_metrics: AdoptionMetrics
    incremental_value_per_percent: IncrementalValue


def calculate_adoption_adjusted_projections(
    avg_time_without_agent_minutes: float,
    avg_time_with_agent_minutes: float,
    avg_usage_count: float,
    usage_discount_percent: float,
    avg_hourly_wage: float,
    adoption_rate_percent: float,
    target_user_base: Optional[int] = None,
    current_active_users: Optional[int] = None,
    hours_per_year: float = DEFAULT_WORK_HOURS_PER_YEAR,
) -> AdoptionAdjustedProjection:
    """Compare the impact at the current adoption rate with full adoption.

    The incremental value is the gap spread over the adoption percentage
    still to be won; it is zero once adoption reaches 100%.
    """
    current_usage = calculate_projected_usage_at_adoption(avg_usage_count, adoption_rate_percent)

    current_impact = calculate_agent_impact(
        avg_time_without_agent_minutes,
        avg_time_with_agent_minutes,
        current_usage,
        usage_discount_percent,
        avg_hourly_wage,
        hours_per_year,
    )
    potential_impact = calculate_agent_impact(
        avg_time_without_agent_minutes,
        avg_time_with_agent_minutes,
        avg_usage_count,
        usage_discount_percent,
        avg_hourly_wage,
        hours_per_year,
    )

    gap = OpportunityGap(
        time_saved_hours=potential_impact.annual_time_saved_hours - current_impact.annual_time_saved_hours,
        cost_savings=potential_impact.annual_cost_savings - current_impact.annual_cost_savings,
        fte_equivalent=potential_impact.fte_equivalent - current_impact.fte_equivalent,
    )

    remaining = 100 - adoption_rate_percent
    incremental = IncrementalValue(
        time_saved_hours=gap.time_saved_hours / remaining if remaining > 0 else 0.0,
        cost_savings=gap.cost_savings / remaining if remaining > 0 else 0.0,
    )

    target = target_user_base or 0
    current = current_active_users or 0
    return AdoptionAdjustedProjection(
        current_impact=current_impact,
        potential_impact=potential_impact,
        opportunity_gap=gap,
        adoption_metrics=AdoptionMetrics(
            adoption_rate=adoption_rate_percent,
            target_users=target,
            current_users=current,
            users_to_full_adoption=target - current,
        ),
        incremental_value_per_percent=incremental,
    )


def calculate_adoption_scenario(
    avg_time_without_agent_minutes: float,
    avg_time_with_agent_minutes: float,
    avg_usage_count: float,
    usage_discount_percent: float,
    avg_hourly_wage: float,
    scenario_adoption_percent: float,
    hours_per_year: float = DEFAULT_WORK_HOURS_PER_YEAR,
) -> AgentImpact:
    scenario_usage = calculate_projected_usage_at_adoption(avg_usage_count, scenario_adoption_percent)
    return calculate_agent_impact(
        avg_time_without_agent_minutes,
        avg_time_with_agent_minutes,
        scenario_usage,
        usage_discount_percent,
        avg_hourly_wage,
        hours_per_year,
    )


# Presentation helpers. Rounding happens here and nowhere else.

def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up: ``2.5 -> 3`` and ``-2.5 -> -2``."""
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def format_number(value: float) -> str:
    return f"{round_half_up(value):,}"


def format_hours(hours: float) -> str:
    return format_number(hours)


def format_currency(amount: float) -> str:
    rounded = round_half_up(amount)
    if rounded < 0:
        return f"-${abs(rounded):,}"
    return f"${rounded:,}"


def format_minutes_to_time(minutes: float) -> str:
    sign = "-" if minutes < 0 else ""
    minutes = abs(minutes)
    hours = int(minutes // 60)
    mins = round_half_up(minutes % 60)
    if mins == 60:
        hours, mins = hours + 1, 0

    if hours == 0:
        text = f"{mins}m"
    elif mins == 0:
        text = f"{hours}h"
    else:
        text = f"{hours}h {mins}m"
    return sign + text if text != "0m" else text
