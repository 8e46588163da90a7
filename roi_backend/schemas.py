from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .conversations import ChatMessage


def _non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


# --- Metrics preview --------------------------------------------------------

class MetricsPreviewRequest(BaseModel):
    """Inputs for a live metrics preview. Bounds mirror the study record."""
    time_without_ai_minutes: float = Field(..., ge=0, allow_inf_nan=False)
    time_with_ai_minutes: float = Field(..., ge=0, allow_inf_nan=False)
    usage_count: float = Field(..., ge=0, allow_inf_nan=False)
    usage_discount_percent: float = Field(default=50, ge=0, le=100)
    cost_per_hour: float = Field(default=20, ge=0, allow_inf_nan=False)


# --- Agents -----------------------------------------------------------------

class AgentFields(BaseModel):
    """Writable agent attributes, validated before every write."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Display name of the agent")
    category: Optional[str] = None
    description: Optional[str] = None
    status: Literal["active", "inactive"] = "active"
    division_id: Optional[str] = None

    avg_time_without_agent_minutes: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    avg_time_with_agent_minutes: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    avg_usage_count: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    default_usage_discount_percent: Optional[float] = Field(50, ge=0, le=100)
    avg_hourly_wage: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    default_cost_per_employee_hour: Optional[float] = Field(20, ge=0, allow_inf_nan=False)

    target_user_base: Optional[int] = Field(None, ge=0)
    current_active_users: Optional[int] = Field(None, ge=0)
    adoption_methodology: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _non_blank(value)


class Agent(AgentFields):
    id: str
    adoption_rate_percent: float = 0.0
    adoption_last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AgentChanges(BaseModel):
    """Partial agent payload. Merged with the stored agent, then validated."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    division_id: Optional[str] = None
    avg_time_without_agent_minutes: Optional[float] = None
    avg_time_with_agent_minutes: Optional[float] = None
    avg_usage_count: Optional[float] = None
    default_usage_discount_percent: Optional[float] = None
    avg_hourly_wage: Optional[float] = None
    default_cost_per_employee_hour: Optional[float] = None
    target_user_base: Optional[int] = None
    current_active_users: Optional[int] = None
    adoption_methodology: Optional[str] = None


class AdoptionUpdate(BaseModel):
    target_user_base: int = Field(..., ge=0)
    current_active_users: int = Field(..., ge=0)
    methodology: Optional[str] = None


class AdoptionStats(BaseModel):
    average_adoption: float
    total_agents: int
    low_adoption: int
    medium_adoption: int
    high_adoption: int
    total_target_users: int
    total_active_users: int


class AgentRef(BaseModel):
    """Agent display fields joined onto a study at read time."""
    name: str
    category: Optional[str] = None


# --- Studies ----------------------------------------------------------------

class StudyFields(BaseModel):
    """Formula inputs and descriptive fields of a time-and-motion study."""

    model_config = ConfigDict(extra="ignore")

    agent_id: str = Field(..., min_length=1)
    task_description: str
    study_date: date
    time_without_ai_minutes: float = Field(..., ge=0, allow_inf_nan=False)
    time_with_ai_minutes: float = Field(..., ge=0, allow_inf_nan=False)
    usage_count: int = Field(..., ge=0)
    usage_discount_percent: float = Field(..., ge=0, le=100)
    cost_per_hour: float = Field(..., ge=0, allow_inf_nan=False)
    notes: Optional[str] = None

    @field_validator("task_description")
    @classmethod
    def check_task_description(cls, value: str) -> str:
        return _non_blank(value)


class StudyChanges(BaseModel):
    """Create or update payload as received from a client.

    Every field is optional here; the study service decides what is required
    after merging with any existing record. Derived fields sent by a client
    are dropped.
    """

    model_config = ConfigDict(extra="ignore")

    agent_id: Optional[str] = None
    task_description: Optional[str] = None
    study_date: Optional[date] = None
    time_without_ai_minutes: Optional[float] = None
    time_with_ai_minutes: Optional[float] = None
    usage_count: Optional[float] = None
    usage_discount_percent: Optional[float] = None
    cost_per_hour: Optional[float] = None
    notes: Optional[str] = None


class Study(StudyFields):
    id: str
    time_saved_minutes: Optional[float] = None
    net_usage: Optional[float] = None
    net_time_saved_hours: Optional[float] = None
    potential_savings: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StudyWithAgent(Study):
    agent: Optional[AgentRef] = None


class StudyTotals(BaseModel):
    total_time_saved: float
    total_savings: float
    total_studies: int


# --- Projections and summaries ----------------------------------------------

class AgentProjection(BaseModel):
    agent_id: str
    name: str
    category: Optional[str] = None
    time_saved_per_use_minutes: float
    net_usage: float
    projected_time_saved_hours: float
    projected_cost_savings: float
    fte_equivalent: float
    adoption_rate_percent: float = 0.0


class ProjectedSummary(BaseModel):
    total_time_saved: float
    total_savings: float
    active_agents: int
    avg_savings_per_agent: float
    fte_equivalent: float


class ActualSummary(BaseModel):
    total_time_saved: float
    total_savings: float
    total_studies: int
    active_agents: int
    avg_savings_per_agent: float
    fte_equivalent: float


class GlobalSummary(BaseModel):
    projected: ProjectedSummary
    actual: ActualSummary
    variance_percent: float
    has_projected_data: bool
    has_actual_data: bool


# --- Goals and alerts -------------------------------------------------------

class Goal(BaseModel):
    id: str
    agent_id: Optional[str] = None
    goal_type: str
    target_value: float
    current_value: float = 0.0
    target_date: Optional[date] = None
    status: Literal["on_track", "at_risk", "behind"] = "on_track"
    data_source: Literal["projected", "actual"] = "projected"
    description: Optional[str] = None


class Alert(BaseModel):
    id: str
    agent_id: Optional[str] = None
    alert_type: str
    severity: Literal["info", "warning", "critical"] = "info"
    message: str
    status: Literal["active", "resolved"] = "active"
    created_at: Optional[datetime] = None


# --- Assistant --------------------------------------------------------------

class ChatRequest(BaseModel):
    message: str = Field(..., description="User message to send to the assistant.")
    conversation_id: Optional[str] = Field(default=None, description="Existing conversation id to continue a chat.")
    current_view: Optional[str] = Field(default=None, description="Screen the user is on (dashboard, studies, ...).")
    selected_agent_id: Optional[str] = Field(default=None, description="Agent being viewed, if any.")
    division_id: Optional[str] = Field(default=None, description="Division filter, or 'unassigned'.")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Optional metadata from the frontend.")


class ChatResponse(BaseModel):
    conversation_id: str
    reply: str
    history: List[ChatMessage]
