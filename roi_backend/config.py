from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AssistantConfig(BaseModel):
    """Configuration for the analytics assistant agent."""

    name: str = Field(..., description="Unique name for this assistant")
    system_prompt: str = Field(..., description="System prompt for this assistant")
    model: str = Field(..., description="Model name to use for this assistant")
    description: str = Field(default="", description="Human-readable description of the assistant's purpose")


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    openrouter_api_key: Optional[str] = Field(default=None, env="OPENROUTER_API_KEY")
    openrouter_model: str = Field(default="openai/gpt-4o-mini", env="OPENROUTER_MODEL")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        env="OPENROUTER_BASE_URL",
    )
    assistant_temperature: float = Field(default=0.7, env="ASSISTANT_TEMPERATURE")
    assistant_max_tokens: int = Field(default=1000, env="ASSISTANT_MAX_TOKENS")
    conversation_ttl_seconds: int = Field(default=3600, env="CONVERSATION_TTL_SECONDS")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    allow_origins: list[str] = Field(default_factory=lambda: ["*"], env="ALLOW_ORIGINS")

    organization_name: str = Field(default="Your Organization", env="ORGANIZATION_NAME")
    total_employees: int = Field(default=100, env="TOTAL_EMPLOYEES")
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12, env="FISCAL_YEAR_START_MONTH")
    standard_work_hours_per_year: float = Field(default=2080, gt=0, env="STANDARD_WORK_HOURS_PER_YEAR")
    default_usage_discount_percent: float = Field(default=50, ge=0, le=100, env="DEFAULT_USAGE_DISCOUNT_PERCENT")
    default_cost_per_hour: float = Field(default=20, ge=0, env="DEFAULT_COST_PER_HOUR")

    @property
    def assistant_enabled(self) -> bool:
        return bool(self.openrouter_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
