import json
import logging
from typing import Any, Dict, List, Optional

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from . import assistant_prompt
from .config import AssistantConfig, Settings
from .conversations import ChatMessage


def assistant_config(settings: Settings) -> AssistantConfig:
    return AssistantConfig(
        name=assistant_prompt.AGENT_NAME,
        system_prompt=assistant_prompt.SYSTEM_PROMPT,
        model=settings.openrouter_model or assistant_prompt.MODEL,
        description=assistant_prompt.DESCRIPTION,
    )


class AssistantRelay:
    """Forwards a conversation and a data snapshot to the language model."""

    def __init__(
        self,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
        model: Optional[Model] = None,
    ):
        self.settings = settings
        self.config = assistant_config(settings)
        self.logger = logger or logging.getLogger(__name__)

        if model is None:
            if not settings.openrouter_api_key:
                raise ValueError("OPENROUTER_API_KEY must be set to enable the assistant")
            model = OpenAIChatModel(
                self.config.model,
                provider=OpenAIProvider(
                    base_url=settings.openrouter_base_url,
                    api_key=settings.openrouter_api_key,
                ),
            )

        self.agent = Agent(
            model,
            system_prompt=self.config.system_prompt,
            model_settings=ModelSettings(
                temperature=settings.assistant_temperature,
                max_tokens=settings.assistant_max_tokens,
            ),
        )

        self.logger.info(
            f"Initialized assistant: {self.config.name}",
            extra={"assistant": self.config.name, "model": self.config.model},
        )

    @staticmethod
    def division_instructions(context: Dict[str, Any]) -> str:
        division = context.get("division")
        if not division:
            return ""
        agents = context.get("agents") or []
        return assistant_prompt.DIVISION_INSTRUCTIONS.format(
            name=division.get("name"),
            description=division.get("description") or "no description available",
            agent_count=context.get("summary", {}).get("totalAgents", len(agents)),
            agent_names=", ".join(a["name"] for a in agents) or "none",
        )

    def render_prompt(self, history: List[ChatMessage], latest: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Render instructions, snapshot and conversation as one prompt."""
        sections = []
        if context:
            instructions = self.division_instructions(context)
            if instructions:
                sections.append(instructions)
            sections.append("Current Context:\n" + json.dumps(context, indent=2, default=str))

        if history:
            lines = [f"{m.role}: {m.content}" for m in history]
            lines.append(f"user: {latest}")
            sections.append("Conversation so far:\n" + "\n".join(lines))
        else:
            sections.append(latest)

        return "\n\n".join(sections)

    async def reply(self, history: List[ChatMessage], latest: str, context: Optional[Dict[str, Any]] = None) -> str:
        prompt = self.render_prompt(history, latest, context)
        result = await self.agent.run(prompt)
        reply = str(result.output)
        self.logger.info(
            "Assistant replied",
            extra={"assistant": self.config.name, "history_len": len(history), "reply_len": len(reply)},
        )
        return reply
