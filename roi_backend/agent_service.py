import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from .errors import RecordNotFoundError, RecordValidationError, StorageError
from .metrics import calculate_adoption_rate
from .schemas import AdoptionStats, Agent, AgentFields
from .storage import AGENTS, STUDIES, RecordStore

UNASSIGNED_DIVISION = "unassigned"

LOW_ADOPTION_PERCENT = 33
HIGH_ADOPTION_PERCENT = 67

_MANAGED_FIELDS = ("id", "created_at", "updated_at", "adoption_rate_percent", "adoption_last_updated")


def validate_agent_fields(data: Mapping[str, Any]) -> AgentFields:
    try:
        return AgentFields.model_validate(data)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "agent"
        raise RecordValidationError(field, error["msg"]) from exc


def division_filter(division_id: Optional[str]) -> Optional[dict]:
    """Equality filter for a division, ``"unassigned"`` meaning no division."""
    if division_id == UNASSIGNED_DIVISION:
        return {"division_id": None}
    if division_id:
        return {"division_id": division_id}
    return None


class AgentService:
    """CRUD over agents plus adoption bookkeeping."""

    def __init__(self, store: RecordStore, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    async def _store_call(self, operation: str, *args, **kwargs):
        try:
            return await getattr(self.store, operation)(*args, **kwargs)
        except StorageError:
            raise
        except Exception as exc:
            self.logger.exception("Storage %s failed", operation)
            raise StorageError(f"storage {operation} failed: {exc}", cause=exc) from exc

    @staticmethod
    def _to_record(fields: AgentFields, previous: Optional[Mapping[str, Any]] = None) -> dict:
        record = fields.model_dump()
        record["adoption_rate_percent"] = calculate_adoption_rate(
            fields.current_active_users or 0, fields.target_user_base or 0
        )
        users = (fields.target_user_base, fields.current_active_users)
        previous_users = (
            (previous.get("target_user_base"), previous.get("current_active_users")) if previous else (None, None)
        )
        if users != previous_users and any(value is not None for value in users):
            record["adoption_last_updated"] = datetime.now(timezone.utc)
        return record

    async def list(self, status: Optional[str] = None, division_id: Optional[str] = None) -> List[Agent]:
        filters = division_filter(division_id) or {}
        if status:
            filters["status"] = status
        records = await self._store_call("list", AGENTS, filters=filters or None)
        return [Agent.model_validate(r) for r in records]

    async def get_by_id(self, agent_id: str) -> Optional[Agent]:
        record = await self._store_call("get", AGENTS, agent_id)
        return Agent.model_validate(record) if record is not None else None

    async def create(self, payload: Union[Mapping[str, Any], BaseModel]) -> Agent:
        data = payload.model_dump(exclude_unset=True) if isinstance(payload, BaseModel) else dict(payload)
        data = {k: v for k, v in data.items() if k not in _MANAGED_FIELDS}
        fields = validate_agent_fields(data)

        stored = await self._store_call("insert", AGENTS, self._to_record(fields))
        self.logger.info("Created agent", extra={"agent_id": stored["id"]})
        return Agent.model_validate(stored)

    async def update(self, agent_id: str, payload: Union[Mapping[str, Any], BaseModel]) -> Agent:
        existing = await self._store_call("get", AGENTS, agent_id)
        if existing is None:
            raise RecordNotFoundError(AGENTS, agent_id)

        changes = payload.model_dump(exclude_unset=True) if isinstance(payload, BaseModel) else dict(payload)
        merged = {k: v for k, v in existing.items() if k not in _MANAGED_FIELDS}
        merged.update({k: v for k, v in changes.items() if k not in _MANAGED_FIELDS})
        fields = validate_agent_fields(merged)

        updated = await self._store_call("update", AGENTS, agent_id, self._to_record(fields, existing))
        if updated is None:
            raise RecordNotFoundError(AGENTS, agent_id)
        self.logger.info("Updated agent", extra={"agent_id": agent_id})
        return Agent.model_validate(updated)

    async def update_adoption(
        self,
        agent_id: str,
        target_user_base: int,
        current_active_users: int,
        methodology: Optional[str] = None,
    ) -> Agent:
        changes: dict = {
            "target_user_base": target_user_base,
            "current_active_users": current_active_users,
        }
        if methodology:
            changes["adoption_methodology"] = methodology
        return await self.update(agent_id, changes)

    async def delete(self, agent_id: str) -> None:
        """Delete an agent. Refused while studies still reference it."""
        if await self._store_call("get", AGENTS, agent_id) is None:
            raise RecordNotFoundError(AGENTS, agent_id)

        studies = await self._store_call("list", STUDIES, filters={"agent_id": agent_id})
        if studies:
            raise RecordValidationError("agent_id", f"agent still has {len(studies)} studies")

        await self._store_call("delete", AGENTS, agent_id)
        self.logger.info("Deleted agent", extra={"agent_id": agent_id})

    async def adoption_stats(self) -> AdoptionStats:
        agents = await self.list(status="active")
        if not agents:
            return AdoptionStats(
                average_adoption=0.0,
                total_agents=0,
                low_adoption=0,
                medium_adoption=0,
                high_adoption=0,
                total_target_users=0,
                total_active_users=0,
            )

        rates = [agent.adoption_rate_percent or 0 for agent in agents]
        return AdoptionStats(
            average_adoption=sum(rates) / len(rates),
            total_agents=len(agents),
            low_adoption=sum(1 for r in rates if r < LOW_ADOPTION_PERCENT),
            medium_adoption=sum(1 for r in rates if LOW_ADOPTION_PERCENT <= r < HIGH_ADOPTION_PERCENT),
            high_adoption=sum(1 for r in rates if r >= HIGH_ADOPTION_PERCENT),
            total_target_users=sum(agent.target_user_base or 0 for agent in agents),
            total_active_users=sum(agent.current_active_users or 0 for agent in agents),
        )
