"""Time-and-motion study records.

Every write goes through ``compute_metrics``: the four derived fields are
recomputed from the merged inputs at create and update time and stored next
to them, so a persisted study is always consistent with its inputs.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from .errors import RecordNotFoundError, RecordValidationError, StorageError
from .metrics import compute_metrics
from .schemas import StudyFields, StudyTotals, StudyWithAgent
from .storage import AGENTS, STUDIES, RecordStore

REQUIRED_FIELDS = (
    "agent_id",
    "task_description",
    "study_date",
    "time_without_ai_minutes",
    "time_with_ai_minutes",
    "usage_count",
    "usage_discount_percent",
    "cost_per_hour",
)

DERIVED_FIELDS = (
    "time_saved_minutes",
    "net_usage",
    "net_time_saved_hours",
    "potential_savings",
)

# Fields owned by the store or the join, never taken from a payload
_MANAGED_FIELDS = ("id", "created_at", "updated_at", "agent") + DERIVED_FIELDS

StudyPayload = Union[Mapping[str, Any], BaseModel]


def _payload_to_dict(payload: StudyPayload) -> dict:
    if isinstance(payload, BaseModel):
        data = payload.model_dump(exclude_unset=True)
    else:
        data = dict(payload)
    return {k: v for k, v in data.items() if k not in _MANAGED_FIELDS}


def validate_study_fields(data: Mapping[str, Any], prefix: str = "") -> StudyFields:
    """Check presence and domain of every study input.

    Raises ``RecordValidationError`` naming the first offending field.
    """
    for field in REQUIRED_FIELDS:
        if data.get(field) is None:
            raise RecordValidationError(f"{prefix}{field}", "is required")

    try:
        return StudyFields.model_validate(data)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "study"
        raise RecordValidationError(f"{prefix}{field}", error["msg"]) from exc


def derive_study_record(fields: StudyFields) -> dict:
    """Inputs plus freshly computed derived fields, ready to persist."""
    metrics = compute_metrics(
        fields.time_without_ai_minutes,
        fields.time_with_ai_minutes,
        fields.usage_count,
        fields.usage_discount_percent,
        fields.cost_per_hour,
    )
    record = fields.model_dump()
    record.update(metrics.model_dump())
    return record


class StudyService:
    """CRUD over studies with recompute-on-write."""

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

    async def _require_agent(self, agent_id: str) -> None:
        agent = await self._store_call("get", AGENTS, agent_id)
        if agent is None:
            raise RecordNotFoundError(AGENTS, agent_id)

    async def _joined(self, study_id: str) -> StudyWithAgent:
        record = await self._store_call("get_study_with_agent", study_id)
        if record is None:
            raise RecordNotFoundError(STUDIES, study_id)
        return StudyWithAgent.model_validate(record)

    async def list(self, agent_id: Optional[str] = None) -> List[StudyWithAgent]:
        """Studies joined with their agent, newest created first."""
        filters = {"agent_id": agent_id} if agent_id else None
        records = await self._store_call("list_studies_with_agent", filters=filters)
        return [StudyWithAgent.model_validate(r) for r in records]

    async def get_by_id(self, study_id: str) -> Optional[StudyWithAgent]:
        record = await self._store_call("get_study_with_agent", study_id)
        return StudyWithAgent.model_validate(record) if record is not None else None

    async def create(self, payload: StudyPayload) -> StudyWithAgent:
        fields = validate_study_fields(_payload_to_dict(payload))
        await self._require_agent(fields.agent_id)

        stored = await self._store_call("insert", STUDIES, derive_study_record(fields))
        self.logger.info(
            "Created study",
            extra={"study_id": stored["id"], "agent_id": fields.agent_id, "potential_savings": stored["potential_savings"]},
        )
        return await self._joined(stored["id"])

    async def create_many(self, payloads: Iterable[StudyPayload]) -> List[StudyWithAgent]:
        """Batch import. Every item is validated before the first insert."""
        validated = [
            validate_study_fields(_payload_to_dict(payload), prefix=f"[{index}].")
            for index, payload in enumerate(payloads)
        ]
        for agent_id in dict.fromkeys(fields.agent_id for fields in validated):
            await self._require_agent(agent_id)

        created = []
        for fields in validated:
            stored = await self._store_call("insert", STUDIES, derive_study_record(fields))
            created.append(await self._joined(stored["id"]))

        self.logger.info("Imported studies", extra={"count": len(created)})
        return created

    async def update(self, study_id: str, payload: StudyPayload) -> StudyWithAgent:
        """Merge changes into the stored study and recompute derived fields.

        Fails with ``RecordNotFoundError`` before any write when the study is
        missing.
        """
        existing = await self._store_call("get", STUDIES, study_id)
        if existing is None:
            raise RecordNotFoundError(STUDIES, study_id)

        merged = {k: v for k, v in existing.items() if k not in _MANAGED_FIELDS}
        merged.update(_payload_to_dict(payload))
        fields = validate_study_fields(merged)
        if fields.agent_id != existing.get("agent_id"):
            await self._require_agent(fields.agent_id)

        updated = await self._store_call("update", STUDIES, study_id, derive_study_record(fields))
        if updated is None:
            raise RecordNotFoundError(STUDIES, study_id)

        self.logger.info("Updated study", extra={"study_id": study_id})
        return await self._joined(study_id)

    async def delete(self, study_id: str) -> None:
        removed = await self._store_call("delete", STUDIES, study_id)
        if not removed:
            raise RecordNotFoundError(STUDIES, study_id)
        self.logger.info("Deleted study", extra={"study_id": study_id})

    async def aggregate_totals(self, agent_id: Optional[str] = None) -> StudyTotals:
        """Sum stored derived fields. Inputs are never re-derived here."""
        filters = {"agent_id": agent_id} if agent_id else None
        records = await self._store_call("list", STUDIES, filters=filters)
        return StudyTotals(
            total_time_saved=sum(r.get("net_time_saved_hours") or 0 for r in records),
            total_savings=sum(r.get("potential_savings") or 0 for r in records),
            total_studies=len(records),
        )
