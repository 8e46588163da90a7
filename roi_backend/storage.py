"""Record storage used by the agent and study services.

``RecordStore`` is the contract the services depend on: insert with a
generated id, get, update (replace the given fields), delete, and list with
equality filters. Studies are also readable joined with their agent's
display fields, so the stored study never carries a copy of them.
"""

import asyncio
import copy
import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .errors import StorageError

AGENTS = "agents"
STUDIES = "studies"
GOALS = "goals"
ALERTS = "alerts"

COLLECTIONS = (AGENTS, STUDIES, GOALS, ALERTS)

# Agent fields copied onto a study when it is read joined
AGENT_JOIN_FIELDS = ("name", "category")

Record = Dict[str, Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordStore(ABC):
    """Storage collaborator contract."""

    @abstractmethod
    async def insert(self, collection: str, record: Mapping[str, Any]) -> Record: ...

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Record]: ...

    @abstractmethod
    async def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Optional[Record]: ...

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> bool: ...

    @abstractmethod
    async def list(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Record]: ...

    @abstractmethod
    async def list_studies_with_agent(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Record]: ...

    @abstractmethod
    async def get_study_with_agent(self, study_id: str) -> Optional[Record]: ...


class InMemoryRecordStore(RecordStore):
    """Process-local store. Access is serialised with an asyncio lock."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.collections: Dict[str, Dict[str, Record]] = {name: {} for name in COLLECTIONS}
        self.lock = asyncio.Lock()
        # Insertion sequence, breaks ties between identical timestamps
        self._seq = itertools.count()
        self._order: Dict[str, int] = {}

    def _collection(self, collection: str) -> Dict[str, Record]:
        try:
            return self.collections[collection]
        except KeyError:
            raise StorageError(f"unknown collection '{collection}'") from None

    async def insert(self, collection: str, record: Mapping[str, Any]) -> Record:
        async with self.lock:
            records = self._collection(collection)
            now = _utcnow()
            stored = copy.deepcopy(dict(record))
            stored["id"] = str(uuid.uuid4())
            stored.setdefault("created_at", now)
            stored["updated_at"] = now
            records[stored["id"]] = stored
            self._order[stored["id"]] = next(self._seq)
            self.logger.debug("Inserted record", extra={"collection": collection, "record_id": stored["id"]})
            return copy.deepcopy(stored)

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        async with self.lock:
            record = self._collection(collection).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    async def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Optional[Record]:
        async with self.lock:
            records = self._collection(collection)
            if record_id not in records:
                return None
            stored = records[record_id]
            changes = {k: v for k, v in copy.deepcopy(dict(fields)).items() if k not in ("id", "created_at")}
            stored.update(changes)
            stored["updated_at"] = _utcnow()
            return copy.deepcopy(stored)

    async def delete(self, collection: str, record_id: str) -> bool:
        async with self.lock:
            removed = self._collection(collection).pop(record_id, None)
            self._order.pop(record_id, None)
            return removed is not None

    async def list(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Record]:
        async with self.lock:
            return [copy.deepcopy(r) for r in self._select(collection, filters, order_by, descending)]

    async def list_studies_with_agent(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Record]:
        async with self.lock:
            return [self._join_agent(r) for r in self._select(STUDIES, filters, order_by, descending)]

    async def get_study_with_agent(self, study_id: str) -> Optional[Record]:
        async with self.lock:
            record = self._collection(STUDIES).get(study_id)
            return self._join_agent(record) if record is not None else None

    def _select(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]],
        order_by: str,
        descending: bool,
    ) -> List[Record]:
        records = list(self._collection(collection).values())
        if filters:
            records = [
                r for r in records
                if all(r.get(key) == value for key, value in filters.items())
            ]
        # Records missing the sort key go last in either direction
        present = [r for r in records if r.get(order_by) is not None]
        missing = [r for r in records if r.get(order_by) is None]
        present.sort(key=lambda r: (r[order_by], self._order.get(r["id"], 0)), reverse=descending)
        return present + missing

    def _join_agent(self, study: Record) -> Record:
        joined = copy.deepcopy(study)
        agent = self.collections[AGENTS].get(study.get("agent_id"))
        joined["agent"] = (
            {field: agent.get(field) for field in AGENT_JOIN_FIELDS} if agent is not None else None
        )
        return joined
