"""
Hosted record store contract and its change feed

The terminal treats the hosted store as an opaque collaborator: per entity
type it can create, update, delete and watch records. Writes made there
(for example by a server-side job) reach terminals through the change feed,
outside the broadcast channel.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import uuid

import structlog

logger = structlog.get_logger(__name__)


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class RecordChange:
    """One row-level change reported by the change feed"""
    table: str
    kind: ChangeKind
    record_id: str
    record: Optional[Dict[str, Any]] = None


ChangeCallback = Callable[[RecordChange], None]
RecordsCallback = Callable[[List[Dict[str, Any]]], None]


class RecordService(ABC):
    """Interface for one entity type in the hosted store"""

    @abstractmethod
    def create(self, record: Dict[str, Any]) -> str:
        """Store a new record and return its id."""
        ...

    @abstractmethod
    def update(self, record_id: str, partial: Dict[str, Any]) -> None:
        """Merge fields into an existing record; no-op if absent."""
        ...

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Remove a record; no-op if absent."""
        ...

    @abstractmethod
    def get_all(self, callback: RecordsCallback) -> Callable[[], None]:
        """Call back with every record now and after each change; returns unsubscribe."""
        ...


class ChangeFeed(ABC):
    """Interface for row-level change notifications"""

    @abstractmethod
    def watch(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """Call back on every change to table; returns unsubscribe."""
        ...


class InMemoryRecordService(RecordService):
    """Hosted store stand-in keeping records in insertion order"""

    def __init__(self, table: str):
        self.table = table
        self._records: Dict[str, Dict[str, Any]] = {}
        self._record_listeners: List[RecordsCallback] = []
        self._change_listeners: List[ChangeCallback] = []

    def create(self, record: Dict[str, Any]) -> str:
        record_id = record.get("id") or uuid.uuid4().hex
        self._records[record_id] = {
            **record,
            "id": record_id,
            "created_at": record.get("created_at") or datetime.now(timezone.utc).isoformat(),
        }
        self._notify(RecordChange(self.table, ChangeKind.INSERT, record_id, dict(self._records[record_id])))
        return record_id

    def update(self, record_id: str, partial: Dict[str, Any]) -> None:
        if record_id not in self._records:
            logger.debug(f"Ignoring update for unknown {self.table} record {record_id}")
            return
        self._records[record_id] = {**self._records[record_id], **partial, "id": record_id}
        self._notify(RecordChange(self.table, ChangeKind.UPDATE, record_id, dict(self._records[record_id])))

    def delete(self, record_id: str) -> None:
        if self._records.pop(record_id, None) is None:
            return
        self._notify(RecordChange(self.table, ChangeKind.DELETE, record_id))

    def get_all(self, callback: RecordsCallback) -> Callable[[], None]:
        self._record_listeners.append(callback)
        callback(self.records())

        def unsubscribe():
            if callback in self._record_listeners:
                self._record_listeners.remove(callback)

        return unsubscribe

    def watch(self, callback: ChangeCallback) -> Callable[[], None]:
        self._change_listeners.append(callback)

        def unsubscribe():
            if callback in self._change_listeners:
                self._change_listeners.remove(callback)

        return unsubscribe

    def records(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._records.values()]

    def _notify(self, change: RecordChange):
        for listener in list(self._change_listeners):
            try:
                listener(change)
            except Exception as e:
                logger.error(f"Error in change listener for {self.table}: {e}", exc_info=True)

        snapshot = self.records()
        for listener in list(self._record_listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Error in records listener for {self.table}: {e}", exc_info=True)


class HostedStore(ChangeFeed):
    """In-memory hosted store: one record service per entity type plus their change feed"""

    def __init__(self, tables: tuple = ("customers", "sessions", "payments", "tables", "reservations", "games", "promotions")):
        self.services: Dict[str, InMemoryRecordService] = {
            table: InMemoryRecordService(table) for table in tables
        }

    def __getitem__(self, table: str) -> InMemoryRecordService:
        return self.services[table]

    def watch(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        return self.services[table].watch(callback)
