"""
Durable snapshot backends

One keyed blob per collection. Payloads are JSON-compatible values
(lists of record dicts, or a dict for the operator key).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from json import dumps, loads
from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel
import structlog

from gamehall.models.snapshot import Snapshot

logger = structlog.get_logger(__name__)


class SnapshotStore(ABC):
    """Interface for the per-terminal durable cache"""

    @abstractmethod
    def read(self, key: str) -> Optional[Any]:
        """Return the stored payload for key, or None if absent."""
        ...

    @abstractmethod
    def write(self, key: str, payload: Any) -> None:
        """Replace the payload stored under key."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; no-op if absent."""
        ...


class InMemorySnapshotStore(SnapshotStore):
    """Process-local snapshot store that serializes like a browser key-value cache"""

    def __init__(self):
        self._blobs: dict[str, str] = {}

    def read(self, key: str) -> Optional[Any]:
        blob = self._blobs.get(key)
        return loads(blob) if blob is not None else None

    def write(self, key: str, payload: Any) -> None:
        self._blobs[key] = dumps(payload)

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def raw(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    def put_raw(self, key: str, blob: str) -> None:
        """Store a blob verbatim (used to simulate corrupted snapshots)"""
        self._blobs[key] = blob


class SQLSnapshotStore(SnapshotStore):
    """Snapshot store backed by a SQL database through SQLModel"""

    def __init__(self, database_url: str):
        connect_args = {}
        engine_kwargs = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args=connect_args,
            **engine_kwargs,
        )
        SQLModel.metadata.create_all(self.engine, tables=[Snapshot.__table__])
        logger.info("Snapshot table ready", url=database_url)

    def read(self, key: str) -> Optional[Any]:
        with Session(self.engine) as session:
            snapshot = session.get(Snapshot, key)
            return snapshot.payload if snapshot else None

    def write(self, key: str, payload: Any) -> None:
        with Session(self.engine) as session:
            snapshot = session.get(Snapshot, key)
            if snapshot is None:
                snapshot = Snapshot(key=key, payload=payload)
            else:
                snapshot.payload = payload
                snapshot.updated_at = datetime.now(timezone.utc)
            session.add(snapshot)
            session.commit()

    def delete(self, key: str) -> None:
        with Session(self.engine) as session:
            snapshot = session.get(Snapshot, key)
            if snapshot is not None:
                session.delete(snapshot)
                session.commit()

    def dispose(self) -> None:
        self.engine.dispose()
