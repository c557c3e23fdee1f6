"""
Local state store - the terminal's authoritative in-memory collections

Every mutation updates memory synchronously and schedules a durable snapshot
of the touched collection. Flushes run on a single worker so writes for the
same key land in the order they were made; a failed flush is logged and
never reaches the caller.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar
import uuid

from pydantic import ValidationError
from sqlmodel import SQLModel
import structlog

from gamehall.core.clock import Clock, utcnow
from gamehall.core.config import TABLE_TYPE_DEFAULTS, Settings
from gamehall.models import (
    ActivityLog,
    Customer,
    Game,
    Operator,
    Payment,
    Promotion,
    Reservation,
    Table,
    TableSession,
    TableSessionStatus,
    TableType,
    table_id_for,
)
from gamehall.services.snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)

Record = TypeVar("Record", bound=SQLModel)

# Snapshot key -> record model. Keys match the durable cache layout.
COLLECTIONS: dict[str, type[SQLModel]] = {
    "customers": Customer,
    "sessions": TableSession,
    "games": Game,
    "payments": Payment,
    "promotions": Promotion,
    "tables": Table,
    "reservations": Reservation,
    "activityLogs": ActivityLog,
}

OPERATOR_KEY = "user"


def new_id() -> str:
    return uuid.uuid4().hex


class LocalStateStore:
    """Owns the in-memory collections for one terminal"""

    def __init__(
        self,
        snapshots: SnapshotStore,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self.snapshots = snapshots
        self.settings = settings
        self.clock = clock
        self._collections: dict[str, list[SQLModel]] = {key: [] for key in COLLECTIONS}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="snapshot")
        self._pending: set[asyncio.Future] = set()

    # ------------------------------------------------------------------
    # Loading and pool maintenance
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load every collection from the durable snapshot, repairing corruption"""
        for key, model in COLLECTIONS.items():
            records, repaired = self._parse_collection(key, model)
            self._collections[key] = records
            if repaired:
                self._schedule_flush(key)

        tables = self._collections["tables"]
        if len(tables) != self.settings.TABLE_POOL_SIZE:
            logger.warning(
                "Table count mismatch, regenerating pool",
                found=len(tables),
                expected=self.settings.TABLE_POOL_SIZE,
            )
            self._collections["tables"] = self.generate_table_pool()
            self._schedule_flush("tables")

        logger.info(
            "State loaded",
            **{key: len(records) for key, records in self._collections.items()},
        )

    def _parse_collection(self, key: str, model: type[SQLModel]) -> tuple[list[SQLModel], bool]:
        try:
            raw = self.snapshots.read(key)
        except Exception as e:
            logger.error(f"Error reading snapshot {key}: {e}", exc_info=True)
            return [], False

        if raw is None:
            return [], False
        if not isinstance(raw, list):
            logger.warning("Snapshot is not a list, discarding", key=key)
            return [], True

        records: list[SQLModel] = []
        seen: set[str] = set()
        invalid = duplicates = 0
        for item in raw:
            if not isinstance(item, dict):
                invalid += 1
                continue
            try:
                record = model.model_validate(item)
            except ValidationError:
                invalid += 1
                continue
            if record.id in seen:
                duplicates += 1
                continue
            seen.add(record.id)
            records.append(record)

        if invalid or duplicates:
            logger.warning(
                "Dropped corrupted snapshot records",
                key=key,
                invalid=invalid,
                duplicates=duplicates,
            )
        return records, bool(invalid or duplicates)

    def generate_table_pool(self) -> list[Table]:
        """Build the full pool of available tables from the configured defaults"""
        now = self.clock()
        table_type = self.settings.DEFAULT_TABLE_TYPE
        defaults = TABLE_TYPE_DEFAULTS.get(table_type, TABLE_TYPE_DEFAULTS["standard"])
        capacity = self.settings.DEFAULT_TABLE_CAPACITY or defaults["capacity"]

        return [
            Table(
                id=table_id_for(number),
                table_number=number,
                capacity=capacity,
                table_type=TableType(table_type),
                features=list(defaults["features"]),
                location=self.settings.DEFAULT_TABLE_LOCATION,
                notes="",
                created_at=now,
                last_updated=now,
            )
            for number in range(1, self.settings.TABLE_POOL_SIZE + 1)
        ]

    def reset(self) -> None:
        """Regenerate every table and clear the audit trail"""
        self._collections["tables"] = self.generate_table_pool()
        self._collections["activityLogs"] = []
        self._schedule_flush("tables")
        self._schedule_flush("activityLogs")
        logger.info("Tables reset", count=len(self._collections["tables"]))

    # ------------------------------------------------------------------
    # Generic record access
    # ------------------------------------------------------------------

    def all(self, key: str) -> list[Any]:
        return list(self._collections[key])

    def get(self, key: str, record_id: str) -> Optional[Any]:
        return next((r for r in self._collections[key] if r.id == record_id), None)

    def find(self, key: str, predicate: Callable[[Any], bool]) -> Optional[Any]:
        return next((r for r in self._collections[key] if predicate(r)), None)

    def contains(self, key: str, record_id: str) -> bool:
        return self.get(key, record_id) is not None

    def insert(self, key: str, record: SQLModel, first: bool = False) -> bool:
        """Insert a record unless its id is already present"""
        if self.contains(key, record.id):
            return False
        if first:
            self._collections[key].insert(0, record)
        else:
            self._collections[key].append(record)
        self._schedule_flush(key)
        return True

    def replace(self, key: str, record: SQLModel) -> None:
        """Replace the record with the same id, appending it if absent"""
        records = self._collections[key]
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                break
        else:
            records.append(record)
        self._schedule_flush(key)

    def patch(self, key: str, record_id: str, updates: dict[str, Any]) -> Optional[Any]:
        """Shallow-merge updates into a record.

        Returns the new record, or None when the id is unknown. Raises
        ValidationError if the merged record is invalid; nothing is written
        in that case.
        """
        current = self.get(key, record_id)
        if current is None:
            return None
        merged = {**current.model_dump(), **updates, "id": record_id}
        record = type(current).model_validate(merged)
        self.replace(key, record)
        return record

    def remove(self, key: str, record_id: str) -> Optional[Any]:
        records = self._collections[key]
        for index, existing in enumerate(records):
            if existing.id == record_id:
                del records[index]
                self._schedule_flush(key)
                return existing
        return None

    def clear(self, key: str) -> None:
        self._collections[key] = []
        self._schedule_flush(key)

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    @property
    def tables(self) -> list[Table]:
        return self.all("tables")

    @property
    def sessions(self) -> list[TableSession]:
        return self.all("sessions")

    @property
    def payments(self) -> list[Payment]:
        return self.all("payments")

    @property
    def promotions(self) -> list[Promotion]:
        return self.all("promotions")

    @property
    def customers(self) -> list[Customer]:
        return self.all("customers")

    @property
    def reservations(self) -> list[Reservation]:
        return self.all("reservations")

    @property
    def activity_logs(self) -> list[ActivityLog]:
        return self.all("activityLogs")

    def get_table(self, table_id: str) -> Optional[Table]:
        return self.get("tables", table_id)

    def get_session(self, session_id: str) -> Optional[TableSession]:
        return self.get("sessions", session_id)

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self.get("customers", customer_id)

    def active_session_for_table(
        self,
        table_id: str,
        excluding_session_id: Optional[str] = None,
    ) -> Optional[TableSession]:
        return self.find(
            "sessions",
            lambda s: s.table_id == table_id
            and s.status == TableSessionStatus.ACTIVE
            and s.id != excluding_session_id,
        )

    def append_log(self, entry: ActivityLog) -> None:
        """Audit entries are kept newest first"""
        self.insert("activityLogs", entry, first=True)

    # ------------------------------------------------------------------
    # Operator identity
    # ------------------------------------------------------------------

    def load_operator(self) -> Optional[Operator]:
        try:
            raw = self.snapshots.read(OPERATOR_KEY)
            return Operator.model_validate(raw) if raw else None
        except (ValidationError, ValueError) as e:
            logger.warning(f"Discarding stored operator: {e}")
            return None

    def save_operator(self, operator: Optional[Operator]) -> None:
        try:
            if operator is None:
                self.snapshots.delete(OPERATOR_KEY)
            else:
                self.snapshots.write(OPERATOR_KEY, operator.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Error persisting operator: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Durable flush
    # ------------------------------------------------------------------

    def _schedule_flush(self, key: str) -> None:
        # Serialize now so later mutations cannot leak into this snapshot
        payload = [record.model_dump(mode="json") for record in self._collections[key]]
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(key, payload)
            return

        future = loop.run_in_executor(self._executor, self._write, key, payload)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def _write(self, key: str, payload: list[dict]) -> None:
        try:
            self.snapshots.write(key, payload)
        except Exception as e:
            logger.error(f"Error flushing snapshot {key}: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every scheduled snapshot write to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
