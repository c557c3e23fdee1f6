"""
Table assignment checks run before a session may claim a table

Both checks are pure reads of the local state store. They take no lock
themselves; the lifecycle manager holds the per-table lock across
validate-and-claim.
"""

from typing import Optional
import structlog

from gamehall.core.errors import (
    CapacityExceededError,
    TableConflictError,
    TableNotFoundError,
    TableUnavailableError,
)
from gamehall.models import Table, TableStatus
from gamehall.services.state_store import LocalStateStore

logger = structlog.get_logger(__name__)


class TableAssignmentValidator:
    """Capacity and conflict checks against the terminal's current view"""

    def __init__(self, store: LocalStateStore):
        self.store = store

    def validate_assignment(self, table_id: str, party_size: int) -> Table:
        """Check the table exists, is assignable and fits the party.

        Raises:
            TableNotFoundError: If the table id is unknown.
            TableUnavailableError: If the table is under maintenance or reserved.
            CapacityExceededError: If party_size exceeds the table capacity.
        """
        table = self.store.get_table(table_id)
        if table is None:
            raise TableNotFoundError(table_id)

        if not table.is_assignable():
            raise TableUnavailableError(table_id, table.status.value)

        if party_size > table.capacity:
            raise CapacityExceededError(table_id, table.capacity, party_size)

        return table

    def check_conflict(self, table_id: str, excluding_session_id: Optional[str] = None) -> None:
        """Check no other active session holds the table.

        Looks at the session list first, then at the table's back-reference,
        since a replicated table update can arrive before its session.

        Raises:
            TableConflictError: Naming the occupying session and customer.
        """
        occupying = self.store.active_session_for_table(table_id, excluding_session_id)
        if occupying is not None:
            customer = self.store.get_customer(occupying.customer_id)
            raise TableConflictError(
                table_id,
                occupying.id,
                customer.name if customer else None,
            )

        table = self.store.get_table(table_id)
        if (
            table is not None
            and table.status == TableStatus.OCCUPIED
            and table.current_session_id
            and table.current_session_id != excluding_session_id
        ):
            session = self.store.get_session(table.current_session_id)
            if session is None or session.is_active():
                raise TableConflictError(table_id, table.current_session_id, table.customer_name)
            logger.warning(
                "Table points at a finished session",
                table_id=table_id,
                session_id=table.current_session_id,
            )
