"""
Audit trail for operator actions
"""

from typing import Callable, Optional

import structlog

from gamehall.core.clock import Clock, utcnow
from gamehall.models import ActivityLog, ActivityType, Operator, OperatorRole
from gamehall.services.state_store import LocalStateStore, new_id

logger = structlog.get_logger(__name__)

SYSTEM_OPERATOR = Operator(id="system", username="system", role=OperatorRole.ADMIN)


class AuditTrail:
    """Appends activity log entries attributed to the logged-in operator"""

    def __init__(
        self,
        store: LocalStateStore,
        operator_provider: Callable[[], Optional[Operator]],
        clock: Clock = utcnow,
    ):
        self.store = store
        self.operator_provider = operator_provider
        self.clock = clock

    def record(self, activity_type: ActivityType, action: str, details: str) -> ActivityLog:
        operator = self.operator_provider() or SYSTEM_OPERATOR
        entry = ActivityLog(
            id=new_id(),
            type=activity_type,
            user_id=operator.id,
            user_name=operator.username,
            user_role=operator.role.value,
            action=action,
            details=details,
            timestamp=self.clock(),
        )
        self.store.append_log(entry)
        logger.debug("Audit entry recorded", type=activity_type.value, action=action)
        return entry
