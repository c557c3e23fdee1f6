"""
Operator login, presence and audit trail endpoints

There is no authentication; logging in only records who is working this
terminal so audit entries and presence carry their identity.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Field, SQLModel
from typing import List, Optional
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context
from gamehall.core.events import Presence
from gamehall.models import ActivityLog, ActivityType, Operator, OperatorRole

logger = structlog.get_logger(__name__)
router = APIRouter()


class OperatorLogin(SQLModel):
    id: str
    username: str = Field(min_length=1, max_length=100)
    role: OperatorRole = OperatorRole.EMPLOYEE


@router.post("/login", response_model=Operator)
async def login(login_data: OperatorLogin, context: TerminalContext = Depends(get_context)):
    """Log an operator into this terminal and announce them to peers"""
    operator = Operator(**login_data.model_dump())
    await context.login(operator)
    logger.info(f"Operator {operator.username} logged in on {context.settings.TERMINAL_ID}")
    return operator


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(context: TerminalContext = Depends(get_context)):
    await context.logout()


@router.get("/me", response_model=Optional[Operator])
async def current_operator(context: TerminalContext = Depends(get_context)):
    return context.operator


@router.get("/presence", response_model=List[Presence])
async def presence(context: TerminalContext = Depends(get_context)):
    """Operators currently announced by other terminals"""
    return context.broadcaster.peers()


@router.get("/activity-logs", response_model=List[ActivityLog])
async def activity_logs(
    type_filter: Optional[ActivityType] = Query(None, description="Filter by activity type"),
    limit: int = Query(100, ge=1, le=1000),
    context: TerminalContext = Depends(get_context),
):
    """Audit trail for this terminal, newest first"""
    logs = context.store.activity_logs
    if type_filter:
        logs = [log for log in logs if log.type == type_filter]
    return logs[:limit]


@router.delete("/activity-logs", status_code=status.HTTP_204_NO_CONTENT)
async def clear_activity_logs(context: TerminalContext = Depends(get_context)):
    context.records.clear_logs()
