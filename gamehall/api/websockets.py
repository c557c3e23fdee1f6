"""
WebSocket endpoints for staff screens
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from datetime import datetime, timezone
import structlog

from gamehall.core.websocket_manager import manager
from gamehall.models import OperatorRole

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.websocket("/screen/{operator_id}")
async def websocket_screen(websocket: WebSocket, operator_id: str):
    """Push applied state changes to a staff screen"""
    context = websocket.app.state.context

    # Screens only get the owner feed for the operator logged in here
    operator = context.operator
    if operator is not None and operator.id == operator_id:
        role = operator.role
    else:
        role = OperatorRole.EMPLOYEE

    try:
        message = await manager.connect_operator(websocket, operator_id, role)

        # Send connection confirmation
        await websocket.send_json({
            "type": "connection_confirmed",
            "operator_id": operator_id,
            "role": role.value,
            "terminal_id": context.settings.TERMINAL_ID,
            "message": message,
        })

        # Listen for incoming messages (client pings, etc.)
        while True:
            try:
                data = await websocket.receive_json()
                logger.debug(f"Received message from operator {operator_id}: {data}")

                if data.get("type") == "ping":
                    await websocket.send_json({
                        "type": "pong",
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    })

            except WebSocketDisconnect:
                manager.disconnect(websocket)
                logger.info(f"Operator {operator_id} screen disconnected")
                break

    except Exception as e:
        logger.error(f"Error in screen WebSocket: {e}", exc_info=True)
        manager.disconnect(websocket)
