"""
WebSocket tests for staff screen updates
Tests screen connections and applied-event fan-out
"""

import pytest
from json import loads
from unittest.mock import AsyncMock

from gamehall.core.events import EventAction, EventBus, Topic, make_event
from gamehall.core.websocket_manager import ConnectionManager
from gamehall.models import Customer, OperatorRole


@pytest.fixture
def manager():
    return ConnectionManager()


def sent_messages(websocket):
    return [loads(call.args[0]) for call in websocket.send_text.await_args_list]


@pytest.mark.asyncio
async def test_connect_registers_screen(manager):
    """Test connecting a staff screen"""
    websocket = AsyncMock()

    message = await manager.connect_operator(websocket, "op-1", OperatorRole.EMPLOYEE)

    websocket.accept.assert_awaited_once()
    assert message == "Connected as operator op-1"
    assert websocket in manager.operator_connections["op-1"]
    assert manager.get_connection_count() == {"operators": 1, "screens": 1, "owner_screens": 0}


@pytest.mark.asyncio
async def test_disconnect_removes_screen(manager):
    """Test disconnecting a staff screen"""
    websocket = AsyncMock()
    await manager.connect_operator(websocket, "op-1", OperatorRole.EMPLOYEE)

    manager.disconnect(websocket)

    assert "op-1" not in manager.operator_connections
    assert manager.get_connection_count()["screens"] == 0

    # Unknown sockets are ignored
    manager.disconnect(AsyncMock())


@pytest.mark.asyncio
async def test_applied_event_reaches_every_screen(manager):
    """Test entity events are pushed to all screens"""
    employee, owner = AsyncMock(), AsyncMock()
    await manager.connect_operator(employee, "op-1", OperatorRole.EMPLOYEE)
    await manager.connect_operator(owner, "op-2", OperatorRole.OWNER)

    event = make_event(Topic.CUSTOMER, EventAction.ADD, entity=Customer(id="c-1", name="Hala"))
    event.origin = "terminal-b"
    await manager.send_applied_event(event)

    for websocket in (employee, owner):
        [message] = sent_messages(websocket)
        assert message["type"] == "customer:update"
        assert message["action"] == "add"
        assert message["entity_id"] == "c-1"
        assert message["origin"] == "terminal-b"


@pytest.mark.asyncio
async def test_analytics_only_reach_owner_screens(manager):
    """Test analytics events are filtered by role"""
    employee, owner = AsyncMock(), AsyncMock()
    await manager.connect_operator(employee, "op-1", OperatorRole.EMPLOYEE)
    await manager.connect_operator(owner, "op-2", OperatorRole.OWNER)

    event = make_event(Topic.ANALYTICS, EventAction.UPDATE, entity_id="daily", updates={"revenue": 800})
    await manager.send_applied_event(event)

    employee.send_text.assert_not_awaited()
    [message] = sent_messages(owner)
    assert message["payload"]["updates"] == {"revenue": 800}


@pytest.mark.asyncio
async def test_dead_connection_is_dropped(manager):
    """Test a failing screen is disconnected during broadcast"""
    healthy, broken = AsyncMock(), AsyncMock()
    broken.send_text.side_effect = RuntimeError("socket closed")
    await manager.connect_operator(healthy, "op-1", OperatorRole.EMPLOYEE)
    await manager.connect_operator(broken, "op-2", OperatorRole.EMPLOYEE)

    await manager.broadcast({"type": "ping"})

    healthy.send_text.assert_awaited_once()
    assert "op-2" not in manager.operator_connections


@pytest.mark.asyncio
async def test_attach_to_event_bus(manager):
    """Test the manager follows every topic on the event bus"""
    websocket = AsyncMock()
    await manager.connect_operator(websocket, "op-1", OperatorRole.EMPLOYEE)
    bus = EventBus()
    manager.attach(bus)

    await bus.publish(make_event(Topic.TABLE, EventAction.UPDATE, entity_id="table_01", updates={"notes": "x"}))
    manager.detach(bus)
    await bus.publish(make_event(Topic.TABLE, EventAction.UPDATE, entity_id="table_01", updates={"notes": "y"}))

    [message] = sent_messages(websocket)
    assert message["payload"]["updates"] == {"notes": "x"}
