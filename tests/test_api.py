"""
API tests against a terminal with in-memory snapshot and channel backends
"""

import pytest
from fastapi.testclient import TestClient

from gamehall.main import create_app


@pytest.fixture
def client(settings, clock):
    app = create_app(settings, clock=clock)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def customer_id(client):
    response = client.post("/api/v1/customers/", json={"name": "Khalid", "email": "khalid@example.com"})
    assert response.status_code == 201
    return response.json()["id"]


def start(client, customer_id, table_id="table_01", party_size=2):
    return client.post(
        "/api/v1/table-sessions/",
        json={"customer_id": customer_id, "table_id": table_id, "party_size": party_size},
    )


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["terminal_id"] == "terminal-a"

    def test_root(self, client):
        assert client.get("/").json()["docs"] == "/docs"


class TestTablesApi:

    def test_list_tables(self, client):
        tables = client.get("/api/v1/tables/").json()
        assert [t["id"] for t in tables] == ["table_01", "table_02", "table_03", "table_04", "table_05"]

    def test_get_unknown_table(self, client):
        response = client.get("/api/v1/tables/table_99")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "TABLE_NOT_FOUND"

    def test_maintenance_and_free(self, client):
        response = client.post("/api/v1/tables/table_02/maintenance", json={"reason": "cleaning"})
        assert response.status_code == 200
        assert response.json()["status"] == "maintenance"

        stats = client.get("/api/v1/tables/stats").json()
        assert stats["maintenance"] == 1

        assert client.post("/api/v1/tables/table_02/free").json()["status"] == "available"

    def test_cannot_occupy_through_table_edit(self, client):
        response = client.patch("/api/v1/tables/table_01", json={"status": "occupied"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_TRANSITION"

    def test_reset(self, client):
        client.post("/api/v1/tables/table_03/maintenance", json={"reason": "repair"})
        tables = client.post("/api/v1/tables/reset").json()
        assert all(t["status"] == "available" for t in tables)


class TestSessionsApi:

    def test_start_and_end_session(self, client, customer_id, clock):
        response = start(client, customer_id)
        assert response.status_code == 201
        session = response.json()
        assert session["status"] == "active"

        table = client.get("/api/v1/tables/table_01").json()
        assert table["status"] == "occupied"
        assert table["current_session_id"] == session["id"]

        clock.advance(minutes=40)
        response = client.post(
            f"/api/v1/table-sessions/{session['id']}/end",
            json={"payment": {"method": "cash", "cash_amount": 60, "total_paid": 60}},
        )
        assert response.status_code == 200
        ended = response.json()
        assert ended["status"] == "completed"
        assert ended["total_cost"] == 60

        payments = client.get("/api/v1/payments/", params={"session_id": session["id"]}).json()
        assert [p["amount"] for p in payments] == [60]
        assert client.get("/api/v1/tables/table_01").json()["status"] == "available"

    def test_conflict_is_409(self, client, customer_id):
        first = start(client, customer_id).json()

        response = start(client, customer_id)
        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "TABLE_CONFLICT"
        assert first["id"] in detail["details"]

    def test_capacity_is_400(self, client, customer_id):
        response = start(client, customer_id, party_size=7)
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Table capacity (4) is insufficient for 7 people"

    def test_party_size_must_be_positive(self, client, customer_id):
        assert start(client, customer_id, party_size=0).status_code == 422

    def test_end_unknown_session(self, client):
        response = client.post("/api/v1/table-sessions/missing/end")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "SESSION_NOT_FOUND"

    def test_completing_through_patch_is_rejected(self, client, customer_id):
        session = start(client, customer_id).json()
        response = client.patch(f"/api/v1/table-sessions/{session['id']}", json={"status": "completed"})
        assert response.status_code == 400

    def test_cancel(self, client, customer_id):
        session = start(client, customer_id).json()
        response = client.post(f"/api/v1/table-sessions/{session['id']}/cancel")
        assert response.json()["status"] == "cancelled"

        active = client.get("/api/v1/table-sessions/", params={"status_filter": "active"}).json()
        assert active == []


class TestOperatorsApi:

    def test_login_logout_and_audit(self, client):
        response = client.post("/api/v1/operators/login", json={"id": "op-7", "username": "huda", "role": "owner"})
        assert response.status_code == 200
        assert client.get("/api/v1/operators/me").json()["username"] == "huda"

        logs = client.get("/api/v1/operators/activity-logs").json()
        assert logs[0]["type"] == "user_login"
        assert logs[0]["user_id"] == "op-7"

        assert client.post("/api/v1/operators/logout").status_code == 204
        assert client.get("/api/v1/operators/me").json() is None
        assert client.get("/api/v1/operators/presence").json() == []

    def test_actions_without_operator_are_attributed_to_system(self, client, customer_id):
        logs = client.get("/api/v1/operators/activity-logs").json()
        assert logs[0]["user_id"] == "system"


class TestPromotionsApi:

    def test_promotion_applies_to_new_sessions(self, client, customer_id):
        promo = client.post(
            "/api/v1/promotions/", json={"name": "Ramadan nights", "first_hour_price": 15, "extra_hour_price": 10}
        ).json()
        assert client.get("/api/v1/promotions/active").json()["id"] == promo["id"]

        session = start(client, customer_id).json()
        assert session["promo_id"] == promo["id"]

    def test_delete_unknown_promotion(self, client):
        response = client.delete("/api/v1/promotions/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PROMOTION_NOT_FOUND"


class TestScreenWebSocket:

    def test_screen_receives_applied_events(self, client, customer_id):
        with client.websocket_connect("/api/v1/ws/screen/op-1") as websocket:
            confirmation = websocket.receive_json()
            assert confirmation["type"] == "connection_confirmed"
            assert confirmation["role"] == "employee"

            start(client, customer_id, table_id="table_03")

            message = websocket.receive_json()
            assert message["type"] == "session:update"
            assert message["action"] == "add"

            websocket.send_json({"type": "ping"})
            while message["type"] != "pong":
                message = websocket.receive_json()
