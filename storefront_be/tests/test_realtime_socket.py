"""End-to-end tests for the /ws realtime endpoint."""

import pytest
from fastapi import WebSocketDisconnect

from conftest import auth_headers
from storefront.utils.security import create_access_token


def socket_url(user):
    return f"/ws?token={create_access_token(user.id, role=user.role)}"


@pytest.fixture
def pending_order(client, customer, products):
    client.post("/api/cart/", json={"productId": products[0].id, "quantity": 1}, headers=auth_headers(customer))
    response = client.post(
        "/api/orders/",
        json={
            "paymentMethod": "cod",
            "shippingAddress": {
                "fullName": "Asha Rao",
                "phone": "9000000001",
                "street": "12 MG Road",
                "city": "Pune",
                "state": "Maharashtra",
                "postalCode": "411001",
            },
        },
        headers=auth_headers(customer),
    )
    assert response.status_code == 201
    return response.json()


class TestRealtimeSocket:
    def test_rejects_missing_or_bad_token(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=not-a-jwt") as ws:
                ws.receive_json()

    def test_customer_joins_own_room(self, client, customer):
        with client.websocket_connect(socket_url(customer)) as ws:
            joined = ws.receive_json()
            assert joined["event"] == "joined"
            assert joined["payload"]["data"]["rooms"] == [f"user-{customer.id}"]

    def test_status_change_reaches_customer(self, client, customer, admin, pending_order):
        with client.websocket_connect(socket_url(customer)) as ws:
            ws.receive_json()
            response = client.put(
                f"/api/orders/{pending_order['id']}/status",
                json={"status": "processing"},
                headers=auth_headers(admin),
            )
            assert response.status_code == 200

            message = ws.receive_json()
            assert message["event"] == "user-update"
            assert message["payload"]["type"] == "order-status-changed"
            assert message["payload"]["data"]["orderId"] == pending_order["id"]
            assert message["payload"]["data"]["status"] == "processing"

    def test_admin_sees_new_orders(self, client, customer, admin, products):
        with client.websocket_connect(socket_url(admin)) as ws:
            assert ws.receive_json()["payload"]["data"]["rooms"] == ["admin-room"]
            client.post("/api/cart/", json={"productId": products[0].id, "quantity": 1}, headers=auth_headers(customer))
            client.post(
                "/api/orders/",
                json={
                    "paymentMethod": "cod",
                    "shippingAddress": {
                        "fullName": "Asha Rao",
                        "phone": "9000000001",
                        "street": "12 MG Road",
                        "city": "Pune",
                        "state": "Maharashtra",
                        "postalCode": "411001",
                    },
                },
                headers=auth_headers(customer),
            )

            message = ws.receive_json()
            assert message["event"] == "admin-update"
            assert message["payload"]["type"] == "new-order"
            assert message["payload"]["data"]["userId"] == customer.id

    def test_customer_cannot_join_admin_room(self, client, customer):
        with client.websocket_connect(socket_url(customer)) as ws:
            ws.receive_json()
            ws.send_json({"event": "join-admin-room"})
            reply = ws.receive_json()
            assert reply["event"] == "error"
            assert reply["payload"]["type"] == "forbidden"

    def test_invalid_json(self, client, customer):
        with client.websocket_connect(socket_url(customer)) as ws:
            ws.receive_json()
            ws.send_text("{not json")
            assert ws.receive_json()["payload"]["type"] == "bad-message"

    def test_session_leaves_rooms_on_disconnect(self, client, customer, room_broadcaster):
        with client.websocket_connect(socket_url(customer)) as ws:
            ws.receive_json()
            assert room_broadcaster.connected_count() == 1
        assert client.get("/api/health").json()["realtime"]["connected"] == 0
