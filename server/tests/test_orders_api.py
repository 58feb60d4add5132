"""
Tests for the /api/orders endpoints.
"""

from unittest.mock import patch

import pytest

from techstore import db

from conftest import auth_headers


ADDRESS = {"address": "1 Main St", "city": "Pune", "postalCode": "411001", "country": "IN"}

PAYMENT = {
    "id": "pay_1",
    "status": "COMPLETED",
    "updateTime": "2026-10-19T10:00:00Z",
    "emailAddress": "u1@example.com",
}


class TestOrdersApi:

    @pytest.fixture
    def u1(self, pool):
        pool.add_product(name="DDR5 32GB Kit", price="499.00", category="memory", product_id=7)
        pool.add_product(name="RTX 4070", price="1200.00", category="graphics", product_id=9)
        return pool.add_user(name="User One", email="u1@example.com")

    @pytest.fixture
    def u2(self, pool):
        return pool.add_user(name="User Two", email="u2@example.com")

    def place(self, client, user_id, **overrides):
        body = {
            "orderItems": [
                {"productId": 7, "quantity": 2, "price": 499.00},
                {"productId": 9, "quantity": 1, "price": 1200.00},
            ],
            "shippingAddress": ADDRESS,
            "paymentMethod": "cod",
        }
        body.update(overrides)
        return client.post("/api/orders", json=body, headers=auth_headers(user_id))

    # --- Placement ---

    def test_place_order(self, client, u1):
        response = self.place(client, u1)
        assert response.status_code == 201
        data = response.json()
        assert data["totalPrice"] == 2198.00
        assert len(data["orderItems"]) == 2
        assert data["isPaid"] is False
        assert data["paidAt"] is None
        assert data["userId"] == u1
        assert data["shippingAddress"] == ADDRESS
        assert data["orderItems"][0]["product"]["name"] == "DDR5 32GB Kit"
        assert data["user"] == {"id": u1, "name": "User One", "email": "u1@example.com"}
        assert "X-Request-Id" in response.headers

    def test_place_order_requires_token(self, client, u1):
        response = client.post("/api/orders", json={"orderItems": []})
        assert response.status_code == 401

    def test_empty_cart_is_400(self, client, u1, pool):
        response = self.place(client, u1, orderItems=[])
        assert response.status_code == 400
        assert response.json()["message"] == "No order items"
        assert pool.count("orders") == 0

    def test_missing_items_key_is_400(self, client, u1):
        response = client.post(
            "/api/orders",
            json={"shippingAddress": ADDRESS, "paymentMethod": "cod"},
            headers=auth_headers(u1),
        )
        assert response.status_code == 400

    def test_invalid_payment_method_is_400(self, client, u1):
        response = self.place(client, u1, paymentMethod="bitcoin")
        assert response.status_code == 400
        assert response.json()["field"] == "paymentMethod"

    def test_malformed_item_is_400(self, client, u1):
        response = self.place(client, u1, orderItems=[{"productId": "seven", "quantity": 1, "price": 1}])
        assert response.status_code == 400
        assert "orderItems" in response.json()["message"]

    def test_total_mismatch_is_400(self, client, u1):
        response = self.place(client, u1, totalPrice=10.00)
        assert response.status_code == 400
        assert response.json()["field"] == "totalPrice"

    def test_price_too_large_to_store_is_400(self, client, u1, pool):
        response = self.place(
            client, u1, orderItems=[{"productId": 7, "quantity": 1, "price": "123456789012.00"}]
        )
        assert response.status_code == 400
        assert response.json()["field"] == "orderItems[0].price"
        assert pool.count("orders") == 0

    def test_persistence_failure_is_503(self, client, u1, pool):
        response = self.place(
            client, u1, orderItems=[{"productId": 404, "quantity": 1, "price": 1.00}]
        )
        assert response.status_code == 503
        assert pool.count("orders") == 0

    def test_read_back_failure_is_202_with_id(self, client, u1, pool):
        with patch.object(db, "fetch_order", side_effect=ConnectionError("gone")):
            response = self.place(client, u1)
        assert response.status_code == 202
        order_id = response.json()["orderId"]

        response = client.get(f"/api/orders/{order_id}", headers=auth_headers(u1))
        assert response.status_code == 200
        assert len(response.json()["orderItems"]) == 2

    # --- Reads ---

    def test_owner_can_read(self, client, u1):
        order_id = self.place(client, u1).json()["id"]
        response = client.get(f"/api/orders/{order_id}", headers=auth_headers(u1))
        assert response.status_code == 200
        assert response.json()["id"] == order_id

    def test_other_user_gets_403(self, client, u1, u2):
        order_id = self.place(client, u1).json()["id"]
        response = client.get(f"/api/orders/{order_id}", headers=auth_headers(u2))
        assert response.status_code == 403
        assert "orderItems" not in response.json()

    def test_missing_order_is_404(self, client, u1):
        response = client.get("/api/orders/99999", headers=auth_headers(u1))
        assert response.status_code == 404
        assert response.json()["message"] == "Order not found"

    def test_my_orders_newest_first(self, client, u1, u2):
        first = self.place(client, u1).json()["id"]
        second = self.place(client, u1).json()["id"]
        self.place(client, u2)

        for path in ("/api/orders", "/api/orders/myorders"):
            response = client.get(path, headers=auth_headers(u1))
            assert response.status_code == 200
            assert [o["id"] for o in response.json()] == [second, first]

    # --- Payment ---

    def test_pay_then_read(self, client, u1):
        order_id = self.place(client, u1).json()["id"]

        response = client.put(f"/api/orders/{order_id}/pay", json=PAYMENT, headers=auth_headers(u1))
        assert response.status_code == 200
        data = response.json()
        assert data["isPaid"] is True
        assert data["paidAt"] is not None
        assert data["paymentResult"] == PAYMENT

        again = client.get(f"/api/orders/{order_id}", headers=auth_headers(u1)).json()
        assert again["isPaid"] is True
        assert again["paidAt"] == data["paidAt"]

    def test_pay_other_users_order_is_403(self, client, u1, u2):
        order_id = self.place(client, u1).json()["id"]
        response = client.put(f"/api/orders/{order_id}/pay", json=PAYMENT, headers=auth_headers(u2))
        assert response.status_code == 403

    def test_pay_missing_order_is_404(self, client, u1):
        response = client.put("/api/orders/99999/pay", json=PAYMENT, headers=auth_headers(u1))
        assert response.status_code == 404

    def test_pay_with_oversized_field_is_400(self, client, u1):
        order_id = self.place(client, u1).json()["id"]
        response = client.put(
            f"/api/orders/{order_id}/pay",
            json={"id": "x" * 300},
            headers=auth_headers(u1),
        )
        assert response.status_code == 400
