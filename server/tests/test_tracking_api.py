"""
Tests for the storefront tracking endpoints.
"""

import json
from unittest.mock import patch

import pytest

from techstore import db


class TestTracking:

    @pytest.fixture
    def ids(self, pool):
        return {"user": pool.add_user(), "product": pool.add_product()}

    def activities(self, pool, activity_type):
        return pool.rows(
            "SELECT user_id, visitor_id, activity_data, page_url FROM user_activities WHERE activity_type = ?",
            activity_type,
        )

    def cart_quantity(self, pool, column, owner, product_id):
        rows = pool.rows(
            f"SELECT quantity FROM shopping_carts WHERE {column} = ? AND product_id = ?",
            owner,
            product_id,
        )
        return rows[0][0] if rows else None

    def test_login_and_logout(self, client, pool, ids):
        body = {"user_id": ids["user"], "session_token": "tok-1"}
        response = client.post("/api/tracking/login", json=body, headers={"User-Agent": "pytest"})
        assert response.status_code == 201
        assert response.json() == {"message": "Login tracked successfully"}

        response = client.post("/api/tracking/logout", json=body)
        assert response.status_code == 200

        session = pool.rows("SELECT is_active, logout_time, user_agent FROM user_sessions")[0]
        assert session["is_active"] is False
        assert session["logout_time"] is not None
        assert session["user_agent"] == "pytest"
        assert len(self.activities(pool, "login")) == 1
        assert len(self.activities(pool, "logout")) == 1

    def test_product_view(self, client, pool, ids):
        response = client.post(
            "/api/tracking/product-view",
            json={"product_id": ids["product"], "visitor_id": "v-1", "view_duration": 12},
            headers={"Referer": "http://localhost:3000/product.html"},
        )
        assert response.status_code == 201
        assert pool.count("product_views") == 1
        activity = self.activities(pool, "product_view")[0]
        assert activity["visitor_id"] == "v-1"
        assert activity["page_url"] == "http://localhost:3000/product.html"
        assert json.loads(activity["activity_data"]) == {"product_id": ids["product"], "view_duration": 12}

    def test_add_to_cart_accumulates(self, client, pool, ids):
        body = {"product_id": ids["product"], "user_id": ids["user"], "quantity": 2}
        assert client.post("/api/tracking/add-to-cart", json=body).status_code == 201
        assert client.post("/api/tracking/add-to-cart", json=body).status_code == 201
        assert self.cart_quantity(pool, "user_id", ids["user"], ids["product"]) == 4

    def test_visitor_cart_is_separate(self, client, pool, ids):
        client.post("/api/tracking/add-to-cart", json={"product_id": ids["product"], "visitor_id": "v-1"})
        client.post("/api/tracking/add-to-cart", json={"product_id": ids["product"], "visitor_id": "v-2"})
        assert self.cart_quantity(pool, "visitor_id", "v-1", ids["product"]) == 1
        assert self.cart_quantity(pool, "visitor_id", "v-2", ids["product"]) == 1

    def test_remove_from_cart(self, client, pool, ids):
        body = {"product_id": ids["product"], "user_id": ids["user"]}
        client.post("/api/tracking/add-to-cart", json=body)
        response = client.post("/api/tracking/remove-from-cart", json=body)
        assert response.status_code == 200
        assert self.cart_quantity(pool, "user_id", ids["user"], ids["product"]) is None
        assert len(self.activities(pool, "remove_from_cart")) == 1

    def test_checkout_start(self, client, pool, ids):
        items = [{"id": ids["product"], "quantity": 1}]
        response = client.post(
            "/api/tracking/checkout-start",
            json={"user_id": ids["user"], "cart_items": items},
        )
        assert response.status_code == 201
        data = json.loads(self.activities(pool, "checkout_start")[0]["activity_data"])
        assert data == {"cart_items": items, "total_items": 1}

    def test_checkout_complete_clears_cart(self, client, pool, ids):
        client.post(
            "/api/tracking/add-to-cart",
            json={"product_id": ids["product"], "user_id": ids["user"]},
        )
        response = client.post(
            "/api/tracking/checkout-complete",
            json={"user_id": ids["user"], "order_id": 1, "total_amount": 2198.0, "payment_method": "cod"},
        )
        assert response.status_code == 201
        assert pool.count("shopping_carts") == 0
        data = json.loads(self.activities(pool, "checkout_complete")[0]["activity_data"])
        assert data["order_id"] == 1
        assert data["payment_method"] == "cod"

    def test_page_visit(self, client, pool):
        response = client.post(
            "/api/tracking/page-visit",
            json={"visitor_id": "v-9", "page_url": "/index.html", "page_title": "Home"},
            headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"},
        )
        assert response.status_code == 201
        visit = pool.rows("SELECT page_url, page_title, ip_address FROM site_visits")[0]
        assert visit["page_url"] == "/index.html"
        assert visit["page_title"] == "Home"
        assert visit["ip_address"] == "198.51.100.7"

    def test_page_visit_requires_url(self, client, pool):
        response = client.post("/api/tracking/page-visit", json={"visitor_id": "v-9"})
        assert response.status_code == 400

    def test_storage_failure_is_reported(self, client, pool, ids):
        with patch.object(db, "record_product_view", side_effect=ConnectionError("down")):
            response = client.post(
                "/api/tracking/product-view",
                json={"product_id": ids["product"], "visitor_id": "v-1"},
            )
        assert response.status_code == 500
        assert response.json() == {"message": "Error tracking product view"}
