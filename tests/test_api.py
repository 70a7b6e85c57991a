"""
Component tests for the HTTP API

Requests go through the FastAPI routes, the services and a real in-memory
store. ``api_client`` overrides authentication with a fixed test user;
``anonymous_client`` exercises the real register/login/bearer flow.
"""
from unittest.mock import patch

import pytest
from httpx import AsyncClient

from swiftcart.database import CARTS, ORDERS


@pytest.mark.asyncio
class TestCatalogEndpoints:
    async def test_list_products(self, api_client: AsyncClient):
        response = await api_client.get("/products")

        assert response.status_code == 200
        assert sorted(p["id"] for p in response.json()) == ["p1", "p2"]

    async def test_get_product(self, api_client: AsyncClient):
        response = await api_client.get("/products/p2")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Notebook"
        assert data["price"] == 5.50

    async def test_unknown_product_is_404(self, api_client: AsyncClient):
        response = await api_client.get("/products/missing")

        assert response.status_code == 404


@pytest.mark.asyncio
class TestCartEndpoints:
    async def test_empty_cart_for_new_user(self, api_client: AsyncClient, seeded_store):
        # Act
        response = await api_client.get("/cart")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "user-1"
        assert data["items"] == []
        assert data["total_price"] == 0.0
        assert data["total_items"] == 0
        assert await seeded_store.get(CARTS, "user-1") is None

    async def test_add_accumulates_and_totals(self, api_client: AsyncClient):
        # Act
        await api_client.post("/cart/items", json={"product_id": "p1", "quantity": 1})
        await api_client.post("/cart/items", json={"product_id": "p2"})
        response = await api_client.post("/cart/items", json={"product_id": "p1", "quantity": 1})

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert [(i["product_id"], i["quantity"]) for i in data["items"]] == [("p1", 2), ("p2", 1)]
        assert data["total_price"] == 25.50
        assert data["total_items"] == 3

    async def test_add_unknown_product_is_404(self, api_client: AsyncClient):
        response = await api_client.post("/cart/items", json={"product_id": "missing"})

        assert response.status_code == 404
        assert (await api_client.get("/cart")).json()["items"] == []

    async def test_add_zero_quantity_is_rejected(self, api_client: AsyncClient):
        response = await api_client.post("/cart/items", json={"product_id": "p1", "quantity": 0})

        assert response.status_code == 422

    async def test_set_quantity_zero_removes(self, api_client: AsyncClient):
        await api_client.post("/cart/items", json={"product_id": "p1", "quantity": 3})
        await api_client.post("/cart/items", json={"product_id": "p2"})

        response = await api_client.put("/cart/items/p1", json={"quantity": 0})

        assert response.status_code == 200
        assert [i["product_id"] for i in response.json()["items"]] == ["p2"]

    async def test_set_quantity_without_cart_is_404(self, api_client: AsyncClient):
        response = await api_client.put("/cart/items/p1", json={"quantity": 2})

        assert response.status_code == 404
        assert response.json()["detail"] == "Cart not found"

    async def test_remove_unknown_item_is_noop(self, api_client: AsyncClient):
        await api_client.post("/cart/items", json={"product_id": "p1", "quantity": 2})

        response = await api_client.delete("/cart/items/not-in-cart")

        assert response.status_code == 200
        assert [(i["product_id"], i["quantity"]) for i in response.json()["items"]] == [("p1", 2)]

    async def test_remove_without_cart_is_404(self, api_client: AsyncClient):
        response = await api_client.delete("/cart/items/p1")

        assert response.status_code == 404

    async def test_clear_cart(self, api_client: AsyncClient):
        await api_client.post("/cart/items", json={"product_id": "p1"})

        first = await api_client.delete("/cart")
        second = await api_client.delete("/cart")

        assert first.status_code == second.status_code == 200
        assert first.json()["items"] == second.json()["items"] == []


@pytest.mark.asyncio
class TestCheckoutEndpoints:
    async def test_checkout_creates_order_and_empties_cart(self, api_client: AsyncClient, seeded_store):
        # Arrange
        await api_client.post("/cart/items", json={"product_id": "p1", "quantity": 2})
        await api_client.post("/cart/items", json={"product_id": "p2", "quantity": 1})

        # Act
        response = await api_client.post("/checkout")

        # Assert
        assert response.status_code == 201
        data = response.json()
        assert data["total_amount"] == 25.50
        assert data["status"] == "Pending"
        order = await seeded_store.get(ORDERS, data["order_id"])
        assert order["total_amount"] == 25.50
        assert len(order["items"]) == 2
        assert (await api_client.get("/cart")).json()["items"] == []

    async def test_checkout_empty_cart_is_400(self, api_client: AsyncClient, seeded_store):
        response = await api_client.post("/checkout")

        assert response.status_code == 400
        assert response.json()["detail"] == "Cart is empty"
        assert await seeded_store.query(ORDERS) == []

    async def test_orders_listed_after_checkout(self, api_client: AsyncClient):
        await api_client.post("/cart/items", json={"product_id": "p2", "quantity": 4})
        order_id = (await api_client.post("/checkout")).json()["order_id"]

        response = await api_client.get("/orders")

        assert response.status_code == 200
        orders = response.json()
        assert [o["id"] for o in orders] == [order_id]
        assert orders[0]["total_amount"] == 22.0
        assert orders[0]["user_id"] == "user-1"


@pytest.mark.asyncio
class TestAuthEndpoints:
    async def test_cart_requires_token(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get("/cart")

        assert response.status_code == 401

    async def test_invalid_token_rejected(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get("/cart", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_register_login_and_use_cart(self, anonymous_client: AsyncClient):
        # Arrange
        register = await anonymous_client.post(
            "/auth/register",
            json={"email": "ada@example.com", "password": "secret1", "name": "Ada"},
        )
        assert register.status_code == 201
        user_id = register.json()["id"]

        # Act
        login = await anonymous_client.post(
            "/auth/login",
            data={"username": "ada@example.com", "password": "secret1"},
        )
        headers = {"Authorization": f"Bearer {login.json()['access_token']}"}
        me = await anonymous_client.get("/auth/me", headers=headers)
        added = await anonymous_client.post("/cart/items", json={"product_id": "p1"}, headers=headers)

        # Assert
        assert login.status_code == 200
        assert me.json() == {"id": user_id, "email": "ada@example.com", "name": "Ada"}
        assert added.status_code == 200
        assert added.json()["user_id"] == user_id

    async def test_login_with_address_as_registered(self, anonymous_client: AsyncClient):
        await anonymous_client.post("/auth/register", json={"email": "Ada@Example.COM", "password": "secret1"})

        response = await anonymous_client.post(
            "/auth/login",
            data={"username": "Ada@Example.COM", "password": "secret1"},
        )

        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    async def test_register_duplicate_email(self, anonymous_client: AsyncClient):
        payload = {"email": "ada@example.com", "password": "secret1"}
        await anonymous_client.post("/auth/register", json=payload)

        response = await anonymous_client.post("/auth/register", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == "Email already registered"

    async def test_login_wrong_password(self, anonymous_client: AsyncClient):
        await anonymous_client.post("/auth/register", json={"email": "ada@example.com", "password": "secret1"})

        response = await anonymous_client.post(
            "/auth/login",
            data={"username": "ada@example.com", "password": "wrong-one"},
        )

        assert response.status_code == 401


@pytest.mark.asyncio
async def test_root_and_diagnostics(api_client: AsyncClient):
    root = await api_client.get("/")
    diagnostics = await api_client.get("/test")

    assert root.json() == {"message": "SwiftCart API is running"}
    assert diagnostics.status_code == 200
    assert "products" in diagnostics.json()["collections"]


def test_run_serves_app_on_configured_port():
    from swiftcart import main

    with patch("uvicorn.run") as serve:
        main.run()

    serve.assert_called_once_with(main.app, host="0.0.0.0", port=main.settings.port)
