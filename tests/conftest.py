"""
Shared fixtures.

Services run against a real ``InMemoryDocumentStore``; only failure paths
swap in a store that raises ``StoreError`` from selected methods.
"""
import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from swiftcart.auth import StaticIdentity, get_current_user_id
from swiftcart.cart_service import CartService
from swiftcart.catalog import CatalogService
from swiftcart.config import Settings
from swiftcart.database import PRODUCTS, InMemoryDocumentStore
from swiftcart.main import app
from swiftcart.results import StoreError
from swiftcart.schemas import Product

TEST_USER_ID = "user-1"


class FailingStore(InMemoryDocumentStore):
    """In-memory store whose listed methods raise ``StoreError``."""

    def __init__(self):
        super().__init__()
        self.fail_on = set()

    async def get(self, collection, key):
        if "get" in self.fail_on:
            raise StoreError("store unavailable")
        return await super().get(collection, key)

    async def set(self, collection, key, document):
        if "set" in self.fail_on:
            raise StoreError("store unavailable")
        await super().set(collection, key, document)

    async def query(self, collection, **filters):
        if "query" in self.fail_on:
            raise StoreError("store unavailable")
        return await super().query(collection, **filters)

    async def add_with_generated_id(self, collection, document):
        if "add_with_generated_id" in self.fail_on:
            raise StoreError("store unavailable")
        return await super().add_with_generated_id(collection, document)


class SlowReadStore(InMemoryDocumentStore):
    """Yields to the event loop after each read, so concurrent callers interleave."""

    async def get(self, collection, key):
        doc = await super().get(collection, key)
        await asyncio.sleep(0)
        return doc


@pytest.fixture
def settings() -> Settings:
    return Settings(secret_key="test-secret", access_token_expire_minutes=5)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def slow_store() -> SlowReadStore:
    return SlowReadStore()


@pytest.fixture
def user_id() -> str:
    return TEST_USER_ID


@pytest.fixture
def cart_service(store, user_id) -> CartService:
    return CartService(store, StaticIdentity(user_id))


@pytest.fixture
def anonymous_cart_service(store) -> CartService:
    return CartService(store, StaticIdentity(None))


@pytest.fixture
def catalog(store) -> CatalogService:
    return CatalogService(store)


@pytest.fixture
def p1() -> Product:
    return Product(id="p1", name="Desk Lamp", description="LED lamp", price=10.00, image_url="lamp.png", stock=5, category="home")


@pytest.fixture
def p2() -> Product:
    return Product(id="p2", name="Notebook", description="A5 dotted", price=5.50, image_url="notebook.png", stock=40, category="office")


@pytest.fixture
async def seeded_store(store, p1, p2) -> InMemoryDocumentStore:
    for product in (p1, p2):
        await store.set(PRODUCTS, product.id, product.to_document())
    return store


@pytest.fixture
async def api_client(seeded_store, settings):
    """
    Async client against the real app with a seeded in-memory store.
    Authentication is overridden to always resolve to the test user.
    """
    original_store, original_settings = app.state.store, app.state.settings
    app.state.store = seeded_store
    app.state.settings = settings
    app.dependency_overrides[get_current_user_id] = lambda: TEST_USER_ID

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.store, app.state.settings = original_store, original_settings


@pytest.fixture
async def anonymous_client(seeded_store, settings):
    """Async client with real bearer-token authentication."""
    original_store, original_settings = app.state.store, app.state.settings
    app.state.store = seeded_store
    app.state.settings = settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.state.store, app.state.settings = original_store, original_settings
