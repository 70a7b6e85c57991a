"""
Per-session state containers.

A front end holds one ``ShopSession`` per signed-in user. Each controller
exposes its state as ``Observable`` values and forwards user intents to the
services; the front end subscribes and renders. Nothing here is global: a
session is torn down with ``close()``.
"""
from typing import Callable, Generic, List, Literal, Optional, TypeVar, Union

import structlog
from pydantic import BaseModel

from .auth import AuthService
from .cart_service import CartService
from .catalog import CatalogService
from .config import Settings
from .database import DocumentStore
from .schemas import Cart, Product

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """A value that broadcasts every update to its subscribers, in subscription order."""

    def __init__(self, value: T):
        self._value = value
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T):
        self._value = value
        for callback in list(self._subscribers):
            callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback``; it is called right away with the current value."""
        self._subscribers.append(callback)
        callback(self._value)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def close(self):
        self._subscribers.clear()


class AuthInitial(BaseModel):
    tag: Literal["initial"] = "initial"


class AuthLoading(BaseModel):
    tag: Literal["loading"] = "loading"


class AuthSuccess(BaseModel):
    tag: Literal["success"] = "success"


class AuthError(BaseModel):
    tag: Literal["error"] = "error"
    message: str


AuthState = Union[AuthInitial, AuthLoading, AuthSuccess, AuthError]


class AuthController:
    def __init__(self, auth: AuthService):
        self.auth = auth
        self.auth_state: Observable[AuthState] = Observable(AuthInitial())
        self.is_logged_in: Observable[bool] = Observable(auth.current_user_id() is not None)

    async def sign_up(self, name: str, email: str, password: str, confirm_password: str):
        if not name.strip() or not email.strip() or not password.strip():
            self.auth_state.set(AuthError(message="All fields are required"))
            return
        if password != confirm_password:
            self.auth_state.set(AuthError(message="Passwords do not match"))
            return
        if len(password) < 6:
            self.auth_state.set(AuthError(message="Password must be at least 6 characters"))
            return

        self.auth_state.set(AuthLoading())
        result = await self.auth.sign_up(email, password, name)
        self._finish(result, "Sign up failed")

    async def sign_in(self, email: str, password: str):
        if not email.strip() or not password.strip():
            self.auth_state.set(AuthError(message="Email and password cannot be empty"))
            return

        self.auth_state.set(AuthLoading())
        result = await self.auth.sign_in(email, password)
        self._finish(result, "Sign in failed")

    def _finish(self, result, fallback: str):
        if result.ok:
            self.is_logged_in.set(True)
            self.auth_state.set(AuthSuccess())
        else:
            self.auth_state.set(AuthError(message=result.message or fallback))

    def sign_out(self):
        self.auth.sign_out()
        self.is_logged_in.set(False)
        self.auth_state.set(AuthInitial())

    def reset_auth_state(self):
        self.auth_state.set(AuthInitial())

    def close(self):
        self.auth_state.close()
        self.is_logged_in.close()


class ProductController:
    def __init__(self, catalog: CatalogService):
        self.catalog = catalog
        self.products: Observable[List[Product]] = Observable([])
        self.is_loading: Observable[bool] = Observable(False)
        self.error: Observable[Optional[str]] = Observable(None)
        self.selected_product: Observable[Optional[Product]] = Observable(None)

    async def load_products(self):
        self.is_loading.set(True)
        self.error.set(None)
        result = await self.catalog.fetch_products()
        self.is_loading.set(False)

        if result.ok:
            self.products.set(result.value or [])
        else:
            self.error.set(result.message or "Failed to load products")

    async def select_product(self, product_id: str):
        self.is_loading.set(True)
        result = await self.catalog.fetch_product(product_id)
        self.is_loading.set(False)

        if result.ok:
            self.selected_product.set(result.value)
        else:
            self.error.set(result.message or "Failed to load product")

    def clear_error(self):
        self.error.set(None)

    def close(self):
        for observable in (self.products, self.is_loading, self.error, self.selected_product):
            observable.close()


class CartController:
    """
    Cart screen state. A failed mutation leaves ``cart`` as it was; a
    successful one reloads it from the store.
    """

    def __init__(self, service: CartService):
        self.service = service
        self.cart: Observable[Optional[Cart]] = Observable(None)
        self.is_loading: Observable[bool] = Observable(False)
        self.error: Observable[Optional[str]] = Observable(None)
        self.operation_success: Observable[Optional[str]] = Observable(None)

    async def load_cart(self):
        self.is_loading.set(True)
        self.error.set(None)
        result = await self.service.fetch_cart()
        self.is_loading.set(False)

        if result.ok:
            self.cart.set(result.value)
        else:
            self.error.set(result.message or "Failed to load cart")

    async def add_to_cart(self, product: Product, quantity: int = 1):
        self.is_loading.set(True)
        self.error.set(None)
        result = await self.service.add_item(product, quantity)
        self.is_loading.set(False)

        if result.ok:
            self.operation_success.set(f"{product.name} added to cart")
            await self.load_cart()
        else:
            self.error.set(result.message or "Failed to add to cart")

    async def update_quantity(self, product_id: str, quantity: int):
        self.error.set(None)
        result = await self.service.set_quantity(product_id, quantity)

        if result.ok:
            await self.load_cart()
        else:
            self.error.set(result.message or "Failed to update quantity")

    async def remove_from_cart(self, product_id: str):
        self.error.set(None)
        result = await self.service.remove_item(product_id)

        if result.ok:
            self.operation_success.set("Item removed from cart")
            await self.load_cart()
        else:
            self.error.set(result.message or "Failed to remove item")

    async def clear_cart(self):
        self.error.set(None)
        result = await self.service.clear_cart()

        if result.ok:
            await self.load_cart()
        else:
            self.error.set(result.message or "Failed to clear cart")

    async def place_order(self):
        current = self.cart.value
        if current is None:
            return
        if not current.items:
            self.error.set("Cart is empty")
            return

        self.is_loading.set(True)
        self.error.set(None)
        result = await self.service.place_order(current)
        self.is_loading.set(False)

        if result.ok:
            self.operation_success.set(f"Order placed successfully! Order ID: {result.value}")
            await self.load_cart()
        else:
            self.error.set(result.message or "Failed to place order")

    def clear_messages(self):
        self.error.set(None)
        self.operation_success.set(None)

    def close(self):
        for observable in (self.cart, self.is_loading, self.error, self.operation_success):
            observable.close()


class ShopSession:
    def __init__(self, store: DocumentStore, settings: Settings):
        self.auth_service = AuthService(store, settings)
        self.auth = AuthController(self.auth_service)
        self.products = ProductController(CatalogService(store))
        self.cart = CartController(CartService(store, self.auth_service))

    def close(self):
        self.auth.sign_out()
        self.auth.close()
        self.products.close()
        self.cart.close()
        logger.info("session.closed")
