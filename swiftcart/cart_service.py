"""
Cart and order operations for the signed-in user.

Every mutation follows the same pattern: read the whole cart document,
transform the item list in memory, overwrite the whole document. There is no
version check, so two concurrent mutations of one cart race and the last
write wins.
"""
from typing import List, Optional

import structlog
from pydantic import ValidationError

from .auth import Identity
from .database import CARTS, ORDERS, DocumentStore
from .results import (
    Result,
    StoreError,
    Success,
    invalid,
    not_found,
    parse_failure,
    remote_failure,
    unauthenticated,
)
from .schemas import Cart, CartItem, Order, Product, items_total, utcnow

logger = structlog.get_logger(__name__)


class MalformedCart(ValueError):
    pass


def parse_cart(doc: dict, user_id: str) -> Cart:
    raw_items = doc.get("items") or []
    if not isinstance(raw_items, list):
        raise MalformedCart(f"Malformed cart document: {user_id}")

    items = []
    for raw in raw_items:
        try:
            item = CartItem.model_validate(raw)
        except ValidationError as e:
            logger.warning("cart.item.unparseable", user_id=user_id, error=str(e))
            continue
        if item.quantity < 1:
            logger.warning("cart.item.non_positive", user_id=user_id, product_id=item.product_id, quantity=item.quantity)
            continue
        items.append(item)
    try:
        return Cart(
            id=doc.get("id") or user_id,
            user_id=user_id,
            items=items,
            updated_at=doc.get("updated_at") or utcnow(),
        )
    except ValidationError as e:
        raise MalformedCart(f"Malformed cart document: {user_id}") from e


class CartService:
    def __init__(self, store: DocumentStore, identity: Identity):
        self.store = store
        self.identity = identity

    async def _read(self, user_id: str) -> Optional[Cart]:
        doc = await self.store.get(CARTS, user_id)
        if doc is None:
            return None
        return parse_cart(doc, user_id)

    async def _write(self, user_id: str, items: List[CartItem]):
        cart = Cart(id=user_id, user_id=user_id, items=items, updated_at=utcnow())
        await self.store.set(CARTS, user_id, cart.to_document())

    async def fetch_cart(self) -> Result:
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        logger.debug("cart.fetch", user_id=user_id)
        try:
            cart = await self._read(user_id)
        except StoreError as e:
            logger.error("cart.fetch.failed", user_id=user_id, error=str(e))
            return remote_failure(e)
        except MalformedCart as e:
            return parse_failure(str(e))
        if cart is None:
            cart = Cart.empty(user_id)
        logger.debug("cart.fetch.ok", user_id=user_id, items=len(cart.items))
        return Success(value=cart)

    async def add_item(self, product: Product, quantity: int = 1) -> Result:
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        if quantity < 1:
            return invalid("Quantity must be at least 1")
        logger.debug("cart.add", user_id=user_id, product_id=product.id, quantity=quantity)
        try:
            cart = await self._read(user_id)
            items = list(cart.items) if cart else []
            for i, item in enumerate(items):
                if item.product_id == product.id:
                    items[i] = item.model_copy(update={"quantity": item.quantity + quantity})
                    break
            else:
                items.append(CartItem.from_product(product, quantity))
            await self._write(user_id, items)
        except StoreError as e:
            logger.error("cart.add.failed", user_id=user_id, product_id=product.id, error=str(e))
            return remote_failure(e)
        except MalformedCart as e:
            return parse_failure(str(e))
        logger.info("cart.add.ok", user_id=user_id, product_id=product.id)
        return Success(value=True)

    async def set_quantity(self, product_id: str, quantity: int) -> Result:
        """A quantity of zero or less removes the item."""
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        logger.debug("cart.set_quantity", user_id=user_id, product_id=product_id, quantity=quantity)
        try:
            cart = await self._read(user_id)
            if cart is None:
                return not_found("Cart not found")
            items = [
                item.model_copy(update={"quantity": quantity}) if item.product_id == product_id else item
                for item in cart.items
            ]
            await self._write(user_id, [item for item in items if item.quantity > 0])
        except StoreError as e:
            logger.error("cart.set_quantity.failed", user_id=user_id, product_id=product_id, error=str(e))
            return remote_failure(e)
        except MalformedCart as e:
            return parse_failure(str(e))
        logger.info("cart.set_quantity.ok", user_id=user_id, product_id=product_id, quantity=quantity)
        return Success(value=True)

    async def remove_item(self, product_id: str) -> Result:
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        logger.debug("cart.remove", user_id=user_id, product_id=product_id)
        try:
            cart = await self._read(user_id)
            if cart is None:
                return not_found("Cart not found")
            await self._write(user_id, [item for item in cart.items if item.product_id != product_id])
        except StoreError as e:
            logger.error("cart.remove.failed", user_id=user_id, product_id=product_id, error=str(e))
            return remote_failure(e)
        except MalformedCart as e:
            return parse_failure(str(e))
        logger.info("cart.remove.ok", user_id=user_id, product_id=product_id)
        return Success(value=True)

    async def clear_cart(self) -> Result:
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        logger.debug("cart.clear", user_id=user_id)
        try:
            await self._write(user_id, [])
        except StoreError as e:
            logger.error("cart.clear.failed", user_id=user_id, error=str(e))
            return remote_failure(e)
        logger.info("cart.clear.ok", user_id=user_id)
        return Success(value=True)

    async def place_order(self, cart: Cart) -> Result:
        """
        Write an order snapshot of ``cart`` and then empty the stored cart.

        The order is committed before the cart is cleared. If clearing fails the
        order stands and its id is still returned; nothing is rolled back.
        """
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        if not cart.items:
            return invalid("Cart is empty")

        order = Order(
            user_id=user_id,
            items=[item.model_copy() for item in cart.items],
            total_amount=round(items_total(cart.items), 2),
        )
        logger.debug("order.create", user_id=user_id, items=len(order.items), total=order.total_amount)
        try:
            order_id = await self.store.add_with_generated_id(ORDERS, order.to_document())
        except StoreError as e:
            logger.error("order.create.failed", user_id=user_id, error=str(e))
            return remote_failure(e)

        cleared = await self.clear_cart()
        if not cleared.ok:
            logger.warning("order.cart_not_cleared", user_id=user_id, order_id=order_id, error=cleared.message)
        logger.info("order.create.ok", user_id=user_id, order_id=order_id)
        return Success(value=order_id)

    async def fetch_orders(self) -> Result:
        user_id = self.identity.current_user_id()
        if user_id is None:
            return unauthenticated()
        logger.debug("order.fetch", user_id=user_id)
        try:
            docs = await self.store.query(ORDERS, user_id=user_id)
        except StoreError as e:
            logger.error("order.fetch.failed", user_id=user_id, error=str(e))
            return remote_failure(e)

        orders = []
        for doc in docs:
            try:
                orders.append(Order.model_validate(doc))
            except ValidationError as e:
                logger.warning("order.unparseable", order_id=doc.get("id"), error=str(e))
        orders.sort(key=lambda o: o.created_at, reverse=True)
        logger.debug("order.fetch.ok", user_id=user_id, count=len(orders))
        return Success(value=orders)
