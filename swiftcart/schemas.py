"""
Database Schemas for SwiftCart

Each Pydantic model describes one document shape in the document store:
- Product  -> "products" collection, keyed by catalog id
- Cart     -> "carts" collection, keyed by the owning user's id
- Order    -> "orders" collection, keyed by a store generated id
- User     -> "users" collection, keyed by a store generated id

The document key is never stored inside the document; it travels as ``id``.
"""
from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, EmailStr, Field

ORDER_STATUS_PENDING = "Pending"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    id: str = ""

    def to_document(self) -> dict:
        return self.model_dump(exclude={"id"})


class User(Document):
    email: EmailStr
    name: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Product(Document):
    name: str = ""
    description: str = ""
    price: float = Field(0.0, ge=0)
    image_url: str = ""
    stock: int = Field(0, ge=0)
    category: str = ""


class CartItem(BaseModel):
    product_id: str = ""
    product_name: str = Field("", description="Snapshot of the product name")
    price: float = Field(0.0, ge=0, description="Snapshot of the unit price")
    quantity: int = 1
    image_url: str = ""

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> "CartItem":
        return cls(
            product_id=product.id,
            product_name=product.name,
            price=product.price,
            quantity=quantity,
            image_url=product.image_url,
        )

    def line_total(self) -> float:
        return self.price * self.quantity


def items_total(items: List[CartItem]) -> float:
    return sum(item.line_total() for item in items)


class Cart(Document):
    user_id: str = ""
    items: List[CartItem] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def empty(cls, user_id: str) -> "Cart":
        return cls(id=user_id, user_id=user_id)

    def total_price(self) -> float:
        return items_total(self.items)

    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)


class Order(Document):
    user_id: str = ""
    items: List[CartItem] = Field(default_factory=list)
    total_amount: float = Field(0.0, ge=0)
    status: str = Field(ORDER_STATUS_PENDING, description="Pending on creation, never updated here")
    created_at: datetime = Field(default_factory=utcnow)
