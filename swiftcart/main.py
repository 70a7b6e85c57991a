from datetime import datetime
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field

from .auth import AuthService, StaticIdentity, get_current_user_id
from .cart_service import CartService
from .catalog import CatalogService
from .config import configure_logging, get_settings
from .database import create_store
from .results import ErrorKind, Failure, Result, StoreError
from .schemas import ORDER_STATUS_PENDING, Cart, CartItem, Order, Product, User

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title="SwiftCart API")
app.state.settings = settings
app.state.store = create_store(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PARSE_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.REMOTE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap(result: Result):
    if isinstance(result, Failure):
        raise HTTPException(status_code=STATUS_BY_KIND[result.kind], detail=result.message)
    return result.value


# Request / response models
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = ""


class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: str


class CartItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class QuantityIn(BaseModel):
    quantity: int


class CartOut(BaseModel):
    id: str
    user_id: str
    items: List[CartItem]
    total_price: float
    total_items: int
    updated_at: datetime

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartOut":
        return cls(
            id=cart.id,
            user_id=cart.user_id,
            items=cart.items,
            total_price=round(cart.total_price(), 2),
            total_items=cart.total_items(),
            updated_at=cart.updated_at,
        )


class CheckoutOut(BaseModel):
    order_id: str
    total_amount: float
    status: str = ORDER_STATUS_PENDING
    payment_method: str = "cash_on_delivery"


# Dependencies
def get_catalog(request: Request) -> CatalogService:
    return CatalogService(request.app.state.store)


def get_auth(request: Request) -> AuthService:
    return AuthService(request.app.state.store, request.app.state.settings)


def get_cart_service(request: Request, user_id: str = Depends(get_current_user_id)) -> CartService:
    return CartService(request.app.state.store, StaticIdentity(user_id))


async def current_cart(service: CartService) -> CartOut:
    return CartOut.from_cart(unwrap(await service.fetch_cart()))


# Routes
@app.get("/")
def root():
    return {"message": "SwiftCart API is running"}


@app.get("/test")
async def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
        "store": type(request.app.state.store).__name__,
        "collections": [],
    }
    try:
        collections = await request.app.state.store.collection_names()
        response["collections"] = collections[:10]
        response["database"] = "✅ Connected & Working"
    except StoreError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# Auth endpoints
@app.post("/auth/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(payload: UserCreate, auth: AuthService = Depends(get_auth)):
    user_id = unwrap(await auth.sign_up(payload.email, payload.password, payload.name))
    return {"id": user_id, "email": payload.email, "name": payload.name}


@app.post("/auth/login", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), auth: AuthService = Depends(get_auth)):
    token = unwrap(await auth.sign_in(form_data.username, form_data.password))
    return {"access_token": token, "token_type": "bearer"}


@app.get("/auth/me", response_model=UserOut)
async def me(user_id: str = Depends(get_current_user_id), auth: AuthService = Depends(get_auth)):
    user: User = unwrap(await auth.fetch_user(user_id))
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"id": user.id, "email": user.email, "name": user.name}


# Product endpoints
@app.get("/products", response_model=List[Product])
async def list_products(catalog: CatalogService = Depends(get_catalog)):
    return unwrap(await catalog.fetch_products())


@app.get("/products/{product_id}", response_model=Product)
async def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    product = unwrap(await catalog.fetch_product(product_id))
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# Cart endpoints (per-user)
@app.get("/cart", response_model=CartOut)
async def get_cart(service: CartService = Depends(get_cart_service)):
    return await current_cart(service)


@app.post("/cart/items", response_model=CartOut)
async def add_to_cart(
    payload: CartItemIn,
    service: CartService = Depends(get_cart_service),
    catalog: CatalogService = Depends(get_catalog),
):
    product = unwrap(await catalog.fetch_product(payload.product_id))
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    unwrap(await service.add_item(product, payload.quantity))
    return await current_cart(service)


@app.put("/cart/items/{product_id}", response_model=CartOut)
async def update_quantity(product_id: str, payload: QuantityIn, service: CartService = Depends(get_cart_service)):
    unwrap(await service.set_quantity(product_id, payload.quantity))
    return await current_cart(service)


@app.delete("/cart/items/{product_id}", response_model=CartOut)
async def remove_from_cart(product_id: str, service: CartService = Depends(get_cart_service)):
    unwrap(await service.remove_item(product_id))
    return await current_cart(service)


@app.delete("/cart", response_model=CartOut)
async def clear_cart(service: CartService = Depends(get_cart_service)):
    unwrap(await service.clear_cart())
    return await current_cart(service)


# Checkout / Orders
@app.post("/checkout", response_model=CheckoutOut, status_code=status.HTTP_201_CREATED)
async def checkout(service: CartService = Depends(get_cart_service)):
    cart: Cart = unwrap(await service.fetch_cart())
    order_id = unwrap(await service.place_order(cart))
    return {"order_id": order_id, "total_amount": round(cart.total_price(), 2)}


@app.get("/orders", response_model=List[Order])
async def list_orders(service: CartService = Depends(get_cart_service)):
    return unwrap(await service.fetch_orders())


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
