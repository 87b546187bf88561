import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, EmailStr, Field

import auth
import cart
import catalog
import config
import database
import orders
from auth import get_current_user_id
from errors import ServiceError
from schemas import PaymentStatus


def setup_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=config.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    database.connect()
    yield
    database.close()


app = FastAPI(title="Food Delivery API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "details": {"errors": errors}},
    )


# ============ Request models ==========
class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class CartItemRequest(BaseModel):
    item_id: str
    quantity: int = Field(1, ge=1)


class PlaceOrderRequest(BaseModel):
    address: Optional[dict] = None
    payment_id: Optional[str] = None
    payment_status: PaymentStatus = "pending"


class UserOrdersRequest(BaseModel):
    page: int = 1
    limit: Optional[int] = None


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {
        "success": True,
        "message": "Food Delivery API is running!",
        "endpoints": {
            "GET /api/food/list": "Get all food items",
            "GET /api/food/categories": "Get food categories",
            "POST /api/user/register": "Register new user",
            "POST /api/user/login": "Login user",
            "POST /api/cart/add": "Add item to cart",
            "POST /api/cart/remove": "Remove item from cart",
            "POST /api/cart/get": "Get cart contents",
            "DELETE /api/cart/clear": "Clear cart",
            "POST /api/order/place": "Place order",
            "POST /api/order/userorders": "Get user orders",
        },
        "note": "Cart and Order endpoints require an authentication token",
    }


@app.get("/test")
def test_database():
    collections = database.list_collection_names()
    return {
        "success": True,
        "data": {"database": database.db.name, "collections": collections},
    }


# ===================== Food =====================
@app.get("/api/food/list")
def list_foods():
    foods = catalog.list_foods()
    return {"success": True, "data": foods, "message": f"Found {len(foods)} food items"}


@app.get("/api/food/categories")
def list_categories():
    return {"success": True, "data": catalog.list_categories()}


# ===================== Users =====================
@app.post("/api/user/register", status_code=201)
def register(payload: RegisterRequest):
    result = auth.register(payload.name, payload.email, payload.password)
    return {"success": True, "message": "User registered successfully", **result}


@app.post("/api/user/login")
def login(payload: LoginRequest):
    result = auth.login(payload.email, payload.password)
    return {"success": True, "message": "Login successful", **result}


# ===================== Cart =====================
@app.post("/api/cart/add")
def add_to_cart(payload: CartItemRequest, user_id: str = Depends(get_current_user_id)):
    quantity = cart.add_item(user_id, payload.item_id, payload.quantity)
    return {
        "success": True,
        "message": "Item added to cart",
        "data": {"item_id": payload.item_id, "quantity": quantity},
    }


@app.post("/api/cart/remove")
def remove_from_cart(payload: CartItemRequest, user_id: str = Depends(get_current_user_id)):
    quantity = cart.remove_item(user_id, payload.item_id, payload.quantity)
    return {
        "success": True,
        "message": "Item removed from cart",
        "data": {"item_id": payload.item_id, "quantity": quantity},
    }


@app.post("/api/cart/get")
def get_cart(user_id: str = Depends(get_current_user_id)):
    return {"success": True, "data": cart.get_cart(user_id)}


@app.delete("/api/cart/clear")
def clear_cart(user_id: str = Depends(get_current_user_id)):
    cart.clear_cart(user_id)
    return {"success": True, "message": "Cart cleared successfully"}


# ===================== Orders =====================
@app.post("/api/order/place", status_code=201)
def place_order(payload: PlaceOrderRequest, user_id: str = Depends(get_current_user_id)):
    order = orders.place_order(user_id, payload.address, payload.payment_id, payload.payment_status)
    return {"success": True, "message": "Order placed successfully", "data": order}


@app.post("/api/order/userorders")
def user_orders(payload: Optional[UserOrdersRequest] = None, user_id: str = Depends(get_current_user_id)):
    payload = payload or UserOrdersRequest()
    result = orders.list_user_orders(user_id, payload.page, payload.limit)
    return {"success": True, "data": result["orders"], "pagination": result["pagination"]}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
