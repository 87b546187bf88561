"""
Order placement and order history.

Placing an order turns the caller's cart into an immutable order record:
prices are copied from the catalog at that moment, totals are fixed and a
unique order number is assigned. Every check runs before the single insert,
and the ordered quantities only leave the cart once the insert has succeeded.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, get_args

from loguru import logger

import config
from cart import get_cart_data, remove_ordered_items
from catalog import find_food
from database import count_documents, get_documents, insert_document, next_sequence
from errors import ConflictError, NotFoundError, ServiceError, ValidationError
from schemas import ADDRESS_FIELDS, DeliveryAddress, Order, OrderLineItem, PaymentStatus

ORDER_NUMBER_SEQUENCE = "order_number"


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ""


def validate_address(address: Optional[dict]) -> DeliveryAddress:
    """Check that every delivery address field is present and non-blank."""
    address = address or {}
    missing = [field for field in ADDRESS_FIELDS if _is_blank(address.get(field))]
    if missing:
        raise ValidationError(
            f"Missing required address fields: {', '.join(missing)}",
            details={"missing_fields": missing},
        )
    return DeliveryAddress(**{field: str(address[field]).strip() for field in ADDRESS_FIELDS})


def calculate_totals(items: List[OrderLineItem]) -> Tuple[float, float, float]:
    """Return ``(subtotal, delivery_fee, total_amount)`` rounded to cents."""
    subtotal = round(sum(item.price * item.quantity for item in items), 2)
    delivery_fee = config.DELIVERY_FEE
    return subtotal, delivery_fee, round(subtotal + delivery_fee, 2)


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-<epoch millis>-<sequence>, the sequence zero-padded to 4 digits.

    The sequence is an atomic counter, so two numbers generated within the
    same millisecond still differ.
    """
    now = now or datetime.now(timezone.utc)
    timestamp = int(now.timestamp() * 1000)
    sequence = next_sequence(ORDER_NUMBER_SEQUENCE)
    return f"ORD-{timestamp}-{sequence:04d}"


def _snapshot_items(cart_data: Dict[str, int]) -> List[OrderLineItem]:
    items = []
    for food_id, quantity in cart_data.items():
        food = find_food(food_id)
        if food is None:
            raise NotFoundError(f"Food item {food_id} not found", details={"item_id": food_id})
        if not food.get("is_available", True):
            raise ValidationError(
                f"{food['name']} is currently unavailable",
                details={"item_id": food_id, "name": food["name"]},
            )
        items.append(OrderLineItem(
            food_id=food_id,
            name=food["name"],
            price=food["price"],
            quantity=quantity,
            image=food.get("image"),
        ))
    return items


def _insert_order(order_fields: Dict[str, Any]) -> dict:
    for attempt in range(1, config.ORDER_NUMBER_MAX_ATTEMPTS + 1):
        order = Order(order_number=generate_order_number(), **order_fields)
        try:
            return insert_document("order", order)
        except ConflictError:
            logger.warning("Order number {} already taken (attempt {})", order.order_number, attempt)
    raise ConflictError("Could not generate a unique order number")


def place_order(user_id: str, address: Optional[dict], payment_id: Optional[str] = None,
                payment_status: str = "pending") -> dict:
    """Create an order from the user's cart and take the ordered items out of it."""
    delivery_address = validate_address(address)
    if payment_status not in get_args(PaymentStatus):
        raise ValidationError("Invalid payment status", details={"payment_status": payment_status})

    cart_data = get_cart_data(user_id)
    if not cart_data:
        raise ValidationError("Cart is empty")

    items = _snapshot_items(cart_data)
    subtotal, delivery_fee, total_amount = calculate_totals(items)

    created = _insert_order({
        "user_id": user_id,
        "items": items,
        "subtotal": subtotal,
        "delivery_fee": delivery_fee,
        "total_amount": total_amount,
        "address": delivery_address,
        "payment_status": payment_status,
        "payment_id": payment_id,
    })
    logger.info("Order {} placed by user {}, total {}", created["order_number"], user_id, total_amount)

    try:
        remove_ordered_items(user_id, cart_data)
    except ServiceError:
        # the order exists, so report success rather than invite a duplicate retry
        logger.exception("Order {} placed but its items were not removed from the cart of user {}", created["order_number"], user_id)

    return created


def _check_page(page: int, limit: Optional[int]) -> Tuple[int, int]:
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("Page must be a positive integer", details={"page": page})
    if limit is None:
        limit = config.DEFAULT_PAGE_LIMIT
    return page, max(1, min(int(limit), config.MAX_PAGE_LIMIT))


def list_user_orders(user_id: str, page: int = 1, limit: Optional[int] = None) -> dict:
    """Newest-first page of a user's orders.

    Each line item gets an ``is_available`` flag with the catalog's current
    availability; the stored orders themselves are left untouched.
    """
    page, limit = _check_page(page, limit)
    filter_dict = {"user_id": user_id}
    total_orders = count_documents("order", filter_dict)
    orders = get_documents(
        "order",
        filter_dict,
        limit=limit,
        skip=(page - 1) * limit,
        sort=[("created_at", -1), ("_id", -1)],
    )

    availability: Dict[str, bool] = {}
    for order in orders:
        for item in order.get("items", []):
            food_id = item["food_id"]
            if food_id not in availability:
                food = find_food(food_id)
                availability[food_id] = bool(food and food.get("is_available", True))
            item["is_available"] = availability[food_id]

    total_pages = math.ceil(total_orders / limit)
    return {
        "orders": orders,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_orders": total_orders,
            "limit": limit,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
        },
    }
