"""
Per-user shopping cart.

The cart lives on the user document as ``cart_data`` ({food id: quantity}).
Add and remove use atomic field updates so simultaneous requests against the
same cart do not overwrite each other.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from bson import ObjectId
from loguru import logger
from pymongo import ReturnDocument

import config
from catalog import find_food
from database import get_collection, storage_errors, to_object_id
from errors import NotFoundError, ValidationError
from schemas import clean_cart_data


def _user_oid(user_id: str) -> ObjectId:
    object_id = to_object_id(user_id)
    if object_id is None:
        raise NotFoundError("User not found")
    return object_id


def _check_item(item_id: str, quantity: int) -> str:
    # item ids become part of a dotted field path, so only ObjectId strings are allowed
    if not isinstance(item_id, str) or to_object_id(item_id) is None:
        raise ValidationError("Invalid item id", details={"item_id": item_id})
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})
    return f"cart_data.{item_id}"


@storage_errors
def add_item(user_id: str, item_id: str, quantity: int = 1) -> int:
    """Add ``quantity`` of an item and return the new quantity in the cart."""
    field = _check_item(item_id, quantity)
    user_oid = _user_oid(user_id)
    users = get_collection("user")
    now = datetime.now(timezone.utc)

    # a stale non-positive entry is replaced, never added to
    reset = users.update_one(
        {"_id": user_oid, field: {"$lte": 0}},
        {"$set": {field: quantity, "updated_at": now}},
    )
    if reset.matched_count:
        new_quantity = quantity
    else:
        user = users.find_one_and_update(
            {"_id": user_oid},
            {"$inc": {field: quantity}, "$set": {"updated_at": now}},
            projection={"cart_data": 1},
            return_document=ReturnDocument.AFTER,
        )
        if user is None:
            raise NotFoundError("User not found")
        new_quantity = int(user["cart_data"][item_id])
    logger.info("Item {} added to cart of user {} (quantity {})", item_id, user_id, new_quantity)
    return new_quantity


@storage_errors
def remove_item(user_id: str, item_id: str, quantity: int = 1) -> int:
    """Remove ``quantity`` of an item; the entry is deleted once it reaches zero.

    Returns the remaining quantity (0 when the entry is gone). Each write is
    conditional on the stored value, so a non-positive quantity is never stored.
    """
    field = _check_item(item_id, quantity)
    user_oid = _user_oid(user_id)
    users = get_collection("user")

    while True:
        now = datetime.now(timezone.utc)
        removed = users.update_one(
            {"_id": user_oid, field: {"$lte": quantity}},
            {"$unset": {field: ""}, "$set": {"updated_at": now}},
        )
        if removed.matched_count:
            remaining = 0
            break

        user = users.find_one_and_update(
            {"_id": user_oid, field: {"$gt": quantity}},
            {"$inc": {field: -quantity}, "$set": {"updated_at": now}},
            projection={"cart_data": 1},
            return_document=ReturnDocument.AFTER,
        )
        if user is not None:
            remaining = int(user["cart_data"][item_id])
            break

        # neither write matched: the entry is absent, malformed, or changed in between
        user = users.find_one({"_id": user_oid}, {"cart_data": 1})
        if user is None:
            raise NotFoundError("User not found")
        stored = (user.get("cart_data") or {}).get(item_id)
        if stored is None:
            remaining = 0
            break
        if isinstance(stored, bool) or not isinstance(stored, (int, float)):
            users.update_one({"_id": user_oid}, {"$unset": {field: ""}, "$set": {"updated_at": now}})
            remaining = 0
            break

    logger.info("Item {} removed from cart of user {} (quantity {})", item_id, user_id, remaining)
    return remaining


def remove_ordered_items(user_id: str, quantities: Dict[str, int]) -> None:
    """Take the ordered quantities out of the cart.

    Anything added to the cart while the order was being placed stays there.
    """
    for item_id, quantity in quantities.items():
        remove_item(user_id, item_id, quantity)
    logger.info("Ordered items removed from cart of user {}", user_id)


@storage_errors
def get_cart_data(user_id: str) -> Dict[str, int]:
    user = get_collection("user").find_one({"_id": _user_oid(user_id)}, {"cart_data": 1})
    if user is None:
        raise NotFoundError("User not found")
    return clean_cart_data(user.get("cart_data"))


def get_cart(user_id: str) -> Dict[str, Any]:
    """Cart contents joined with the current catalog, plus a price summary.

    Items that no longer exist in the catalog are left out.
    """
    cart_items = []
    total_amount = 0.0
    total_items = 0

    for item_id, quantity in get_cart_data(user_id).items():
        food = find_food(item_id)
        if food is None:
            logger.warning("Food item not found, skipping cart entry: {}", item_id)
            continue
        item_total = food["price"] * quantity
        cart_items.append({
            "_id": food["_id"],
            "name": food["name"],
            "description": food.get("description"),
            "price": food["price"],
            "image": food.get("image"),
            "category": food.get("category"),
            "quantity": quantity,
            "total": round(item_total, 2),
            "is_available": food.get("is_available", True),
        })
        total_amount += item_total
        total_items += quantity

    total_amount = round(total_amount, 2)
    delivery_fee = config.DELIVERY_FEE if total_amount > 0 else 0
    logger.info("Cart retrieved for user {}: {} items, total {}", user_id, len(cart_items), total_amount)
    return {
        "items": cart_items,
        "summary": {
            "item_count": len(cart_items),
            "total_items": total_items,
            "total_amount": total_amount,
            "delivery_fee": delivery_fee,
            "final_amount": round(total_amount + delivery_fee, 2),
        },
    }


@storage_errors
def clear_cart(user_id: str) -> None:
    result = get_collection("user").update_one(
        {"_id": _user_oid(user_id)},
        {"$set": {"cart_data": {}, "updated_at": datetime.now(timezone.utc)}},
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")
    logger.info("Cart cleared for user {}", user_id)
