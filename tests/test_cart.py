import pytest
from bson import ObjectId

import cart
import catalog
from errors import NotFoundError, ValidationError
from schemas import Fooditem


def test_add_item_creates_then_increments(user_id, foods):
    assert cart.add_item(user_id, foods["pizza"], 2) == 2
    assert cart.add_item(user_id, foods["pizza"], 3) == 5
    assert cart.get_cart_data(user_id) == {foods["pizza"]: 5}


def test_remove_item_decrements_and_deletes_at_zero(user_id, foods):
    cart.add_item(user_id, foods["pizza"], 3)
    assert cart.remove_item(user_id, foods["pizza"], 1) == 2
    assert cart.remove_item(user_id, foods["pizza"], 5) == 0
    assert foods["pizza"] not in cart.get_cart_data(user_id)


def test_remove_absent_item_is_noop(user_id, foods):
    assert cart.remove_item(user_id, foods["salad"], 1) == 0
    assert cart.get_cart_data(user_id) == {}


def _stored_quantity(db, user_id, item_id):
    user = db["user"].find_one({"_id": ObjectId(user_id)})
    return user.get("cart_data", {}).get(item_id)


def test_add_replaces_stale_non_positive_entry(user_id, foods, db):
    db["user"].update_one({"_id": ObjectId(user_id)}, {"$set": {f"cart_data.{foods['pizza']}": -3}})

    assert cart.add_item(user_id, foods["pizza"], 2) == 2
    assert _stored_quantity(db, user_id, foods["pizza"]) == 2


def test_add_after_over_removal_starts_from_zero(user_id, foods, db):
    cart.add_item(user_id, foods["pizza"], 1)
    assert cart.remove_item(user_id, foods["pizza"], 5) == 0
    assert _stored_quantity(db, user_id, foods["pizza"]) is None

    assert cart.add_item(user_id, foods["pizza"], 2) == 2
    assert cart.get_cart_data(user_id) == {foods["pizza"]: 2}


class _InterleavedCollection:
    """User collection that runs another cart call once, right before the first decrement."""

    def __init__(self, collection, interleave):
        self._collection = collection
        self._interleave = interleave

    def __getattr__(self, name):
        return getattr(self._collection, name)

    def find_one_and_update(self, *args, **kwargs):
        if self._interleave is not None:
            interleave, self._interleave = self._interleave, None
            interleave()
        return self._collection.find_one_and_update(*args, **kwargs)


def _interleave(monkeypatch, call):
    proxy = _InterleavedCollection(cart.get_collection("user"), call)
    monkeypatch.setattr(cart, "get_collection", lambda name: proxy)


def test_add_between_remove_steps_is_kept(user_id, foods, db, monkeypatch):
    cart.add_item(user_id, foods["pizza"], 3)
    _interleave(monkeypatch, lambda: cart.add_item(user_id, foods["pizza"], 2))

    assert cart.remove_item(user_id, foods["pizza"], 1) == 4
    assert _stored_quantity(db, user_id, foods["pizza"]) == 4


def test_overlapping_removes_never_store_negative(user_id, foods, db, monkeypatch):
    cart.add_item(user_id, foods["pizza"], 3)
    _interleave(monkeypatch, lambda: cart.remove_item(user_id, foods["pizza"], 2))

    assert cart.remove_item(user_id, foods["pizza"], 2) == 0
    assert _stored_quantity(db, user_id, foods["pizza"]) is None

    assert cart.add_item(user_id, foods["pizza"], 1) == 1


def test_remove_drops_malformed_entry(user_id, foods, db):
    db["user"].update_one({"_id": ObjectId(user_id)}, {"$set": {f"cart_data.{foods['pizza']}": "x"}})

    assert cart.remove_item(user_id, foods["pizza"], 1) == 0
    assert _stored_quantity(db, user_id, foods["pizza"]) is None


def test_remove_ordered_items_leaves_the_rest(user_id, foods):
    cart.add_item(user_id, foods["pizza"], 3)
    cart.add_item(user_id, foods["salad"], 1)

    cart.remove_ordered_items(user_id, {foods["pizza"]: 2, foods["salad"]: 1})

    assert cart.get_cart_data(user_id) == {foods["pizza"]: 1}


@pytest.mark.parametrize("deltas", [
    [3, -1, 2, -4],
    [1, -1, 1],
    [2, -5, 4],
    [5, -2, -2, -1, 3],
])
def test_quantity_is_sum_of_deltas_floored_at_deletion(user_id, foods, deltas):
    expected = 0
    for delta in deltas:
        if delta > 0:
            cart.add_item(user_id, foods["pizza"], delta)
            expected += delta
        else:
            cart.remove_item(user_id, foods["pizza"], -delta)
            expected = max(0, expected + delta)
    stored = cart.get_cart_data(user_id)
    if expected == 0:
        assert foods["pizza"] not in stored
    else:
        assert stored[foods["pizza"]] == expected


@pytest.mark.parametrize("quantity", [0, -1, True])
def test_non_positive_quantity_rejected(user_id, foods, quantity):
    with pytest.raises(ValidationError):
        cart.add_item(user_id, foods["pizza"], quantity)


def test_malformed_item_id_rejected(user_id):
    with pytest.raises(ValidationError):
        cart.add_item(user_id, "bad.id", 1)


def test_unknown_user(foods):
    missing = str(ObjectId())
    with pytest.raises(NotFoundError):
        cart.add_item(missing, foods["pizza"], 1)
    with pytest.raises(NotFoundError):
        cart.remove_item(missing, foods["pizza"], 1)
    with pytest.raises(NotFoundError):
        cart.get_cart(missing)
    with pytest.raises(NotFoundError):
        cart.clear_cart("not-an-id")


def test_get_cart_totals(user_id, foods):
    cart.add_item(user_id, foods["pizza"], 2)
    cart.add_item(user_id, foods["salad"], 1)

    view = cart.get_cart(user_id)

    lines = {line["_id"]: line for line in view["items"]}
    assert lines[foods["pizza"]]["total"] == 21.98
    assert lines[foods["salad"]]["total"] == 8.5
    assert view["summary"] == {
        "item_count": 2,
        "total_items": 3,
        "total_amount": 30.48,
        "delivery_fee": 2,
        "final_amount": 32.48,
    }


def test_empty_cart_has_no_delivery_fee(user_id):
    summary = cart.get_cart(user_id)["summary"]
    assert summary["total_amount"] == 0
    assert summary["delivery_fee"] == 0
    assert summary["final_amount"] == 0


def test_free_items_carry_no_delivery_fee(user_id):
    water = catalog.add_food(Fooditem(name="Tap Water", price=0))
    cart.add_item(user_id, water, 2)
    summary = cart.get_cart(user_id)["summary"]
    assert summary["total_items"] == 2
    assert summary["delivery_fee"] == 0


def test_get_cart_skips_items_missing_from_catalog(user_id, foods, db):
    gone = str(ObjectId())
    cart.add_item(user_id, foods["salad"], 1)
    cart.add_item(user_id, gone, 4)

    view = cart.get_cart(user_id)

    assert [line["_id"] for line in view["items"]] == [foods["salad"]]
    assert view["summary"]["total_amount"] == 8.5
    # the stale entry is still stored, only hidden from the view
    assert cart.get_cart_data(user_id)[gone] == 4


def test_stored_cart_is_cleaned_on_read(user_id, foods, db):
    db["user"].update_one(
        {"_id": ObjectId(user_id)},
        {"$set": {"cart_data": {foods["pizza"]: 2, foods["salad"]: 0, "junk": "x"}}},
    )
    assert cart.get_cart_data(user_id) == {foods["pizza"]: 2}


def test_clear_cart_is_idempotent(user_id, foods):
    cart.add_item(user_id, foods["pizza"], 2)
    cart.clear_cart(user_id)
    cart.clear_cart(user_id)
    assert cart.get_cart_data(user_id) == {}
