"""The shopping cart embedded in each user document.

Entries are stored as ``{"product_id": ObjectId, "quantity": int}``. Reading
the cart prunes entries whose product has been deleted and persists the
pruned cart.
"""
import logging
from typing import Dict, List

from bson import ObjectId
from pymongo.database import Database

from config import settings
from database import now, to_object_id
from errors import NotFoundError, ValidationError
from schemas import CartItem

logger = logging.getLogger(__name__)


def _load_cart(db: Database, user_id: ObjectId) -> List[dict]:
    user = db["user"].find_one({"_id": user_id}, {"cart": 1})
    if user is None:
        raise NotFoundError("User not found")
    return list(user.get("cart") or [])


def _save_cart(db: Database, user_id: ObjectId, cart: List[dict]):
    db["user"].update_one({"_id": user_id}, {"$set": {"cart": cart, "updated_at": now()}})


def _live_products(db: Database, cart: List[dict]) -> Dict[ObjectId, dict]:
    ids = [item.get("product_id") for item in cart if item.get("product_id") is not None]
    return {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}})}


def cart_totals(lines: List[dict]) -> dict:
    """Totals for joined cart lines (each with ``quantity`` and a ``product`` carrying ``price``)."""
    subtotal = round(sum(line["quantity"] * float(line["product"].get("price", 0)) for line in lines), 2)
    delivery = settings.delivery_fee if lines else 0
    return {
        "subtotal": subtotal,
        "delivery": delivery,
        "total": round(subtotal + delivery, 2),
        "item_count": len(lines),
    }


def add_item(db: Database, user: dict, product_id: str, quantity: int) -> List[dict]:
    pid = to_object_id(product_id, "product ID")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if not db["product"].find_one({"_id": pid}, {"_id": 1}):
        raise NotFoundError("Product not found")

    cart = _load_cart(db, user["_id"])
    for item in cart:
        if item.get("product_id") == pid:
            item["quantity"] = int(item.get("quantity", 0)) + quantity
            break
    else:
        cart.append(CartItem(product_id=pid, quantity=quantity).model_dump())
    _save_cart(db, user["_id"], cart)
    return cart


def remove_item(db: Database, user: dict, product_id: str) -> int:
    """Drop the product from the cart along with any entry whose product no longer exists."""
    cart = _load_cart(db, user["_id"])
    live = _live_products(db, cart)
    kept = [
        item for item in cart
        if item.get("product_id") in live and str(item["product_id"]) != product_id
    ]
    _save_cart(db, user["_id"], kept)
    return len(cart) - len(kept)


def set_quantity(db: Database, user: dict, product_id: str, quantity: int) -> int:
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    cart = _load_cart(db, user["_id"])
    for item in cart:
        if item.get("product_id") is not None and str(item["product_id"]) == product_id:
            item["quantity"] = quantity
            break
    else:
        raise NotFoundError("Item not found in cart")
    _save_cart(db, user["_id"], cart)
    return quantity


def clear(db: Database, user_id: ObjectId):
    _save_cart(db, user_id, [])


def read_cart(db: Database, user_id: ObjectId) -> dict:
    """Join the cart with current product data and compute its totals."""
    cart = _load_cart(db, user_id)
    live = _live_products(db, cart)

    lines = []
    kept = []
    for item in cart:
        product = live.get(item.get("product_id"))
        if product is None:
            continue
        kept.append(item)
        lines.append({"product": product, "quantity": int(item.get("quantity", 1))})

    if len(kept) != len(cart):
        _save_cart(db, user_id, kept)
        logger.info("Cleaned %d invalid cart items for user %s", len(cart) - len(kept), user_id)

    return {"items": lines, **cart_totals(lines)}
