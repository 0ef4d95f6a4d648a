"""Order records, order lookup and the order status state machine."""
import logging
import time
import uuid
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel
from pymongo.database import Database

from database import get_documents, now
from errors import ConflictError, InvalidTransitionError, NotFoundError
from schemas import OrderStatus, PaymentMethod

logger = logging.getLogger(__name__)

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYMENT_METHOD_SYNONYMS = {
    "cod": PaymentMethod.COD,
    "cash": PaymentMethod.COD,
    "cashondelivery": PaymentMethod.COD,
    "online": PaymentMethod.ONLINE,
    "razorpay": PaymentMethod.ONLINE,
    "card": PaymentMethod.ONLINE,
    "upi": PaymentMethod.ONLINE,
    "netbanking": PaymentMethod.ONLINE,
    "wallet": PaymentMethod.ONLINE,
    "prepaid": PaymentMethod.ONLINE,
}


def normalize_payment_method(raw: Optional[str]) -> PaymentMethod:
    """Map a client-supplied method name onto COD, ONLINE or UNKNOWN."""
    if not raw:
        return PaymentMethod.UNKNOWN
    key = "".join(ch for ch in raw.lower() if ch.isalnum())
    return PAYMENT_METHOD_SYNONYMS.get(key, PaymentMethod.UNKNOWN)


def new_legacy_order_id() -> str:
    return f"order_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class OrderRef(BaseModel):
    """An order identifier: the database id or the legacy ``order_...`` token."""

    kind: Literal["native", "legacy"]
    value: str

    @classmethod
    def parse(cls, raw: str) -> "OrderRef":
        if ObjectId.is_valid(raw):
            return cls(kind="native", value=raw)
        return cls(kind="legacy", value=raw)

    def query(self) -> dict:
        if self.kind == "native":
            return {"$or": [{"_id": ObjectId(self.value)}, {"legacy_order_id": self.value}]}
        return {"legacy_order_id": self.value}


def find_order(db: Database, ref: OrderRef, user_id: Optional[ObjectId] = None) -> dict:
    query = ref.query()
    if user_id is not None:
        query = {"$and": [query, {"user_id": user_id}]}
    order = db["order"].find_one(query)
    if not order:
        raise NotFoundError("Order not found")
    return order


def find_by_gateway_order(db: Database, gateway_order_id: str, user_id: ObjectId) -> dict:
    order = db["order"].find_one({"gateway_order_id": gateway_order_id, "user_id": user_id})
    if not order:
        raise NotFoundError("Order not found")
    return order


def transition(db: Database, order: dict, target: OrderStatus, **fields) -> dict:
    """Move ``order`` to ``target``; the write only applies if the status is unchanged since it was read."""
    current = OrderStatus(order["status"])
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)

    update = {"status": target.value, "updated_at": now(), **fields}
    res = db["order"].update_one({"_id": order["_id"], "status": current.value}, {"$set": update})
    if res.matched_count == 0:
        raise ConflictError("Order was updated concurrently")
    logger.info("Order %s moved %s -> %s", order["_id"], current.value, target.value)
    return db["order"].find_one({"_id": order["_id"]})


def set_status(db: Database, raw_order_id: str, target: OrderStatus) -> dict:
    order = find_order(db, OrderRef.parse(raw_order_id))
    return transition(db, order, target)


def list_orders(db: Database, limit: int = 50) -> List[dict]:
    return get_documents(db, "order", limit=limit, sort=[("created_at", -1)])
