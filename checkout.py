"""Checkout: order creation, cash on delivery and online payment.

The cart is only cleared after the order has been confirmed; a failed or
abandoned online payment leaves it intact for a retry.
"""
import logging
import time
from typing import Optional

from pymongo.database import Database

import cart
import orders
from config import settings
from database import create_document
from errors import AmountMismatchError, BusinessRuleError, EmptyCartError, PaymentVerificationError
from gateway import RazorpayGateway
from schemas import CreateOrderBody, Order, OrderItem, OrderStatus, PaymentMethod, VerifyPaymentBody
from users import resolve_shipping_address

logger = logging.getLogger(__name__)


def _live_cart(db: Database, user: dict) -> dict:
    summary = cart.read_cart(db, user["_id"])
    if not summary["items"]:
        raise EmptyCartError()
    return summary


def _check_amount(provided: float, calculated: float):
    if abs(provided - calculated) > settings.amount_tolerance:
        logger.warning("Total amount mismatch: provided %s, calculated %s", provided, calculated)
        raise AmountMismatchError(provided, calculated)


def create_order(db: Database, user: dict, body: CreateOrderBody) -> dict:
    """Persist a Pending order snapshot of the user's current cart."""
    summary = _live_cart(db, user)
    _check_amount(body.total, summary["total"])

    order = Order(
        user_id=user["_id"],
        legacy_order_id=orders.new_legacy_order_id(),
        items=[
            OrderItem(
                product_id=line["product"]["_id"],
                name=line["product"].get("name", "Product"),
                price=float(line["product"].get("price", 0)),
                quantity=line["quantity"],
            )
            for line in summary["items"]
        ],
        subtotal_amount=summary["subtotal"],
        delivery_fee=summary["delivery"],
        total_amount=summary["total"],
        currency=settings.currency,
        payment_method=orders.normalize_payment_method(body.payment_method),
        shipping_address=resolve_shipping_address(user, body.address_id),
    )
    order_id = create_document(db, "order", order)
    logger.info("Created order %s for user %s, total %s", order_id, user["_id"], summary["total"])
    return db["order"].find_one({"_id": order_id})


def confirm_cash_on_delivery(db: Database, user: dict, raw_order_id: str) -> dict:
    order = orders.find_order(db, orders.OrderRef.parse(raw_order_id), user["_id"])
    if order["status"] == OrderStatus.CONFIRMED.value and order.get("payment_method") == PaymentMethod.COD.value:
        logger.info("Order %s already confirmed with COD", order["_id"])
        return order

    _live_cart(db, user)
    order = orders.transition(db, order, OrderStatus.CONFIRMED, payment_method=PaymentMethod.COD.value)
    cart.clear(db, user["_id"])
    logger.info("COD order %s confirmed and cart cleared", order["_id"])
    return order


def start_online_payment(db: Database, user: dict, raw_order_id: str, gateway: RazorpayGateway, method: Optional[str] = None) -> dict:
    """Create the gateway order for a Pending order. The cart is left untouched."""
    order = orders.find_order(db, orders.OrderRef.parse(raw_order_id), user["_id"])
    if order["status"] != OrderStatus.PENDING.value:
        raise BusinessRuleError(f"Order is already {order['status']}")

    summary = _live_cart(db, user)
    total = summary["total"]
    _check_amount(order["total_amount"], total)

    gateway_order = gateway.create_order(
        amount=int(round(total * 100)),
        currency=settings.currency,
        receipt=f"ord_{int(time.time() * 1000)}",
        notes={
            "order_id": str(order["_id"]),
            "user_id": str(user["_id"]),
            "payment_method": method or PaymentMethod.ONLINE.value,
        },
    )
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"gateway_order_id": gateway_order["id"], "payment_method": PaymentMethod.ONLINE.value}},
    )
    logger.info("Gateway order %s created for order %s", gateway_order["id"], order["_id"])
    return {
        "order_id": str(order["_id"]),
        "razorpay_order": gateway_order,
        "key": gateway.key_id,
        "amount": total,
    }


def verify_online_payment(db: Database, user: dict, body: VerifyPaymentBody, gateway: RazorpayGateway) -> dict:
    """Check the gateway signature and confirm the order.

    A rejected signature changes nothing. Replaying an accepted verification
    returns the confirmed order without touching the cart again.
    """
    if not gateway.verify(body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature):
        logger.warning("Rejected payment signature for gateway order %s", body.razorpay_order_id)
        raise PaymentVerificationError()

    if body.order_id:
        order = orders.find_order(db, orders.OrderRef.parse(body.order_id), user["_id"])
    else:
        order = orders.find_by_gateway_order(db, body.razorpay_order_id, user["_id"])
    if order.get("gateway_order_id") != body.razorpay_order_id:
        logger.warning("Gateway order %s does not match order %s", body.razorpay_order_id, order["_id"])
        raise PaymentVerificationError("Gateway order does not belong to this order")
    reused = db["order"].find_one(
        {"gateway_payment_id": body.razorpay_payment_id, "_id": {"$ne": order["_id"]}}, {"_id": 1}
    )
    if reused:
        raise PaymentVerificationError("Payment is already recorded on another order")

    if order["status"] == OrderStatus.CONFIRMED.value:
        if order.get("gateway_payment_id") == body.razorpay_payment_id:
            return order
        raise BusinessRuleError("Order is already confirmed")

    order = orders.transition(
        db,
        order,
        OrderStatus.CONFIRMED,
        payment_method=PaymentMethod.ONLINE.value,
        gateway_order_id=body.razorpay_order_id,
        gateway_payment_id=body.razorpay_payment_id,
    )
    cart.clear(db, user["_id"])
    logger.info("Payment %s verified for order %s", body.razorpay_payment_id, order["_id"])
    return order
