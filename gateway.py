"""Razorpay payment gateway client."""
import hashlib
import hmac
import logging
from typing import Optional

import requests

from config import settings
from errors import GatewayError

logger = logging.getLogger(__name__)


def compute_signature(secret: str, gateway_order_id: str, payment_id: str) -> str:
    body = f"{gateway_order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(secret: str, gateway_order_id: str, payment_id: str, signature: str) -> bool:
    if not secret:
        logger.error("Refusing to verify a payment signature without a gateway secret")
        raise GatewayError("Payment gateway is not configured")
    expected = compute_signature(secret, gateway_order_id, payment_id)
    return hmac.compare_digest(expected, signature or "")


class RazorpayGateway:
    """Creates gateway orders through the Razorpay REST API."""

    def __init__(self, key_id: str, key_secret: str, api_url: str, timeout: Optional[float] = None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def create_order(self, amount: int, currency: str, receipt: str, notes: dict) -> dict:
        """Create a remote order for ``amount`` in the currency's minor unit."""
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        try:
            response = requests.post(
                f"{self.api_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            logger.error("Razorpay order creation failed: %s", exc)
            raise GatewayError("Failed to create payment order", errors=[str(exc)]) from exc
        except ValueError as exc:
            raise GatewayError("Payment gateway returned an invalid response") from exc

        if not data.get("id"):
            raise GatewayError("Payment gateway returned no order id")
        return data

    def verify(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        return verify_signature(self.key_secret, gateway_order_id, payment_id, signature)


def get_gateway() -> RazorpayGateway:
    return RazorpayGateway(
        settings.razorpay_key_id,
        settings.razorpay_key_secret,
        settings.razorpay_api_url,
        timeout=settings.gateway_timeout,
    )
