from __future__ import annotations

import logging
import uuid
from typing import Optional, Protocol

from assignx.core.config import get_settings
from assignx.core.hashing import constant_time_equals, hmac_sha256_hex

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_order(self, amount: int, *, receipt: str) -> str:
        ...

    def verify_payment(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        ...


class HmacPaymentGateway:
    """
    Checkout-style gateway contract: the client pays against an order id and
    returns (order id, payment id, signature); the signature is
    HMAC-SHA256("{order_ref}|{payment_ref}") keyed with the merchant secret.
    """

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None):
        settings = get_settings()
        self.key_id = key_id or settings.payment_gateway_key_id
        self.key_secret = key_secret or settings.payment_gateway_key_secret

    def create_order(self, amount: int, *, receipt: str) -> str:
        order_ref = f"order_{uuid.uuid4().hex[:14]}"
        logger.info("payment order created", extra={"order_ref": order_ref, "amount": amount, "receipt": receipt})
        return order_ref

    def sign(self, order_ref: str, payment_ref: str) -> str:
        return hmac_sha256_hex(self.key_secret, f"{order_ref}|{payment_ref}")

    def verify_payment(self, order_ref: str, payment_ref: str, signature: str) -> bool:
        if not order_ref or not payment_ref or not signature:
            return False
        return constant_time_equals(self.sign(order_ref, payment_ref), signature)


def get_payment_gateway() -> PaymentGateway:
    return HmacPaymentGateway()
