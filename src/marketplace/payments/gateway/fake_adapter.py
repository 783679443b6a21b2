"""In-process gateway for development and tests.

Signatures are HMAC-SHA256 over ``"<gateway_order_id>|<gateway_payment_id>"``
with a shared secret, hex encoded, which is how hosted checkout gateways
commonly sign their callbacks. ``sign`` produces what a real gateway would
hand the buyer's browser.
"""

import hashlib
import hmac
import os
from uuid import uuid4

from marketplace.errors import GatewayError
from marketplace.payments.gateway.port import GatewayOrder, PaymentGateway, RefundResult

DEFAULT_SECRET = "marketplace-test-secret"


class FakeGateway(PaymentGateway):
    def __init__(self, secret: str | None = None) -> None:
        self.secret = secret or os.getenv("GATEWAY_KEY_SECRET", DEFAULT_SECRET)
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def sign(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        message = f"{gateway_order_id}|{gateway_payment_id}".encode()
        return hmac.new(self.secret.encode(), message, hashlib.sha256).hexdigest()

    def create_order(self, amount: float, currency: str, receipt: str) -> GatewayOrder:
        self.calls.append({"method": "create_order", "amount": amount, "currency": currency, "receipt": receipt})

        if not self.should_succeed:
            raise GatewayError(self.failure_reason)
        return GatewayOrder(
            gateway_order_id=f"order_{uuid4().hex[:14]}",
            amount_minor=int(round(amount * 100)),
            currency=currency,
            receipt=receipt,
        )

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        self.calls.append(
            {"method": "verify_signature", "gateway_order_id": gateway_order_id, "gateway_payment_id": gateway_payment_id}
        )
        if not (gateway_order_id and gateway_payment_id and signature):
            return False
        return hmac.compare_digest(self.sign(gateway_order_id, gateway_payment_id), signature)

    def create_refund(self, gateway_payment_id: str, amount: float) -> RefundResult:
        self.calls.append({"method": "create_refund", "gateway_payment_id": gateway_payment_id, "amount": amount})

        if self.should_succeed:
            return RefundResult(success=True, gateway_refund_id=f"rfnd_{uuid4().hex[:14]}")
        return RefundResult(success=False, failure_reason=self.failure_reason)
