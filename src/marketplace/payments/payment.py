"""Payment aggregate: the durable record of one attempt to collect money.

For gateway methods the payment exists before any order does. It carries the
priced line snapshot and the shipping address, and that snapshot (never the
buyer's live cart) is what the reconciler turns into an order once the
gateway confirms. For Cash the payment and its order are written together.

Status flow:
    pending   (Cash, collected on delivery)
    confirmed (gateway order opened, waiting on the buyer)
        -> success (signature verified) | failed (signature rejected)
    success/paid/captured -> refund_pending
        -> refunded (gateway accepted) | refund_failed (gateway declined)
    refund_failed -> refund_pending (retry)

A refund is committed as ``refund_pending`` together with the order it
belongs to; the gateway is only asked after that commit.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import PaymentNotFound
from marketplace.ordering.order import PaymentMethod
from marketplace.payments.events import (
    PaymentFailed,
    PaymentInitiated,
    PaymentLinked,
    PaymentRefunded,
    PaymentRefundFailed,
    PaymentRefundRequested,
    PaymentVerified,
)


class PaymentStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SUCCESS = "success"
    PAID = "paid"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


# Gateways report a settled payment under any of these
PAID_STATUSES = {PaymentStatus.SUCCESS, PaymentStatus.PAID, PaymentStatus.CAPTURED}

_VERIFIABLE_STATUSES = {PaymentStatus.PENDING, PaymentStatus.CONFIRMED}


@marketplace.aggregate
class Payment:
    buyer_id = Identifier(required=True)
    order_number = String(required=True, max_length=100)
    payment_method = String(required=True, choices=PaymentMethod)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    gateway_order_id = String(max_length=255)
    gateway_payment_id = String(max_length=255)
    gateway_signature = String(max_length=255)
    gateway_refund_id = String(max_length=255)
    upi_id = String(max_length=100)
    bank_code = String(max_length=50)
    items = Text(required=True)  # JSON list of priced line snapshots
    shipping_address = Text(required=True)  # JSON object
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    order_id = Identifier()
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def initiate(
        cls,
        buyer_id,
        priced,
        shipping_address,
        payment_method,
        order_number,
        currency="INR",
        gateway_order_id=None,
        upi_id=None,
        bank_code=None,
    ):
        """Record a payment attempt for ``priced``; the amount is its total."""
        status = PaymentStatus.PENDING if payment_method == PaymentMethod.CASH else PaymentStatus.CONFIRMED
        now = datetime.now(UTC)
        payment = cls(
            buyer_id=buyer_id,
            order_number=order_number,
            payment_method=payment_method.value,
            amount=priced.total,
            currency=currency,
            gateway_order_id=gateway_order_id,
            upi_id=upi_id,
            bank_code=bank_code,
            items=json.dumps(priced.to_dicts()),
            shipping_address=json.dumps(shipping_address.to_dict()),
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                buyer_id=str(buyer_id),
                order_number=order_number,
                payment_method=payment_method.value,
                amount=priced.total,
                currency=currency,
                status=status.value,
                gateway_order_id=gateway_order_id,
            )
        )
        return payment

    @property
    def current_status(self) -> PaymentStatus:
        return PaymentStatus(self.status)

    @property
    def is_paid(self) -> bool:
        return self.current_status in PAID_STATUSES

    def item_snapshot(self) -> list:
        return json.loads(self.items) if self.items else []

    def address_snapshot(self) -> dict:
        return json.loads(self.shipping_address) if self.shipping_address else {}

    def record_verification(self, gateway_payment_id, signature, valid):
        """Apply the gateway's verdict on a returned signature.

        A payment that is already settled stays settled; replaying the same
        confirmation is harmless.
        """
        if self.is_paid:
            if str(self.gateway_payment_id) != str(gateway_payment_id):
                raise ValidationError({"gateway_payment_id": ["Payment was already verified with another id"]})
            return

        if self.current_status not in _VERIFIABLE_STATUSES:
            raise ValidationError({"status": [f"Payment in {self.status} status cannot be verified"]})

        now = datetime.now(UTC)
        self.gateway_payment_id = gateway_payment_id
        self.gateway_signature = signature
        self.updated_at = now

        if not valid:
            self.status = PaymentStatus.FAILED.value
            self.failure_reason = "Invalid payment signature"
            self.raise_(PaymentFailed(payment_id=str(self.id), reason=self.failure_reason, failed_at=now))
            return

        self.status = PaymentStatus.SUCCESS.value
        self.raise_(
            PaymentVerified(
                payment_id=str(self.id),
                gateway_order_id=str(self.gateway_order_id),
                gateway_payment_id=str(gateway_payment_id),
                verified_at=now,
            )
        )

    def link_order(self, order_id):
        if self.order_id and str(self.order_id) != str(order_id):
            raise ValidationError({"order_id": ["Payment is already linked to another order"]})
        if self.order_id:
            return

        self.order_id = order_id
        self.updated_at = datetime.now(UTC)
        self.raise_(PaymentLinked(payment_id=str(self.id), order_id=str(order_id)))

    def request_refund(self, reason=None):
        """Mark a settled payment for refund. The gateway is contacted later."""
        if not self.is_paid:
            raise ValidationError({"status": [f"Payment in {self.status} status cannot be refunded"]})

        now = datetime.now(UTC)
        self.status = PaymentStatus.REFUND_PENDING.value
        self.updated_at = now
        self.raise_(
            PaymentRefundRequested(
                payment_id=str(self.id),
                amount=self.amount,
                reason=reason,
                requested_at=now,
            )
        )

    def retry_refund(self):
        if self.current_status != PaymentStatus.REFUND_FAILED:
            raise ValidationError({"status": [f"Payment in {self.status} status has no failed refund to retry"]})

        self.failure_reason = None
        self.status = PaymentStatus.REFUND_PENDING.value
        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            PaymentRefundRequested(
                payment_id=str(self.id),
                amount=self.amount,
                reason="Retry",
                requested_at=now,
            )
        )

    def complete_refund(self, gateway_refund_id=None):
        if self.current_status != PaymentStatus.REFUND_PENDING:
            raise ValidationError({"status": [f"Payment in {self.status} status has no refund in progress"]})

        now = datetime.now(UTC)
        self.status = PaymentStatus.REFUNDED.value
        self.gateway_refund_id = gateway_refund_id
        self.updated_at = now
        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                amount=self.amount,
                gateway_refund_id=gateway_refund_id,
                refunded_at=now,
            )
        )

    def fail_refund(self, reason):
        if self.current_status != PaymentStatus.REFUND_PENDING:
            raise ValidationError({"status": [f"Payment in {self.status} status has no refund in progress"]})

        now = datetime.now(UTC)
        self.status = PaymentStatus.REFUND_FAILED.value
        self.failure_reason = reason
        self.updated_at = now
        self.raise_(PaymentRefundFailed(payment_id=str(self.id), reason=reason, failed_at=now))


def load_payment(payment_id) -> Payment:
    try:
        return current_domain.repository_for(Payment).get(str(payment_id))
    except ObjectNotFoundError:
        raise PaymentNotFound(payment_id) from None
