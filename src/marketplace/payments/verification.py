"""Payment verification against the gateway signature.

Verification and reconciliation are two commands, so two units of work. A
verified payment is committed before any order is attempted; if the order
cannot be written (stock ran out meanwhile, a store conflict), the payment
stays ``success`` and reconciliation can be retried on its own. A rejected
signature is committed as ``failed``.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.ordering.order import PaymentMethod
from marketplace.payments.gateway import get_gateway
from marketplace.payments.payment import Payment, load_payment
from marketplace.payments.reconciliation import ReconcilePayment
from marketplace.transactions import execute

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class VerifyPayment:
    payment_id = Identifier(required=True)
    gateway_order_id = String(required=True, max_length=255)
    gateway_payment_id = String(required=True, max_length=255)
    signature = String(required=True, max_length=255)


@marketplace.command_handler(part_of=Payment)
class VerifyPaymentHandler:
    @handle(VerifyPayment)
    def verify_payment(self, command):
        payment = load_payment(command.payment_id)
        if PaymentMethod(payment.payment_method) == PaymentMethod.CASH:
            raise ValidationError({"payment_method": ["Cash payments are collected on delivery, not verified"]})

        valid = str(command.gateway_order_id) == str(payment.gateway_order_id) and get_gateway().verify_signature(
            payment.gateway_order_id, command.gateway_payment_id, command.signature
        )
        payment.record_verification(command.gateway_payment_id, command.signature, valid)
        current_domain.repository_for(Payment).add(payment)

        if not valid:
            logger.warning("Payment signature rejected", payment_id=str(payment.id))
        else:
            logger.info("Payment verified", payment_id=str(payment.id))
        return payment.status


@dataclass(frozen=True)
class VerificationOutcome:
    payment_id: str
    verified: bool
    status: str
    order_id: str | None = None


def verify_and_reconcile(payment_id, gateway_order_id, gateway_payment_id, signature) -> VerificationOutcome:
    """Verify the signature, then turn the payment into its order.

    Errors from reconciliation propagate after the verified payment has
    already been committed.
    """
    status = execute(
        VerifyPayment(
            payment_id=payment_id,
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
            signature=signature,
        )
    )
    payment = load_payment(payment_id)
    if not payment.is_paid:
        return VerificationOutcome(payment_id=str(payment_id), verified=False, status=status)

    order_id = execute(ReconcilePayment(payment_id=payment_id))
    return VerificationOutcome(payment_id=str(payment_id), verified=True, status=payment.status, order_id=order_id)
