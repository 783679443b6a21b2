"""Payment-to-order reconciliation.

Turns a settled payment into exactly one order. The payment id is the
idempotency key: when an order already references the payment, that order is
returned before any stock is looked at. Otherwise the payment's own line
snapshot is re-checked against current stock, keeping the prices the buyer
paid, and written as a ``paid`` order. The payment is pointed at that order
in the same unit of work.
"""

import math

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import PaymentAmountMismatch, PaymentNotVerified
from marketplace.ordering.builder import build_from_snapshot
from marketplace.ordering.order import Order, PaymentMethod, ShippingAddress
from marketplace.ordering.writer import write_order
from marketplace.payments.payment import Payment, load_payment

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class ReconcilePayment:
    payment_id = Identifier(required=True)


def order_for_payment(payment: Payment) -> Order | None:
    """The order already produced from ``payment``, looked up by both links."""
    repo = current_domain.repository_for(Order)
    if payment.order_id:
        try:
            return repo.get(str(payment.order_id))
        except ObjectNotFoundError:
            logger.warning("Payment links a missing order", payment_id=str(payment.id), order_id=str(payment.order_id))
    return repo.for_payment(payment.id)


@marketplace.command_handler(part_of=Payment)
class ReconcilePaymentHandler:
    @handle(ReconcilePayment)
    def reconcile(self, command):
        payment = load_payment(command.payment_id)

        existing = order_for_payment(payment)
        if existing is not None:
            if not payment.order_id:
                payment.link_order(existing.id)
                current_domain.repository_for(Payment).add(payment)
            logger.info("Payment already reconciled", payment_id=str(payment.id), order_id=str(existing.id))
            return str(existing.id)

        if not payment.is_paid:
            raise PaymentNotVerified(payment.id, payment.status)

        priced = build_from_snapshot(payment.item_snapshot())
        if not math.isclose(priced.total, payment.amount, abs_tol=0.005):
            raise PaymentAmountMismatch(payment.id, payment.amount, priced.total)

        order = write_order(
            priced,
            buyer_id=payment.buyer_id,
            shipping_address=ShippingAddress.from_payload(payment.address_snapshot()),
            payment_method=PaymentMethod(payment.payment_method),
            order_number=payment.order_number,
            gateway_order_id=payment.gateway_order_id,
            payment_id=str(payment.id),
            upi_id=payment.upi_id,
            bank_code=payment.bank_code,
            note="Created after payment verification",
        )

        payment.link_order(order.id)
        current_domain.repository_for(Payment).add(payment)

        logger.info("Payment reconciled", payment_id=str(payment.id), order_id=str(order.id))
        return str(order.id)
