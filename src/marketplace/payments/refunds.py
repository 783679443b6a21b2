"""Gateway refunds, run after the cancellation that asked for them.

Cancelling a paid order commits the order, the restored stock and a
``refund_pending`` payment in one unit of work. Only once that has been
committed does this handler ask the gateway for the money back, so a
cancellation that loses a concurrency race never reaches the gateway.

The outcome lands on the payment as ``refunded`` (with the gateway refund id)
or ``refund_failed``. A failed refund can be retried with ``RetryRefund``.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import GatewayError
from marketplace.payments.events import PaymentRefundRequested
from marketplace.payments.gateway import get_gateway
from marketplace.payments.payment import Payment, PaymentStatus, load_payment

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class RetryRefund:
    payment_id = Identifier(required=True)


@marketplace.command_handler(part_of=Payment)
class RetryRefundHandler:
    @handle(RetryRefund)
    def retry_refund(self, command):
        payment = load_payment(command.payment_id)
        payment.retry_refund()
        current_domain.repository_for(Payment).add(payment)

        logger.info("Refund retry requested", payment_id=str(payment.id))
        return payment.status


@marketplace.event_handler(part_of=Payment)
class GatewayRefundHandler:
    """Sends committed refund requests to the gateway and records the answer."""

    @handle(PaymentRefundRequested)
    def send_refund(self, event: PaymentRefundRequested) -> None:
        repo = current_domain.repository_for(Payment)
        payment = repo.get(str(event.payment_id))
        if payment.current_status != PaymentStatus.REFUND_PENDING:
            logger.info("Refund already settled", payment_id=str(payment.id), status=payment.status)
            return

        # Cash is handed back outside the gateway
        if not payment.gateway_payment_id:
            payment.complete_refund()
            repo.add(payment)
            logger.info("Refund recorded without gateway", payment_id=str(payment.id))
            return

        try:
            result = get_gateway().create_refund(payment.gateway_payment_id, payment.amount)
        except GatewayError as exc:
            payment.fail_refund(exc.reason)
        else:
            if result.success:
                payment.complete_refund(result.gateway_refund_id)
            else:
                payment.fail_refund(result.failure_reason or "Refund was declined")
        repo.add(payment)

        if payment.current_status == PaymentStatus.REFUNDED:
            logger.info("Refund completed", payment_id=str(payment.id), gateway_refund_id=payment.gateway_refund_id)
        else:
            logger.warning("Refund declined by gateway", payment_id=str(payment.id), reason=payment.failure_reason)
