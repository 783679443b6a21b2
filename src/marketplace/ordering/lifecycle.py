"""Order lifecycle after placement: cancellation, refund and seller progression."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.catalogue.ledger import StockLedger
from marketplace.domain import marketplace
from marketplace.errors import OrderNotFound, PaymentNotFound, TransactionAborted
from marketplace.ordering.order import Order
from marketplace.payments.payment import Payment

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command(part_of="Order")
class StartProcessing:
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)


@marketplace.command(part_of="Order")
class CompleteOrder:
    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)


def load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError:
        raise OrderNotFound(order_id) from None


def _restore_stock(order: Order) -> None:
    """Hand every line's quantity back; all or nothing."""
    ledger = StockLedger()
    for product_id, quantity in order.quantities_by_product().items():
        if not ledger.increment(product_id, quantity):
            raise TransactionAborted(f"Failed to restore product stock: product {product_id} no longer exists")
    ledger.flush()


def _request_refund(order: Order, reason) -> None:
    """Mark the linked payment for refund; the gateway is asked after commit."""
    if not order.payment_id:
        return
    repo = current_domain.repository_for(Payment)
    try:
        payment = repo.get(str(order.payment_id))
    except ObjectNotFoundError:
        raise PaymentNotFound(order.payment_id) from None
    if not payment.is_paid:
        return

    payment.request_refund(reason)
    repo.add(payment)


def _load_for_seller(order_id, seller_id) -> Order:
    order = load_order(order_id)
    if not order.lines_for_seller(seller_id):
        raise OrderNotFound(order_id)
    return order


@marketplace.command_handler(part_of=Order)
class OrderLifecycleHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = load_order(command.order_id)
        order.cancel(buyer_id=command.buyer_id, note=command.reason or "Cancelled by user")
        _restore_stock(order)
        _request_refund(order, command.reason or "Order cancelled")
        current_domain.repository_for(Order).add(order)

        logger.info("Order cancelled", order_id=str(order.id), buyer_id=str(command.buyer_id))
        return str(order.id)

    @handle(RefundOrder)
    def refund_order(self, command):
        order = load_order(command.order_id)
        order.cancel_for_refund(note=command.reason or "Cancelled with refund")
        _restore_stock(order)
        _request_refund(order, command.reason or "Order refunded")
        current_domain.repository_for(Order).add(order)

        logger.info("Paid order refunded", order_id=str(order.id))
        return str(order.id)

    @handle(StartProcessing)
    def start_processing(self, command):
        order = _load_for_seller(command.order_id, command.seller_id)
        order.start_processing()
        current_domain.repository_for(Order).add(order)
        return str(order.id)

    @handle(CompleteOrder)
    def complete_order(self, command):
        order = _load_for_seller(command.order_id, command.seller_id)
        order.complete()
        current_domain.repository_for(Order).add(order)
        return str(order.id)
