import json
from datetime import UTC, datetime

import pytest
from protean import current_domain

from marketplace.catalogue.product import Product
from marketplace.errors import (
    InvalidTransition,
    OrderNotCancellable,
    OrderNotFound,
    PaymentNotFound,
    TransactionAborted,
)
from marketplace.ordering.lifecycle import CancelOrder, CompleteOrder, RefundOrder, StartProcessing
from marketplace.ordering.order import Order, OrderStatus
from marketplace.ordering.placement import PlaceOrder
from marketplace.payments.gateway import get_gateway
from marketplace.payments.initiation import InitiatePayment
from marketplace.payments.payment import Payment, PaymentStatus
from marketplace.payments.refunds import RetryRefund
from marketplace.payments.verification import verify_and_reconcile
from marketplace.transactions import execute


def _place(buyer_id, address, items, method="Cash"):
    order_id = current_domain.process(
        PlaceOrder(
            buyer_id=buyer_id,
            items=json.dumps(items),
            shipping_address=json.dumps(address),
            payment_method=method,
        ),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get(order_id)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _paid_through_gateway(buyer_id, address, items):
    """Run a UPI payment through initiation, verification and reconciliation."""
    payment_id = current_domain.process(
        InitiatePayment(
            buyer_id=buyer_id,
            items=json.dumps(items),
            shipping_address=json.dumps(address),
            payment_method="UPI",
        ),
        asynchronous=False,
    )
    payment = current_domain.repository_for(Payment).get(payment_id)
    signature = get_gateway().sign(payment.gateway_order_id, "pay_001")
    outcome = verify_and_reconcile(payment_id, payment.gateway_order_id, "pay_001", signature)
    return payment_id, _order(outcome.order_id)


class TestCancelOrder:
    def test_cancel_pending_order_restores_stock(self, buyer_id, address, make_product, stock_of):
        make_product(quantity=5)
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 3}])
        assert stock_of("prod-001") == 2

        current_domain.process(CancelOrder(order_id=order.id, buyer_id=buyer_id), asynchronous=False)

        cancelled = _order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.sorted_timeline()[-1].note == "Cancelled by user"
        assert stock_of("prod-001") == 5

    def test_cancel_restores_every_line(self, buyer_id, address, make_product, stock_of):
        make_product("prod-001", quantity=5)
        make_product("prod-002", quantity=4, seller="seller-002")
        order = _place(
            buyer_id,
            address,
            [{"product_id": "prod-001", "quantity": 2}, {"product_id": "prod-002", "quantity": 4}],
        )

        current_domain.process(
            CancelOrder(order_id=order.id, buyer_id=buyer_id, reason="Changed my mind"), asynchronous=False
        )

        assert stock_of("prod-001") == 5
        assert stock_of("prod-002") == 4
        assert _order(order.id).sorted_timeline()[-1].note == "Changed my mind"

    def test_paid_order_is_not_cancellable_by_buyer(self, buyer_id, address, make_product, stock_of):
        make_product(quantity=5)
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}], method="Card")

        with pytest.raises(OrderNotCancellable):
            current_domain.process(CancelOrder(order_id=order.id, buyer_id=buyer_id), asynchronous=False)
        assert stock_of("prod-001") == 4
        assert _order(order.id).status == OrderStatus.PAID.value

    def test_other_buyer_cannot_cancel(self, buyer_id, address, make_product):
        make_product()
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}])

        with pytest.raises(OrderNotCancellable):
            current_domain.process(CancelOrder(order_id=order.id, buyer_id="buyer-999"), asynchronous=False)
        assert _order(order.id).status == OrderStatus.PENDING.value

    def test_unknown_order(self, buyer_id):
        with pytest.raises(OrderNotFound):
            current_domain.process(CancelOrder(order_id="missing", buyer_id=buyer_id), asynchronous=False)

    def test_missing_product_aborts_cancellation(self, buyer_id, address, make_product):
        product = make_product()
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}])
        current_domain.repository_for(Product)._dao.delete(product)

        with pytest.raises(TransactionAborted) as exc_info:
            current_domain.process(CancelOrder(order_id=order.id, buyer_id=buyer_id), asynchronous=False)

        assert "Failed to restore product stock" in exc_info.value.reason
        assert _order(order.id).status == OrderStatus.PENDING.value

    def test_cancel_processing_order_refunds_paid_payment(self, buyer_id, seller_id, address, make_product, stock_of):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])
        current_domain.process(StartProcessing(order_id=order.id, seller_id=seller_id), asynchronous=False)

        current_domain.process(CancelOrder(order_id=order.id, buyer_id=buyer_id), asynchronous=False)

        assert _order(order.id).status == OrderStatus.CANCELLED.value
        assert current_domain.repository_for(Payment).get(payment_id).status == PaymentStatus.REFUNDED.value
        assert stock_of("prod-001") == 5
        assert any(call["method"] == "create_refund" for call in get_gateway().calls)


class TestRefundOrder:
    def test_refund_cancels_and_refunds(self, buyer_id, address, make_product, stock_of):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])
        assert stock_of("prod-001") == 3

        current_domain.process(RefundOrder(order_id=order.id), asynchronous=False)

        refunded = _order(order.id)
        assert refunded.status == OrderStatus.CANCELLED.value
        assert refunded.sorted_timeline()[-1].note == "Cancelled with refund"
        assert current_domain.repository_for(Payment).get(payment_id).status == PaymentStatus.REFUNDED.value
        assert stock_of("prod-001") == 5

    def test_refund_records_gateway_refund_id(self, buyer_id, address, make_product):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])

        current_domain.process(RefundOrder(order_id=order.id, reason="Damaged"), asynchronous=False)

        payment = current_domain.repository_for(Payment).get(payment_id)
        assert payment.gateway_refund_id.startswith("rfnd_")
        refunds = [call for call in get_gateway().calls if call["method"] == "create_refund"]
        assert refunds == [{"method": "create_refund", "gateway_payment_id": "pay_001", "amount": 200.0}]

    def test_declined_refund_is_recorded_on_payment(self, buyer_id, address, make_product, stock_of):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])
        get_gateway().configure(should_succeed=False, failure_reason="Refund window closed")

        current_domain.process(RefundOrder(order_id=order.id), asynchronous=False)

        payment = current_domain.repository_for(Payment).get(payment_id)
        assert _order(order.id).status == OrderStatus.CANCELLED.value
        assert payment.status == PaymentStatus.REFUND_FAILED.value
        assert payment.failure_reason == "Refund window closed"
        assert stock_of("prod-001") == 5

    def test_failed_refund_can_be_retried(self, buyer_id, address, make_product):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])
        get_gateway().configure(should_succeed=False, failure_reason="Refund window closed")
        current_domain.process(RefundOrder(order_id=order.id), asynchronous=False)

        get_gateway().configure(should_succeed=True)
        current_domain.process(RetryRefund(payment_id=payment_id), asynchronous=False)

        payment = current_domain.repository_for(Payment).get(payment_id)
        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.failure_reason is None
        assert len([call for call in get_gateway().calls if call["method"] == "create_refund"]) == 2

    def test_stale_order_aborts_before_gateway_refund(self, buyer_id, address, make_product, stock_of, monkeypatch):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])
        stale = _order(order.id)

        # Another writer saves the order after the stale copy was read
        fresh = _order(order.id)
        fresh.updated_at = datetime.now(UTC)
        current_domain.repository_for(Order).add(fresh)

        monkeypatch.setattr("marketplace.ordering.lifecycle.load_order", lambda order_id: stale)

        with pytest.raises(TransactionAborted):
            execute(RefundOrder(order_id=order.id))

        assert not any(call["method"] == "create_refund" for call in get_gateway().calls)
        assert _order(order.id).status == OrderStatus.PAID.value
        assert current_domain.repository_for(Payment).get(payment_id).status == PaymentStatus.SUCCESS.value
        assert stock_of("prod-001") == 3

    def test_missing_linked_payment_aborts_refund(self, buyer_id, address, make_product, stock_of):
        make_product(quantity=5)
        payment_id, order = _paid_through_gateway(buyer_id, address, [{"product_id": "prod-001", "quantity": 2}])
        repo = current_domain.repository_for(Payment)
        repo._dao.delete(repo.get(payment_id))

        with pytest.raises(PaymentNotFound):
            current_domain.process(RefundOrder(order_id=order.id), asynchronous=False)

        assert _order(order.id).status == OrderStatus.PAID.value
        assert stock_of("prod-001") == 3

    def test_pending_order_cannot_be_refunded(self, buyer_id, address, make_product):
        make_product()
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}])

        with pytest.raises(OrderNotCancellable):
            current_domain.process(RefundOrder(order_id=order.id), asynchronous=False)


class TestSellerProgression:
    def test_seller_moves_order_to_completion(self, buyer_id, seller_id, address, make_product):
        make_product()
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}])

        current_domain.process(StartProcessing(order_id=order.id, seller_id=seller_id), asynchronous=False)
        assert _order(order.id).status == OrderStatus.PROCESSING.value

        current_domain.process(CompleteOrder(order_id=order.id, seller_id=seller_id), asynchronous=False)
        completed = _order(order.id)
        assert completed.status == OrderStatus.COMPLETED.value
        assert [entry.status for entry in completed.sorted_timeline()] == ["pending", "processing", "completed"]

    def test_completed_order_cannot_move(self, buyer_id, seller_id, address, make_product):
        make_product()
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}], method="Card")
        current_domain.process(CompleteOrder(order_id=order.id, seller_id=seller_id), asynchronous=False)

        with pytest.raises(InvalidTransition):
            current_domain.process(StartProcessing(order_id=order.id, seller_id=seller_id), asynchronous=False)

    def test_unrelated_seller_sees_not_found(self, buyer_id, address, make_product):
        make_product()
        order = _place(buyer_id, address, [{"product_id": "prod-001", "quantity": 1}])

        with pytest.raises(OrderNotFound):
            current_domain.process(StartProcessing(order_id=order.id, seller_id="seller-999"), asynchronous=False)
