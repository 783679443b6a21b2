"""Domain events for the Payment aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentInitiated:
    __version__ = 1

    payment_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    order_number = String(required=True)
    payment_method = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    status = String(required=True)
    gateway_order_id = String()


@marketplace.event(part_of="Payment")
class PaymentVerified:
    """The gateway signature checked out; money is in."""

    __version__ = 1

    payment_id = Identifier(required=True)
    gateway_order_id = String(required=True)
    gateway_payment_id = String(required=True)
    verified_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentLinked:
    """The payment now points at the order created from it."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)


@marketplace.event(part_of="Payment")
class PaymentRefundRequested:
    """A refund was committed on our side and still has to reach the gateway."""

    __version__ = 1

    payment_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String()
    requested_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id = Identifier(required=True)
    amount = Float(required=True)
    gateway_refund_id = String()
    refunded_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentRefundFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)
