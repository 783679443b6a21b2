"""Error taxonomy for the marketplace.

Lookups fail with ``ObjectNotFoundError`` subclasses and rule violations with
``ValidationError`` subclasses, so callers that only know Protean's base
classes still handle them. Every error carries a ``{field: [message]}`` dict.
"""

from protean.exceptions import ObjectNotFoundError, ProteanException, ValidationError


class ProductNotFound(ObjectNotFoundError):
    def __init__(self, product_id):
        self.product_id = str(product_id)
        super().__init__({"product_id": [f"Product {product_id} not found"]})


class OrderNotFound(ObjectNotFoundError):
    def __init__(self, order_id):
        self.order_id = str(order_id)
        super().__init__({"order_id": [f"Order {order_id} not found"]})


class PaymentNotFound(ObjectNotFoundError):
    def __init__(self, payment_id):
        self.payment_id = str(payment_id)
        super().__init__({"payment_id": [f"Payment {payment_id} not found"]})


class CartNotFound(ObjectNotFoundError):
    def __init__(self, buyer_id):
        self.buyer_id = str(buyer_id)
        super().__init__({"cart": [f"No cart found for buyer {buyer_id}"]})


class InvalidInput(ValidationError):
    """Malformed request: bad quantity, empty item list, incomplete address."""


class InsufficientStock(ValidationError):
    def __init__(self, product_id, product_name, available, requested):
        self.product_id = str(product_id)
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            {
                "quantity": [
                    f"Insufficient stock for {product_name}: {available} available, {requested} requested"
                ]
            }
        )


class PaymentNotVerified(ValidationError):
    def __init__(self, payment_id, status):
        self.payment_id = str(payment_id)
        self.status = status
        super().__init__({"payment": [f"Payment {payment_id} is not verified (status: {status})"]})


class OrderNotCancellable(ValidationError):
    def __init__(self, order_id, status, reason=None):
        self.order_id = str(order_id)
        self.status = status
        message = reason or f"Order cannot be cancelled in {status} status"
        super().__init__({"status": [message]})


class InvalidTransition(ValidationError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__({"status": [f"Cannot transition from {current} to {target}"]})


class PaymentAmountMismatch(ValidationError):
    def __init__(self, payment_id, paid, ordered):
        self.payment_id = str(payment_id)
        self.paid = paid
        self.ordered = ordered
        super().__init__({"amount": [f"Payment {payment_id} collected {paid} but its items total {ordered}"]})


class TransactionAborted(ProteanException):
    """The unit of work could not commit; nothing it staged was persisted."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__({"transaction": [reason]})


class GatewayError(ProteanException):
    def __init__(self, reason):
        self.reason = reason
        super().__init__({"gateway": [reason]})


def first_message(exc) -> str:
    """Flatten the first message out of a Protean error payload."""
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        for value in messages.values():
            if isinstance(value, (list, tuple)) and value:
                return str(value[0])
            if value:
                return str(value)
    return str(messages or exc)
