"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A new order was written, with stock already withdrawn for every line.

    ``lines`` is a JSON list of line snapshots (product, seller, quantity,
    unit price, line total).
    """

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    status = String(required=True)
    payment_method = String(required=True)
    payment_id = Identifier()
    total_amount = Float(required=True)
    lines = Text(required=True)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    note = String(max_length=500)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    """An order was cancelled and its stock handed back.

    ``restocked`` is a JSON object of product id to quantity returned.
    """

    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(max_length=500)
    restocked = Text(required=True)
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaymentLinked:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
