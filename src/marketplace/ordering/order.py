"""Order aggregate: the durable record of a purchase.

Lines are frozen snapshots of product name, seller and unit price taken at
placement time; later catalogue edits never reach them. The total is derived
from those lines and checked on placement.

State machine:
    pending    -> paid, processing, cancelled, failed
    processing -> completed, cancelled
    paid       -> processing, completed, cancelled (refund path)
    completed, cancelled, failed are terminal

Every status change goes through ``transition_to``, which validates against
``VALID_TRANSITIONS`` and appends a timeline entry.
"""

import json
import math
import secrets
import string
import time
from collections import defaultdict
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from marketplace.domain import marketplace
from marketplace.errors import InvalidInput, InvalidTransition, OrderNotCancellable
from marketplace.ordering.events import OrderCancelled, OrderPaymentLinked, OrderPlaced, OrderStatusChanged


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PaymentMethod(Enum):
    UPI = "UPI"
    NET_BANKING = "Net Banking"
    CASH = "Cash"
    CARD = "Card"


VALID_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PAID,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED,
    },
    OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
}

# States a buyer may cancel from; paid orders go through the refund path
BUYER_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.PROCESSING}


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current.value, target.value)


def parse_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        allowed = ", ".join(method.value for method in PaymentMethod)
        raise InvalidInput({"payment_method": [f"Payment method must be one of: {allowed}"]}) from None


def initial_status_for(payment_method: PaymentMethod) -> OrderStatus:
    """Cash on delivery waits for collection; everything else is already paid."""
    return OrderStatus.PENDING if payment_method == PaymentMethod.CASH else OrderStatus.PAID


def generate_order_number() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"ORDER_{int(time.time() * 1000)}_{suffix}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
_REQUIRED_ADDRESS_FIELDS = ("street", "city", "state", "country", "postal_code")


@marketplace.value_object(part_of="Order")
class ShippingAddress:
    """Where the order ships. Captured at checkout and never updated."""

    name = String(max_length=255)
    phone = String(max_length=30)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    country = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)

    @classmethod
    def from_payload(cls, payload):
        """Build an address from request data, insisting on all five core fields."""
        payload = payload or {}
        if not isinstance(payload, dict) or any(
            not str(payload.get(field) or "").strip() for field in _REQUIRED_ADDRESS_FIELDS
        ):
            raise InvalidInput({"shipping_address": ["Complete shipping address is required"]})

        return cls(
            name=payload.get("name"),
            phone=payload.get("phone"),
            **{field: str(payload[field]).strip() for field in _REQUIRED_ADDRESS_FIELDS},
        )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    seller_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)

    def snapshot(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "name": self.product_name,
            "seller_id": str(self.seller_id),
            "quantity": self.quantity,
            "price": self.unit_price,
            "item_total": self.line_total,
        }


@marketplace.entity(part_of="Order")
class TimelineEntry:
    sequence = Integer(required=True, min_value=0)
    status = String(required=True, max_length=20)
    note = String(max_length=500)
    at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=100)
    buyer_id = Identifier(required=True)
    gateway_order_id = String(max_length=255)
    payment_id = Identifier()
    payment_method = String(required=True, choices=PaymentMethod)
    upi_id = String(max_length=100)
    bank_code = String(max_length=50)
    lines = HasMany(OrderLine)
    total_amount = Float(required=True, min_value=0.0)
    shipping_address = ValueObject(ShippingAddress)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    timeline = HasMany(TimelineEntry)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id,
        priced,
        shipping_address,
        payment_method,
        order_number=None,
        gateway_order_id=None,
        payment_id=None,
        upi_id=None,
        bank_code=None,
        note=None,
    ):
        """Create an order from a priced snapshot.

        Status is seeded from the payment method (Cash is pending, prepaid
        methods are paid) and the timeline starts with one matching entry.

        Args:
            priced: ``PricedOrder`` from the order builder.
            shipping_address: A ``ShippingAddress``.
            payment_method: A ``PaymentMethod``.
        """
        if not priced.lines:
            raise InvalidInput({"items": ["An order needs at least one line"]})

        line_sum = round(sum(line.line_total for line in priced.lines), 2)
        if not math.isclose(line_sum, priced.total, abs_tol=0.005):
            raise ValidationError({"total_amount": [f"Total {priced.total} does not match line totals {line_sum}"]})

        status = initial_status_for(payment_method)
        if note is None:
            note = "COD order created" if status == OrderStatus.PENDING else "Prepaid order created"

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number or generate_order_number(),
            buyer_id=buyer_id,
            gateway_order_id=gateway_order_id,
            payment_id=payment_id,
            payment_method=payment_method.value,
            upi_id=upi_id,
            bank_code=bank_code,
            lines=[
                OrderLine(
                    product_id=line.product_id,
                    product_name=line.name,
                    seller_id=line.seller_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in priced.lines
            ],
            total_amount=line_sum,
            shipping_address=shipping_address,
            status=status.value,
            timeline=[TimelineEntry(sequence=0, status=status.value, note=note, at=now)],
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                buyer_id=str(buyer_id),
                status=status.value,
                payment_method=payment_method.value,
                payment_id=str(payment_id) if payment_id else None,
                total_amount=line_sum,
                lines=json.dumps([line.snapshot() for line in order.lines]),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Read helpers
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def sorted_timeline(self) -> list:
        return sorted(self.timeline, key=lambda entry: entry.sequence)

    def lines_for_seller(self, seller_id) -> list:
        return [line for line in self.lines if str(line.seller_id) == str(seller_id)]

    def quantities_by_product(self) -> dict:
        quantities = defaultdict(int)
        for line in self.lines:
            quantities[str(line.product_id)] += line.quantity
        return dict(quantities)

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def transition_to(self, target: OrderStatus, note=None):
        current = self.current_status
        check_transition(current, target)

        now = datetime.now(UTC)
        self.status = target.value
        self.add_timeline(
            TimelineEntry(
                sequence=len(self.timeline),
                status=target.value,
                note=note,
                at=now,
            )
        )
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                note=note,
                changed_at=now,
            )
        )

    def cancel(self, buyer_id, note="Cancelled by user"):
        """Buyer cancellation, allowed only while pending or processing."""
        if str(self.buyer_id) != str(buyer_id):
            raise OrderNotCancellable(self.id, self.status, reason="Order does not belong to this buyer")
        if self.current_status not in BUYER_CANCELLABLE_STATES:
            raise OrderNotCancellable(self.id, self.status)

        self._cancel(note)

    def cancel_for_refund(self, note="Cancelled with refund"):
        """Cancel a paid order; its payment is marked for refund in the same unit of work."""
        if self.current_status != OrderStatus.PAID:
            raise OrderNotCancellable(self.id, self.status, reason=f"Only paid orders can be refunded, not {self.status}")

        self._cancel(note)

    def _cancel(self, note):
        previous = self.current_status
        self.transition_to(OrderStatus.CANCELLED, note)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                buyer_id=str(self.buyer_id),
                previous_status=previous.value,
                reason=note,
                restocked=json.dumps(self.quantities_by_product()),
                cancelled_at=self.updated_at,
            )
        )

    def start_processing(self, note="Seller started processing"):
        self.transition_to(OrderStatus.PROCESSING, note)

    def complete(self, note="Order completed"):
        self.transition_to(OrderStatus.COMPLETED, note)

    def mark_paid(self, note="Payment collected"):
        self.transition_to(OrderStatus.PAID, note)

    def mark_failed(self, note="Order failed"):
        self.transition_to(OrderStatus.FAILED, note)

    def link_payment(self, payment_id):
        if self.payment_id and str(self.payment_id) != str(payment_id):
            raise ValidationError({"payment_id": ["Order is already linked to another payment"]})
        if self.payment_id:
            return

        self.payment_id = payment_id
        self.updated_at = datetime.now(UTC)
        self.raise_(OrderPaymentLinked(order_id=str(self.id), payment_id=str(payment_id)))


@marketplace.repository(part_of=Order)
class OrderRepository:
    def for_buyer(self, buyer_id) -> list:
        orders = self._dao.query.filter(buyer_id=str(buyer_id)).all().items
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def for_payment(self, payment_id) -> Order | None:
        orders = self._dao.query.filter(payment_id=str(payment_id)).all().items
        return orders[0] if orders else None
