"""Payment initiation.

Cash: the payment and a pending order are written together and linked both
ways, stock withdrawn in the same unit of work.

Gateway methods (UPI, Net Banking, Card): a gateway order is opened for the
server-derived total and the payment is stored as ``confirmed`` with its line
snapshot. No stock moves until the reconciler runs after verification.
"""

import os

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.cart.repair import repair_cart
from marketplace.domain import marketplace
from marketplace.ordering.builder import build_from_cart, build_from_payload
from marketplace.ordering.order import PaymentMethod, ShippingAddress, generate_order_number, parse_payment_method
from marketplace.ordering.placement import load_json
from marketplace.ordering.writer import write_order
from marketplace.payments.gateway import get_gateway
from marketplace.payments.payment import Payment

logger = structlog.get_logger(__name__)


def default_currency() -> str:
    return os.getenv("MARKETPLACE_CURRENCY", "INR")


@marketplace.command(part_of="Payment")
class InitiatePayment:
    buyer_id = Identifier(required=True)
    items = Text()  # JSON list of {"product_id", "quantity"}; the buyer's cart when absent
    shipping_address = Text(required=True)  # JSON object
    payment_method = String(required=True, max_length=50)
    upi_id = String(max_length=100)
    bank_code = String(max_length=50)


@marketplace.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        address = ShippingAddress.from_payload(load_json(command.shipping_address, "shipping_address"))
        method = parse_payment_method(command.payment_method)

        cart = None
        if command.items:
            priced = build_from_payload(load_json(command.items, "items"))
        else:
            cart = current_domain.repository_for(Cart).for_buyer(command.buyer_id)
            if cart is not None:
                repair_cart(cart)
            priced = build_from_cart(cart)

        order_number = generate_order_number()
        currency = default_currency()
        gateway_order_id = None
        if method != PaymentMethod.CASH:
            gateway_order = get_gateway().create_order(priced.total, currency, receipt=order_number)
            gateway_order_id = gateway_order.gateway_order_id

        payment = Payment.initiate(
            buyer_id=command.buyer_id,
            priced=priced,
            shipping_address=address,
            payment_method=method,
            order_number=order_number,
            currency=currency,
            gateway_order_id=gateway_order_id,
            upi_id=command.upi_id,
            bank_code=command.bank_code,
        )

        if method == PaymentMethod.CASH:
            order = write_order(
                priced,
                buyer_id=command.buyer_id,
                shipping_address=address,
                payment_method=method,
                order_number=order_number,
                payment_id=str(payment.id),
            )
            payment.link_order(order.id)
            if cart is not None:
                cart.clear()
                cart_repo = current_domain.repository_for(Cart)
                cart_repo.add(cart)
                cart_repo.discard(cart)

        current_domain.repository_for(Payment).add(payment)
        logger.info(
            "Payment initiated",
            payment_id=str(payment.id),
            method=method.value,
            amount=payment.amount,
            status=payment.status,
        )
        return str(payment.id)
