"""Order placement: direct purchase and cart checkout."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.cart.repair import repair_cart
from marketplace.domain import marketplace
from marketplace.errors import InvalidInput
from marketplace.ordering.builder import build_from_cart, build_from_payload
from marketplace.ordering.order import Order, ShippingAddress, parse_payment_method
from marketplace.ordering.writer import write_order

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class PlaceOrder:
    buyer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {"product_id", "quantity"}
    shipping_address = Text(required=True)  # JSON object
    payment_method = String(required=True, max_length=50)
    order_number = String(max_length=100)
    upi_id = String(max_length=100)
    bank_code = String(max_length=50)


@marketplace.command(part_of="Order")
class CheckoutCart:
    buyer_id = Identifier(required=True)
    shipping_address = Text(required=True)  # JSON object
    payment_method = String(required=True, max_length=50)
    upi_id = String(max_length=100)
    bank_code = String(max_length=50)


def load_json(text, field):
    try:
        return json.loads(text) if text else None
    except (TypeError, ValueError):
        raise InvalidInput({field: ["Malformed JSON"]}) from None


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        # Address and method are checked before any stock is looked at
        address = ShippingAddress.from_payload(load_json(command.shipping_address, "shipping_address"))
        method = parse_payment_method(command.payment_method)

        priced = build_from_payload(load_json(command.items, "items"))
        order = write_order(
            priced,
            buyer_id=command.buyer_id,
            shipping_address=address,
            payment_method=method,
            order_number=command.order_number,
            upi_id=command.upi_id,
            bank_code=command.bank_code,
        )
        return str(order.id)

    @handle(CheckoutCart)
    def checkout_cart(self, command):
        address = ShippingAddress.from_payload(load_json(command.shipping_address, "shipping_address"))
        method = parse_payment_method(command.payment_method)

        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.for_buyer(command.buyer_id)
        if cart is not None:
            repair_cart(cart)

        priced = build_from_cart(cart)
        order = write_order(
            priced,
            buyer_id=command.buyer_id,
            shipping_address=address,
            payment_method=method,
            upi_id=command.upi_id,
            bank_code=command.bank_code,
        )

        cart.clear()
        cart_repo.add(cart)
        cart_repo.discard(cart)
        logger.info("Cart checked out", buyer_id=str(command.buyer_id), order_id=str(order.id))
        return str(order.id)
