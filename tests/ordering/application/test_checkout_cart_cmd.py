import json

import pytest
from protean import current_domain

from marketplace.cart.cart import Cart, CartLine
from marketplace.cart.items import AddToCart
from marketplace.catalogue.product import Product
from marketplace.errors import InsufficientStock, InvalidInput
from marketplace.ordering.order import Order, OrderStatus
from marketplace.ordering.placement import CheckoutCart


def _checkout(buyer_id, address, method="Cash"):
    return current_domain.process(
        CheckoutCart(buyer_id=buyer_id, shipping_address=json.dumps(address), payment_method=method),
        asynchronous=False,
    )


def _add(buyer_id, product_id, quantity):
    current_domain.process(AddToCart(buyer_id=buyer_id, product_id=product_id, quantity=quantity), asynchronous=False)


def _cart(buyer_id):
    return current_domain.repository_for(Cart).for_buyer(buyer_id)


class TestCheckoutCart:
    def test_checkout_writes_order_and_clears_cart(self, buyer_id, address, make_product, stock_of):
        make_product("prod-001", quantity=5, price=100.0)
        make_product("prod-002", quantity=3, price=40.0, seller="seller-002")
        _add(buyer_id, "prod-001", 2)
        _add(buyer_id, "prod-002", 1)

        order = current_domain.repository_for(Order).get(_checkout(buyer_id, address))

        assert order.total_amount == 240.0
        assert order.status == OrderStatus.PENDING.value
        assert stock_of("prod-001") == 3
        assert stock_of("prod-002") == 2
        assert _cart(buyer_id) is None

    def test_checkout_uses_current_price(self, buyer_id, address, make_product):
        make_product(price=100.0)
        _add(buyer_id, "prod-001", 1)

        repo = current_domain.repository_for(Product)
        product = repo.get("prod-001")
        product.price = 90.0
        repo.add(product)

        order = current_domain.repository_for(Order).get(_checkout(buyer_id, address, method="Card"))
        assert order.total_amount == 90.0
        assert order.status == OrderStatus.PAID.value

    def test_checkout_repairs_and_skips_dangling_lines(self, buyer_id, address, make_product):
        make_product("prod-001", price=100.0)
        cart = Cart.create(buyer_id=buyer_id)
        cart.add_lines(CartLine(product_id="prod-001", quantity=2, price=0.0))
        cart.add_lines(CartLine(product_id="prod-gone", quantity=1, price=0.0))
        current_domain.repository_for(Cart).add(cart)

        order = current_domain.repository_for(Order).get(_checkout(buyer_id, address))

        assert [line.product_id for line in order.lines] == ["prod-001"]
        assert order.total_amount == 200.0

    def test_empty_cart(self, buyer_id, address):
        with pytest.raises(InvalidInput) as exc_info:
            _checkout(buyer_id, address)
        assert exc_info.value.messages["items"] == ["Cart is empty"]

    def test_failed_checkout_keeps_cart(self, buyer_id, address, make_product, stock_of):
        make_product(quantity=3)
        _add(buyer_id, "prod-001", 3)

        repo = current_domain.repository_for(Product)
        product = repo.get("prod-001")
        product.quantity = 1
        repo.add(product)

        with pytest.raises(InsufficientStock):
            _checkout(buyer_id, address)

        assert _cart(buyer_id).lines[0].quantity == 3
        assert stock_of("prod-001") == 1

    def test_incomplete_address(self, buyer_id, address, make_product):
        make_product()
        _add(buyer_id, "prod-001", 1)
        address["postal_code"] = ""

        with pytest.raises(InvalidInput):
            _checkout(buyer_id, address)
        assert _cart(buyer_id) is not None
