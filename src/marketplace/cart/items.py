"""Cart line management: commands and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.catalogue.reader import get_product
from marketplace.domain import marketplace
from marketplace.errors import CartNotFound

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Cart")
class AddToCart:
    buyer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(default=1)


@marketplace.command(part_of="Cart")
class UpdateCartItem:
    buyer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)


@marketplace.command(part_of="Cart")
class RemoveFromCart:
    buyer_id = Identifier(required=True)
    product_id = Identifier(required=True)


@marketplace.command(part_of="Cart")
class ClearCart:
    buyer_id = Identifier(required=True)


def _existing_cart(repo, buyer_id) -> Cart:
    cart = repo.for_buyer(buyer_id)
    if cart is None:
        raise CartNotFound(buyer_id)
    return cart


@marketplace.command_handler(part_of=Cart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        product = get_product(command.product_id)

        repo = current_domain.repository_for(Cart)
        cart = repo.for_buyer(command.buyer_id) or Cart.create(buyer_id=command.buyer_id)
        cart.add_line(product, command.quantity)
        repo.add(cart)
        return str(cart.id)

    @handle(UpdateCartItem)
    def update_cart_item(self, command):
        repo = current_domain.repository_for(Cart)
        cart = _existing_cart(repo, command.buyer_id)
        cart.update_line(get_product(command.product_id), command.quantity)
        repo.add(cart)
        return str(cart.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = _existing_cart(repo, command.buyer_id)
        cart.remove_line(command.product_id)
        repo.add(cart)

        if cart.is_empty:
            repo.discard(cart)
            logger.info("Cart emptied and deleted", buyer_id=str(command.buyer_id))
            return None
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.for_buyer(command.buyer_id)
        if cart is None:
            return None

        cart.clear()
        repo.add(cart)
        repo.discard(cart)
        return None
