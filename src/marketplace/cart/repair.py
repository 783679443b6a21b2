"""Lazy repair of cached cart line prices.

Carts written before prices were stamped at write time can carry zero or NaN
line prices. Repair runs before a cart is displayed or checked out, and is a
no-op for carts whose prices are already set.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.catalogue.reader import find_products
from marketplace.domain import marketplace

logger = structlog.get_logger(__name__)


def repair_cart(cart: Cart) -> int:
    """Repair ``cart`` in place and persist it when anything changed."""
    products = find_products(line.product_id for line in cart.lines)
    repaired = cart.repair(products)
    if repaired:
        current_domain.repository_for(Cart).add(cart)
        logger.info("Cart prices repaired", cart_id=str(cart.id), lines=repaired, total=cart.total)
    return repaired


@marketplace.command(part_of="Cart")
class RepairCart:
    buyer_id = Identifier(required=True)


@marketplace.command_handler(part_of=Cart)
class RepairCartHandler:
    @handle(RepairCart)
    def repair(self, command):
        cart = current_domain.repository_for(Cart).for_buyer(command.buyer_id)
        if cart is None:
            return 0
        return repair_cart(cart)
