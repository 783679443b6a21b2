"""Domain events for the Cart aggregate."""

from protean.fields import Float, Identifier, Integer

from marketplace.domain import marketplace


@marketplace.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart, or its quantity was topped up."""

    __version__ = 1

    cart_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    line_price = Float(required=True)


@marketplace.event(part_of="Cart")
class CartItemUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    line_price = Float(required=True)


@marketplace.event(part_of="Cart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)


@marketplace.event(part_of="Cart")
class CartCleared:
    __version__ = 1

    cart_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    lines_removed = Integer(required=True)


@marketplace.event(part_of="Cart")
class CartRepaired:
    """Cached line prices were recomputed from current catalogue prices."""

    __version__ = 1

    cart_id = Identifier(required=True)
    lines_repaired = Integer(required=True)
    new_total = Float(required=True)
