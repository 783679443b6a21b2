"""Domain events for the Product aggregate."""

from protean.fields import Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Product")
class ProductListed:
    """A seller put a product on the catalogue."""

    __version__ = 1

    product_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    name = String(required=True)
    price = Float(required=True)
    quantity = Integer(required=True)


@marketplace.event(part_of="Product")
class StockWithdrawn:
    """Units left the shelf for an order."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    remaining = Integer(required=True)


@marketplace.event(part_of="Product")
class StockRestored:
    """Units came back to the shelf after a cancellation."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    on_hand = Integer(required=True)
