"""Cart aggregate: one active cart per buyer.

Each line keeps a cached ``price`` for the whole line (unit price times
quantity) so the cart can be shown without a catalogue round trip. The cache
is stamped on every write here. Carts written by older clients may hold a
zero or NaN price; ``repair`` restores those from current catalogue prices.

The cached price is display data only. Checkout always re-prices from the
catalogue.
"""

import math
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer

from marketplace.cart.events import CartCleared, CartItemAdded, CartItemRemoved, CartItemUpdated, CartRepaired
from marketplace.domain import marketplace
from marketplace.errors import InvalidInput


def price_is_missing(price) -> bool:
    return price is None or price == 0 or (isinstance(price, float) and math.isnan(price))


@marketplace.entity(part_of="Cart")
class CartLine:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    price = Float(min_value=0.0, default=0.0)
    added_at = DateTime()


@marketplace.aggregate
class Cart:
    buyer_id = Identifier(required=True)
    lines = HasMany(CartLine)
    total = Float(default=0.0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, buyer_id):
        now = datetime.now(UTC)
        return cls(buyer_id=buyer_id, total=0.0, created_at=now, updated_at=now)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def line_for(self, product_id) -> CartLine | None:
        return next((line for line in self.lines if str(line.product_id) == str(product_id)), None)

    def _recalculate_total(self):
        self.total = round(sum(line.price for line in self.lines if not price_is_missing(line.price)), 2)

    def _check_stock(self, product, quantity):
        if quantity > product.quantity:
            raise ValidationError({"quantity": [f"Only {product.quantity} items available in stock"]})

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add_line(self, product, quantity=1):
        """Add ``product`` to the cart, merging with an existing line."""
        if quantity is None or quantity < 1:
            raise InvalidInput({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = self.line_for(product.id)
        new_quantity = quantity + (existing.quantity if existing else 0)
        self._check_stock(product, new_quantity)

        line_price = round(product.price * new_quantity, 2)
        if existing:
            existing.quantity = new_quantity
            existing.price = line_price
        else:
            self.add_lines(CartLine(product_id=product.id, quantity=new_quantity, price=line_price, added_at=now))

        self._recalculate_total()
        self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                buyer_id=str(self.buyer_id),
                product_id=str(product.id),
                quantity=new_quantity,
                line_price=line_price,
            )
        )

    def update_line(self, product, quantity):
        if quantity is None or quantity < 1:
            raise InvalidInput({"quantity": ["Quantity must be at least 1"]})

        line = self.line_for(product.id)
        if line is None:
            raise ValidationError({"product_id": ["Item not found in cart"]})
        self._check_stock(product, quantity)

        previous_quantity = line.quantity
        line.quantity = quantity
        line.price = round(product.price * quantity, 2)
        self._recalculate_total()
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartItemUpdated(
                cart_id=str(self.id),
                product_id=str(product.id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
                line_price=line.price,
            )
        )

    def remove_line(self, product_id):
        line = self.line_for(product_id)
        if line is None:
            raise ValidationError({"product_id": ["Item not found in cart"]})

        self.remove_lines(line)
        self._recalculate_total()
        self.updated_at = datetime.now(UTC)

        self.raise_(CartItemRemoved(cart_id=str(self.id), product_id=str(product_id)))

    def clear(self):
        removed = len(self.lines)
        for line in list(self.lines):
            self.remove_lines(line)
        self.total = 0.0
        self.updated_at = datetime.now(UTC)

        self.raise_(CartCleared(cart_id=str(self.id), buyer_id=str(self.buyer_id), lines_removed=removed))

    # -------------------------------------------------------------------
    # Price repair
    # -------------------------------------------------------------------
    def repair(self, products) -> int:
        """Recompute missing line prices from ``products`` (a dict keyed by product id).

        Lines whose product is gone, or has no usable price, are left as they
        are. Returns the number of lines repaired; the total is only
        recomputed when at least one line changed.
        """
        repaired = 0
        for line in self.lines:
            product = products.get(str(line.product_id))
            if not price_is_missing(line.price) or product is None or not product.price:
                continue
            line.price = round(product.price * line.quantity, 2)
            repaired += 1

        if repaired:
            self._recalculate_total()
            self.updated_at = datetime.now(UTC)
            self.raise_(CartRepaired(cart_id=str(self.id), lines_repaired=repaired, new_total=self.total))

        return repaired


@marketplace.repository(part_of=Cart)
class CartRepository:
    def for_buyer(self, buyer_id) -> Cart | None:
        carts = self._dao.query.filter(buyer_id=str(buyer_id)).all().items
        return carts[0] if carts else None

    def discard(self, cart):
        self._dao.delete(cart)
