"""Product aggregate: the catalogue entry and its authoritative stock count.

Catalogue editing belongs to the sellers' side of the platform. Order flows
only ever touch ``quantity``, and only through ``withdraw`` and ``restore``,
which the stock ledger drives.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.catalogue.events import ProductListed, StockRestored, StockWithdrawn
from marketplace.domain import marketplace
from marketplace.errors import InsufficientStock


class ProductStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@marketplace.aggregate
class Product:
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    quantity = Integer(min_value=0, default=0)
    seller_id = Identifier(required=True)
    status = String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, name, price, quantity, seller_id, product_id=None):
        now = datetime.now(UTC)
        attributes = dict(
            name=name,
            price=price,
            quantity=quantity,
            seller_id=seller_id,
            created_at=now,
            updated_at=now,
        )
        if product_id:
            attributes["id"] = product_id

        product = cls(**attributes)
        product.raise_(
            ProductListed(
                product_id=str(product.id),
                seller_id=str(seller_id),
                name=name,
                price=price,
                quantity=quantity,
            )
        )
        return product

    def can_supply(self, quantity) -> bool:
        return quantity <= self.quantity

    def withdraw(self, quantity):
        """Take ``quantity`` units off the shelf; never goes below zero."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if not self.can_supply(quantity):
            raise InsufficientStock(self.id, self.name, self.quantity, quantity)

        self.quantity -= quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockWithdrawn(
                product_id=str(self.id),
                quantity=quantity,
                remaining=self.quantity,
            )
        )

    def restore(self, quantity):
        """Put ``quantity`` units back on the shelf."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        self.quantity += quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockRestored(
                product_id=str(self.id),
                quantity=quantity,
                on_hand=self.quantity,
            )
        )
