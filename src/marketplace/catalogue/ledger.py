"""Stock ledger: the only path by which order flows change product stock.

One ledger lives for one unit of work. Deltas are applied to the loaded
aggregates as they are requested, but nothing reaches the repository until
``flush``; a failure halfway through a multi-line order therefore leaves the
store untouched. Repeated deltas on the same product accumulate against the
same loaded aggregate.

``decrement`` is decrement-if-sufficient and, like ``increment``, reports the
number of products it affected: 1 on success, 0 when the product is missing
or the withdrawal would take stock below zero. Callers treat 0 as failure.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product
from marketplace.catalogue.reader import find_product

logger = structlog.get_logger(__name__)


class StockLedger:
    def __init__(self):
        self._products: dict[str, Product | None] = {}
        self._touched: list[str] = []

    def product(self, product_id) -> Product | None:
        """The product as this ledger currently sees it, staged deltas included."""
        key = str(product_id)
        if key not in self._products:
            self._products[key] = find_product(key)
        return self._products[key]

    def decrement(self, product_id, quantity) -> int:
        product = self.product(product_id)
        if product is None or not product.can_supply(quantity):
            return 0

        product.withdraw(quantity)
        self._touch(product)
        return 1

    def increment(self, product_id, quantity) -> int:
        product = self.product(product_id)
        if product is None:
            return 0

        product.restore(quantity)
        self._touch(product)
        return 1

    def _touch(self, product):
        key = str(product.id)
        if key not in self._touched:
            self._touched.append(key)

    def flush(self) -> int:
        """Persist every product this ledger changed. Returns how many were saved."""
        repo = current_domain.repository_for(Product)
        for key in self._touched:
            repo.add(self._products[key])

        flushed = len(self._touched)
        logger.debug("Stock ledger flushed", products=flushed)
        self._touched = []
        return flushed
