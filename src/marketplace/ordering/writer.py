"""Transactional order writer.

Called from inside a command handler, so everything here shares the handler's
unit of work. Stock is withdrawn through a ``StockLedger`` for every line
first; only when all lines succeed are the products and the new order handed
to their repositories. Any failure raises before anything is persisted.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.catalogue.ledger import StockLedger
from marketplace.errors import InsufficientStock, ProductNotFound
from marketplace.ordering.order import Order

logger = structlog.get_logger(__name__)


def withdraw_stock(ledger: StockLedger, priced) -> None:
    for line in priced.lines:
        if ledger.decrement(line.product_id, line.quantity):
            continue

        product = ledger.product(line.product_id)
        if product is None:
            raise ProductNotFound(line.product_id)
        raise InsufficientStock(product.id, product.name, product.quantity, line.quantity)


def write_order(priced, buyer_id, shipping_address, payment_method, **references) -> Order:
    """Withdraw stock for ``priced`` and persist a new order.

    ``references`` pass through to ``Order.place``: order_number,
    gateway_order_id, payment_id, upi_id, bank_code and note.
    """
    ledger = StockLedger()
    withdraw_stock(ledger, priced)

    order = Order.place(
        buyer_id=buyer_id,
        priced=priced,
        shipping_address=shipping_address,
        payment_method=payment_method,
        **references,
    )

    ledger.flush()
    current_domain.repository_for(Order).add(order)

    logger.info(
        "Order written",
        order_id=str(order.id),
        order_number=order.order_number,
        buyer_id=str(buyer_id),
        status=order.status,
        total=order.total_amount,
        lines=len(order.lines),
    )
    return order
