"""Marketplace domain: catalogue stock, carts, orders and payments.

A single domain so that stock withdrawals, order writes and payment links
share one unit of work. Every state change enters through a command
processed with ``current_domain.process``.
"""

from protean.domain import Domain

from marketplace.utils.logging import configure_logging

configure_logging()

marketplace = Domain(name="marketplace")
