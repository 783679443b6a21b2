"""Seller order index: one row per (order, seller) pair.

Lets a seller find the orders that contain their lines without scanning
every order. Rows are keyed ``<order_id>:<seller_id>``.
"""

import json
from collections import defaultdict

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.ordering.events import OrderPlaced, OrderStatusChanged
from marketplace.ordering.order import Order


@marketplace.projection
class SellerOrder:
    entry_id = Identifier(identifier=True, required=True)
    seller_id = Identifier(required=True)
    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    order_number = String(max_length=100)
    status = String(required=True)
    line_count = Integer(default=0)
    seller_total = Float(default=0.0)
    placed_at = DateTime()
    updated_at = DateTime()


def entry_key(order_id, seller_id) -> str:
    return f"{order_id}:{seller_id}"


@marketplace.projector(projector_for=SellerOrder, aggregates=[Order])
class SellerOrderProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        totals = defaultdict(float)
        counts = defaultdict(int)
        for line in json.loads(event.lines):
            totals[line["seller_id"]] += line["item_total"]
            counts[line["seller_id"]] += 1

        repo = current_domain.repository_for(SellerOrder)
        for seller_id, seller_total in totals.items():
            repo.add(
                SellerOrder(
                    entry_id=entry_key(event.order_id, seller_id),
                    seller_id=seller_id,
                    order_id=event.order_id,
                    buyer_id=event.buyer_id,
                    order_number=event.order_number,
                    status=event.status,
                    line_count=counts[seller_id],
                    seller_total=round(seller_total, 2),
                    placed_at=event.placed_at,
                    updated_at=event.placed_at,
                )
            )

    @on(OrderStatusChanged)
    def on_status_changed(self, event):
        repo = current_domain.repository_for(SellerOrder)
        for entry in repo._dao.query.filter(order_id=str(event.order_id)).all().items:
            entry.status = event.new_status
            entry.updated_at = event.changed_at
            repo.add(entry)
