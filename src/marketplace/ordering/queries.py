"""Read side of the order lifecycle: buyer and seller views."""

from protean.utils.globals import current_domain

from marketplace.errors import OrderNotFound
from marketplace.ordering.lifecycle import load_order
from marketplace.ordering.order import Order, OrderStatus
from marketplace.ordering.seller_orders import SellerOrder

# Seller revenue only counts money that has actually moved
_SALES_STATUSES = {OrderStatus.PAID.value, OrderStatus.COMPLETED.value}


def _iso(value):
    return value.isoformat() if value else None


def normalize_order(order: Order, lines=None) -> dict:
    """Flatten an order for callers. ``lines`` narrows the items shown."""
    lines = order.lines if lines is None else lines
    address = order.shipping_address.to_dict() if order.shipping_address else None
    return {
        "id": str(order.id),
        "order_number": order.order_number,
        "buyer_id": str(order.buyer_id),
        "status": order.status,
        "payment_method": order.payment_method,
        "payment_id": str(order.payment_id) if order.payment_id else None,
        "gateway_order_id": order.gateway_order_id,
        "total_amount": order.total_amount,
        "items": [line.snapshot() for line in lines],
        "shipping_address": address,
        "timeline": [
            {"status": entry.status, "note": entry.note, "at": _iso(entry.at)} for entry in order.sorted_timeline()
        ],
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def buyer_orders(buyer_id) -> list[dict]:
    """The buyer's orders, newest first."""
    return [normalize_order(order) for order in current_domain.repository_for(Order).for_buyer(buyer_id)]


def buyer_order_detail(buyer_id, order_id) -> dict:
    order = load_order(order_id)
    if str(order.buyer_id) != str(buyer_id):
        raise OrderNotFound(order_id)
    return normalize_order(order)


def seller_orders(seller_id) -> dict:
    """Orders holding at least one of the seller's lines, showing only those lines."""
    entries = current_domain.repository_for(SellerOrder)._dao.query.filter(seller_id=str(seller_id)).all().items
    orders = [load_order(entry.order_id) for entry in entries]
    orders.sort(key=lambda order: order.created_at, reverse=True)

    views = []
    total_sales = 0.0
    completed = 0
    for order in orders:
        lines = order.lines_for_seller(seller_id)
        if order.status in _SALES_STATUSES:
            total_sales += sum(line.line_total for line in lines)
        if order.status == OrderStatus.COMPLETED.value:
            completed += 1
        views.append(normalize_order(order, lines=lines))

    return {
        "orders": views,
        "total_sales": round(total_sales, 2),
        "total_orders": len(views),
        "completed_orders": completed,
    }
