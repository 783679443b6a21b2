"""Normalized cart view for display.

Lines whose product has left the catalogue are dropped from the view; they
stay in storage and are skipped at checkout.
"""

from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart, price_is_missing
from marketplace.catalogue.reader import find_products


def empty_view(buyer_id) -> dict:
    return {"cart_id": None, "buyer_id": str(buyer_id), "items": [], "total_items": 0, "cart_total": 0.0}


def cart_view(buyer_id) -> dict:
    cart = current_domain.repository_for(Cart).for_buyer(buyer_id)
    if cart is None:
        return empty_view(buyer_id)

    products = find_products(line.product_id for line in cart.lines)
    items = []
    for line in cart.lines:
        product = products.get(str(line.product_id))
        if product is None:
            continue
        items.append(
            {
                "product_id": str(product.id),
                "name": product.name,
                "unit_price": product.price,
                "quantity": line.quantity,
                "price": 0.0 if price_is_missing(line.price) else line.price,
                "available": product.quantity,
                "seller_id": str(product.seller_id),
            }
        )

    return {
        "cart_id": str(cart.id),
        "buyer_id": str(cart.buyer_id),
        "items": items,
        "total_items": sum(item["quantity"] for item in items),
        "cart_total": round(sum(item["price"] for item in items), 2),
    }
