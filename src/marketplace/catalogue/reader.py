"""Read access to the catalogue for pricing and availability checks."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product
from marketplace.errors import ProductNotFound


def find_product(product_id) -> Product | None:
    if not product_id:
        return None
    try:
        return current_domain.repository_for(Product).get(str(product_id))
    except ObjectNotFoundError:
        return None


def get_product(product_id) -> Product:
    product = find_product(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def find_products(product_ids) -> dict[str, Product]:
    """Load several products at once, keyed by id. Missing ids are left out."""
    found = {}
    for product_id in {str(pid) for pid in product_ids if pid}:
        product = find_product(product_id)
        if product is not None:
            found[product_id] = product
    return found
