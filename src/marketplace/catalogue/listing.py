"""Product listing: the minimal write path sellers use to stock the catalogue."""

from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product
from marketplace.domain import marketplace


@marketplace.command(part_of="Product")
class ListProduct:
    product_id = Identifier()
    seller_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=0)


@marketplace.command_handler(part_of=Product)
class ListProductHandler:
    @handle(ListProduct)
    def list_product(self, command):
        product = Product.create(
            name=command.name,
            price=command.price,
            quantity=command.quantity,
            seller_id=command.seller_id,
            product_id=command.product_id,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)
