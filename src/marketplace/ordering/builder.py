"""Order builder: turns purchase intent into a priced, validated snapshot.

Two shapes move through checkout. A ``LineRequest`` is a live reference to a
product by id and drives stock changes. A ``PricedLine`` is a frozen copy of
name, seller and unit price as they were when the order was built. Building
is pure validation against the current catalogue; it never changes anything.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass

from marketplace.catalogue.reader import find_product, get_product
from marketplace.errors import InsufficientStock, InvalidInput


@dataclass(frozen=True)
class LineRequest:
    product_id: str
    quantity: int

    @classmethod
    def from_payload(cls, payload) -> "LineRequest":
        """Accept ``{"product_id": ..., "quantity": ...}``; quantity defaults to 1."""
        if not isinstance(payload, dict):
            raise InvalidInput({"items": ["Each item must be an object"]})

        product_id = payload.get("product_id") or payload.get("id")
        quantity = payload.get("quantity", 1)
        if not product_id or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInput({"quantity": ["Invalid product or quantity"]})
        return cls(product_id=str(product_id), quantity=quantity)


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    name: str
    seller_id: str
    quantity: int
    unit_price: float
    line_total: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "PricedLine":
        try:
            return cls(
                product_id=str(data["product_id"]),
                name=data["name"],
                seller_id=str(data["seller_id"]),
                quantity=int(data["quantity"]),
                unit_price=float(data["unit_price"]),
                line_total=float(data["line_total"]),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidInput({"items": ["Malformed line snapshot"]}) from None

    def request(self) -> LineRequest:
        return LineRequest(product_id=self.product_id, quantity=self.quantity)


@dataclass(frozen=True)
class PricedOrder:
    lines: tuple
    total: float

    def requests(self) -> list[LineRequest]:
        return [line.request() for line in self.lines]

    def to_dicts(self) -> list[dict]:
        return [line.to_dict() for line in self.lines]


def _price(requests, missing_is_fatal) -> PricedOrder:
    if not requests:
        raise InvalidInput({"items": ["No items to order"]})

    lines = []
    requested = defaultdict(int)
    for request in requests:
        if request.quantity is None or request.quantity <= 0:
            raise InvalidInput({"quantity": ["Invalid product or quantity"]})

        product = get_product(request.product_id) if missing_is_fatal else find_product(request.product_id)
        if product is None:
            continue

        # Repeated lines for one product draw on the same stock
        requested[request.product_id] += request.quantity
        if not product.can_supply(requested[request.product_id]):
            raise InsufficientStock(product.id, product.name, product.quantity, requested[request.product_id])

        lines.append(
            PricedLine(
                product_id=str(product.id),
                name=product.name,
                seller_id=str(product.seller_id),
                quantity=request.quantity,
                unit_price=product.price,
                line_total=round(product.price * request.quantity, 2),
            )
        )

    if not lines:
        raise InvalidInput({"items": ["Cart is empty"]})

    return PricedOrder(lines=tuple(lines), total=round(sum(line.line_total for line in lines), 2))


def build_from_requests(requests) -> PricedOrder:
    """Price an explicit purchase. A missing product fails the whole build."""
    return _price(list(requests), missing_is_fatal=True)


def build_from_payload(items) -> PricedOrder:
    if not isinstance(items, list):
        raise InvalidInput({"items": ["Items must be a list"]})
    return build_from_requests(LineRequest.from_payload(item) for item in items)


def build_from_cart(cart) -> PricedOrder:
    """Price a cart. Lines whose product has left the catalogue are skipped."""
    if cart is None or cart.is_empty:
        raise InvalidInput({"items": ["Cart is empty"]})
    requests = [LineRequest(product_id=str(line.product_id), quantity=line.quantity) for line in cart.lines]
    return _price(requests, missing_is_fatal=False)


def build_from_snapshot(snapshot) -> PricedOrder:
    """Rebuild a stored snapshot as it was priced, re-checking only stock.

    The buyer paid for the snapshot, so its prices stand even when the
    catalogue has moved on since.
    """
    lines = tuple(PricedLine.from_dict(item) for item in snapshot or [])
    if not lines:
        raise InvalidInput({"items": ["No items to order"]})

    requested = defaultdict(int)
    for line in lines:
        if line.quantity <= 0:
            raise InvalidInput({"quantity": ["Invalid product or quantity"]})
        product = get_product(line.product_id)
        requested[line.product_id] += line.quantity
        if not product.can_supply(requested[line.product_id]):
            raise InsufficientStock(product.id, product.name, product.quantity, requested[line.product_id])

    return PricedOrder(lines=lines, total=round(sum(line.line_total for line in lines), 2))
