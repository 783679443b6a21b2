"""Pydantic request/response schemas for the marketplace API.

These are the external contract. Field-level rules that belong to the domain
(positive quantities, complete addresses) are left to the domain so callers
get one consistent error shape.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str | None = None
    phone: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None


class LineRequestSchema(BaseModel):
    product_id: str
    quantity: int = 1


class PricedLineSchema(BaseModel):
    product_id: str
    name: str
    seller_id: str
    quantity: int
    unit_price: float
    line_total: float


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
class ListProductRequest(BaseModel):
    product_id: str | None = None
    name: str
    price: float = Field(ge=0)
    quantity: int = Field(ge=0)


class ProductResponse(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int
    seller_id: str
    status: str


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1


class UpdateCartItemRequest(BaseModel):
    quantity: int


class CartItemSchema(BaseModel):
    product_id: str
    name: str
    unit_price: float
    quantity: int
    price: float
    available: int
    seller_id: str


class CartResponse(BaseModel):
    cart_id: str | None = None
    buyer_id: str
    items: list[CartItemSchema]
    total_items: int
    cart_total: float


# ---------------------------------------------------------------------------
# Checkout / orders
# ---------------------------------------------------------------------------
class BuildOrderRequest(BaseModel):
    items: list[LineRequestSchema] | None = None


class PricedOrderResponse(BaseModel):
    items: list[PricedLineSchema]
    total: float


class PlaceOrderRequest(BaseModel):
    items: list[LineRequestSchema]
    shipping_address: AddressSchema
    payment_method: str
    order_number: str | None = None
    upi_id: str | None = None
    bank_code: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": "prod-001", "quantity": 2}],
                    "shipping_address": {
                        "street": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "KA",
                        "country": "IN",
                        "postal_code": "560001",
                    },
                    "payment_method": "Cash",
                }
            ]
        }
    }


class CheckoutCartRequest(BaseModel):
    shipping_address: AddressSchema
    payment_method: str
    upi_id: str | None = None
    bank_code: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class OrderIdResponse(BaseModel):
    order_id: str


class OrderLineSchema(BaseModel):
    product_id: str
    name: str
    seller_id: str
    quantity: int
    price: float
    item_total: float


class TimelineEntrySchema(BaseModel):
    status: str
    note: str | None = None
    at: str | None = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    buyer_id: str
    status: str
    payment_method: str
    payment_id: str | None = None
    gateway_order_id: str | None = None
    total_amount: float
    items: list[OrderLineSchema]
    shipping_address: AddressSchema | None = None
    timeline: list[TimelineEntrySchema]
    created_at: str | None = None
    updated_at: str | None = None


class SellerOrdersResponse(BaseModel):
    orders: list[OrderResponse]
    total_sales: float
    total_orders: int
    completed_orders: int


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class InitiatePaymentRequest(BaseModel):
    items: list[LineRequestSchema] | None = None
    shipping_address: AddressSchema
    payment_method: str
    upi_id: str | None = None
    bank_code: str | None = None


class VerifyPaymentRequest(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


class PaymentResponse(BaseModel):
    payment_id: str
    status: str
    payment_method: str
    amount: float
    currency: str
    order_number: str
    gateway_order_id: str | None = None
    order_id: str | None = None
    gateway_refund_id: str | None = None
    failure_reason: str | None = None


class VerificationResponse(BaseModel):
    success: bool
    payment_id: str
    status: str
    order_id: str | None = None
    message: str
