"""FastAPI routes for the marketplace: catalogue seeding, carts, checkout, orders, payments."""

import json

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from marketplace.api.dependencies import current_user
from marketplace.api.schemas import (
    AddToCartRequest,
    BuildOrderRequest,
    CancelOrderRequest,
    CartResponse,
    CheckoutCartRequest,
    InitiatePaymentRequest,
    ListProductRequest,
    OrderIdResponse,
    OrderResponse,
    PaymentResponse,
    PlaceOrderRequest,
    PricedOrderResponse,
    ProductResponse,
    SellerOrdersResponse,
    UpdateCartItemRequest,
    VerificationResponse,
    VerifyPaymentRequest,
)
from marketplace.cart.cart import Cart
from marketplace.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItem
from marketplace.cart.repair import RepairCart
from marketplace.cart.view import cart_view
from marketplace.catalogue.listing import ListProduct
from marketplace.catalogue.reader import get_product
from marketplace.errors import PaymentNotFound
from marketplace.ordering.builder import build_from_cart, build_from_payload
from marketplace.ordering.lifecycle import CancelOrder, CompleteOrder, RefundOrder, StartProcessing
from marketplace.ordering.placement import CheckoutCart, PlaceOrder
from marketplace.ordering.queries import buyer_order_detail, buyer_orders, seller_orders
from marketplace.payments.initiation import InitiatePayment
from marketplace.payments.payment import load_payment
from marketplace.payments.reconciliation import ReconcilePayment
from marketplace.payments.refunds import RetryRefund
from marketplace.payments.verification import verify_and_reconcile
from marketplace.transactions import execute


def _items_json(items) -> str:
    return json.dumps([item.model_dump() for item in items])


def _address_json(address) -> str:
    return json.dumps(address.model_dump())


# ---------------------------------------------------------------------------
# Catalogue Router
# ---------------------------------------------------------------------------
catalogue_router = APIRouter(prefix="/catalogue/products", tags=["catalogue"])


def _product_response(product) -> ProductResponse:
    return ProductResponse(
        product_id=str(product.id),
        name=product.name,
        price=product.price,
        quantity=product.quantity,
        seller_id=str(product.seller_id),
        status=product.status,
    )


@catalogue_router.post("", status_code=201, response_model=ProductResponse)
async def list_product(body: ListProductRequest, seller_id: str = Depends(current_user)) -> ProductResponse:
    product_id = execute(
        ListProduct(
            product_id=body.product_id,
            seller_id=seller_id,
            name=body.name,
            price=body.price,
            quantity=body.quantity,
        )
    )
    return _product_response(get_product(product_id))


@catalogue_router.get("/{product_id}", response_model=ProductResponse)
async def get_catalogue_product(product_id: str) -> ProductResponse:
    return _product_response(get_product(product_id))


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(buyer_id: str = Depends(current_user)) -> CartResponse:
    execute(RepairCart(buyer_id=buyer_id))
    return CartResponse(**cart_view(buyer_id))


@cart_router.post("/items", response_model=CartResponse)
async def add_cart_item(body: AddToCartRequest, buyer_id: str = Depends(current_user)) -> CartResponse:
    execute(AddToCart(buyer_id=buyer_id, product_id=body.product_id, quantity=body.quantity))
    return CartResponse(**cart_view(buyer_id))


@cart_router.put("/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: str, body: UpdateCartItemRequest, buyer_id: str = Depends(current_user)
) -> CartResponse:
    execute(UpdateCartItem(buyer_id=buyer_id, product_id=product_id, quantity=body.quantity))
    return CartResponse(**cart_view(buyer_id))


@cart_router.delete("/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(product_id: str, buyer_id: str = Depends(current_user)) -> CartResponse:
    execute(RemoveFromCart(buyer_id=buyer_id, product_id=product_id))
    return CartResponse(**cart_view(buyer_id))


@cart_router.delete("", response_model=CartResponse)
async def clear_cart(buyer_id: str = Depends(current_user)) -> CartResponse:
    execute(ClearCart(buyer_id=buyer_id))
    return CartResponse(**cart_view(buyer_id))


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/build", response_model=PricedOrderResponse)
async def build_order(body: BuildOrderRequest, buyer_id: str = Depends(current_user)) -> PricedOrderResponse:
    """Price a direct purchase, or the buyer's cart when no items are given. Nothing is reserved."""
    if body.items is not None:
        priced = build_from_payload([item.model_dump() for item in body.items])
    else:
        execute(RepairCart(buyer_id=buyer_id))
        priced = build_from_cart(current_domain.repository_for(Cart).for_buyer(buyer_id))
    return PricedOrderResponse(items=priced.to_dicts(), total=priced.total)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def place_order(body: PlaceOrderRequest, buyer_id: str = Depends(current_user)) -> OrderResponse:
    order_id = execute(
        PlaceOrder(
            buyer_id=buyer_id,
            items=_items_json(body.items),
            shipping_address=_address_json(body.shipping_address),
            payment_method=body.payment_method,
            order_number=body.order_number,
            upi_id=body.upi_id,
            bank_code=body.bank_code,
        )
    )
    return OrderResponse(**buyer_order_detail(buyer_id, order_id))


@order_router.post("/checkout", status_code=201, response_model=OrderResponse)
async def checkout_cart(body: CheckoutCartRequest, buyer_id: str = Depends(current_user)) -> OrderResponse:
    order_id = execute(
        CheckoutCart(
            buyer_id=buyer_id,
            shipping_address=_address_json(body.shipping_address),
            payment_method=body.payment_method,
            upi_id=body.upi_id,
            bank_code=body.bank_code,
        )
    )
    return OrderResponse(**buyer_order_detail(buyer_id, order_id))


@order_router.get("", response_model=list[OrderResponse])
async def list_buyer_orders(buyer_id: str = Depends(current_user)) -> list[OrderResponse]:
    return [OrderResponse(**order) for order in buyer_orders(buyer_id)]


@order_router.get("/seller", response_model=SellerOrdersResponse)
async def list_seller_orders(seller_id: str = Depends(current_user)) -> SellerOrdersResponse:
    return SellerOrdersResponse(**seller_orders(seller_id))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, buyer_id: str = Depends(current_user)) -> OrderResponse:
    return OrderResponse(**buyer_order_detail(buyer_id, order_id))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str, body: CancelOrderRequest | None = None, buyer_id: str = Depends(current_user)
) -> OrderResponse:
    execute(CancelOrder(order_id=order_id, buyer_id=buyer_id, reason=body.reason if body else None))
    return OrderResponse(**buyer_order_detail(buyer_id, order_id))


@order_router.post("/{order_id}/refund", response_model=OrderIdResponse)
async def refund_order(
    order_id: str, body: CancelOrderRequest | None = None, _operator_id: str = Depends(current_user)
) -> OrderIdResponse:
    result = execute(RefundOrder(order_id=order_id, reason=body.reason if body else None))
    return OrderIdResponse(order_id=result)


@order_router.post("/{order_id}/processing", response_model=OrderIdResponse)
async def start_processing(order_id: str, seller_id: str = Depends(current_user)) -> OrderIdResponse:
    return OrderIdResponse(order_id=execute(StartProcessing(order_id=order_id, seller_id=seller_id)))


@order_router.post("/{order_id}/complete", response_model=OrderIdResponse)
async def complete_order(order_id: str, seller_id: str = Depends(current_user)) -> OrderIdResponse:
    return OrderIdResponse(order_id=execute(CompleteOrder(order_id=order_id, seller_id=seller_id)))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _payment_response(payment) -> PaymentResponse:
    return PaymentResponse(
        payment_id=str(payment.id),
        status=payment.status,
        payment_method=payment.payment_method,
        amount=payment.amount,
        currency=payment.currency,
        order_number=payment.order_number,
        gateway_order_id=payment.gateway_order_id,
        order_id=str(payment.order_id) if payment.order_id else None,
        gateway_refund_id=payment.gateway_refund_id,
        failure_reason=payment.failure_reason,
    )


def _owned_payment(payment_id, buyer_id):
    payment = load_payment(payment_id)
    if str(payment.buyer_id) != str(buyer_id):
        raise PaymentNotFound(payment_id)
    return payment


@payment_router.post("", status_code=201, response_model=PaymentResponse)
async def initiate_payment(body: InitiatePaymentRequest, buyer_id: str = Depends(current_user)) -> PaymentResponse:
    payment_id = execute(
        InitiatePayment(
            buyer_id=buyer_id,
            items=_items_json(body.items) if body.items is not None else None,
            shipping_address=_address_json(body.shipping_address),
            payment_method=body.payment_method,
            upi_id=body.upi_id,
            bank_code=body.bank_code,
        )
    )
    return _payment_response(load_payment(payment_id))


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str, buyer_id: str = Depends(current_user)) -> PaymentResponse:
    return _payment_response(_owned_payment(payment_id, buyer_id))


@payment_router.post("/{payment_id}/verify", response_model=VerificationResponse)
async def verify_payment(payment_id: str, body: VerifyPaymentRequest, buyer_id: str = Depends(current_user)):
    _owned_payment(payment_id, buyer_id)
    outcome = verify_and_reconcile(
        payment_id=payment_id,
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
        signature=body.signature,
    )
    if not outcome.verified:
        return JSONResponse(
            status_code=400,
            content=VerificationResponse(
                success=False,
                payment_id=outcome.payment_id,
                status=outcome.status,
                message="Invalid payment signature",
            ).model_dump(),
        )
    return VerificationResponse(
        success=True,
        payment_id=outcome.payment_id,
        status=outcome.status,
        order_id=outcome.order_id,
        message="Payment verified",
    )


@payment_router.post("/{payment_id}/reconcile", response_model=OrderIdResponse)
async def reconcile_payment(payment_id: str, buyer_id: str = Depends(current_user)) -> OrderIdResponse:
    _owned_payment(payment_id, buyer_id)
    return OrderIdResponse(order_id=execute(ReconcilePayment(payment_id=payment_id)))


@payment_router.post("/{payment_id}/refund/retry", response_model=PaymentResponse)
async def retry_refund(payment_id: str, buyer_id: str = Depends(current_user)) -> PaymentResponse:
    _owned_payment(payment_id, buyer_id)
    execute(RetryRefund(payment_id=payment_id))
    return _payment_response(load_payment(payment_id))
