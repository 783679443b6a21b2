"""Shared BDD fixtures and step definitions for payments."""

import json

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then, when

from marketplace.ordering.order import Order
from marketplace.payments.gateway import get_gateway
from marketplace.payments.initiation import InitiatePayment
from marketplace.payments.payment import Payment
from marketplace.payments.reconciliation import ReconcilePayment
from marketplace.payments.verification import verify_and_reconcile


@pytest.fixture()
def journey():
    return {"payment_id": None, "order_id": None, "reconciled_again": None}


def _payment(journey) -> Payment:
    return current_domain.repository_for(Payment).get(journey["payment_id"])


def _start(journey, address, buyer_id, quantity, product_id, method):
    journey["payment_id"] = current_domain.process(
        InitiatePayment(
            buyer_id=buyer_id,
            items=json.dumps([{"product_id": product_id, "quantity": quantity}]),
            shipping_address=json.dumps(address),
            payment_method=method,
        ),
        asynchronous=False,
    )


def _confirm(journey, signature=None):
    payment = _payment(journey)
    signature = signature or get_gateway().sign(payment.gateway_order_id, "pay_bdd_001")
    outcome = verify_and_reconcile(payment.id, payment.gateway_order_id, "pay_bdd_001", signature)
    journey["order_id"] = outcome.order_id


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('buyer "{buyer_id}" has started paying for {quantity:d} of "{product_id}" with "{method}"'))
def _(journey, address, buyer_id, quantity, product_id, method):
    _start(journey, address, buyer_id, quantity, product_id, method)


@given("the gateway has confirmed the payment")
def _(journey):
    _confirm(journey)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('buyer "{buyer_id}" pays for {quantity:d} of "{product_id}" with "{method}"'))
def _(journey, address, buyer_id, quantity, product_id, method):
    _start(journey, address, buyer_id, quantity, product_id, method)
    journey["order_id"] = str(_payment(journey).order_id)


@when("the gateway confirms the payment")
def _(journey):
    _confirm(journey)


@when("the gateway confirmation carries a forged signature")
def _(journey):
    _confirm(journey, signature="forged")


@when("the payment is reconciled again")
def _(journey):
    journey["reconciled_again"] = current_domain.process(
        ReconcilePayment(payment_id=journey["payment_id"]), asynchronous=False
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the payment's order is \"{status}\""))
def _(journey, status):
    order = current_domain.repository_for(Order).get(journey["order_id"])
    assert order.status == status
    assert str(order.payment_id) == str(journey["payment_id"])


@then("the same order is returned")
def _(journey):
    assert journey["reconciled_again"] == journey["order_id"]


@then(parsers.cfparse('the payment is "{status}"'))
def _(journey, status):
    assert _payment(journey).status == status


@then("no order exists")
def _():
    assert current_domain.repository_for(Order)._dao.query.all().items == []
