"""Shared BDD fixtures and step definitions for order placement."""

import json

import pytest
from protean import current_domain
from protean.exceptions import ProteanException
from pytest_bdd import given, parsers, then, when

from marketplace.ordering.lifecycle import CancelOrder
from marketplace.ordering.order import Order
from marketplace.ordering.placement import PlaceOrder


@pytest.fixture()
def outcome():
    """Container for the order under test and any error raised on the way."""
    return {"order_id": None, "error": None}


def _place(address, buyer_id, quantity, product_id, method):
    return current_domain.process(
        PlaceOrder(
            buyer_id=buyer_id,
            items=json.dumps([{"product_id": product_id, "quantity": quantity}]),
            shipping_address=json.dumps(address),
            payment_method=method,
        ),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('buyer "{buyer_id}" has ordered {quantity:d} of "{product_id}" paying "{method}"'))
def _(outcome, address, buyer_id, quantity, product_id, method):
    outcome["order_id"] = _place(address, buyer_id, quantity, product_id, method)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('buyer "{buyer_id}" orders {quantity:d} of "{product_id}" paying "{method}"'))
def _(outcome, address, buyer_id, quantity, product_id, method):
    try:
        outcome["order_id"] = _place(address, buyer_id, quantity, product_id, method)
    except ProteanException as exc:
        outcome["error"] = exc


@when(parsers.cfparse('buyer "{buyer_id}" cancels the order'))
def _(outcome, buyer_id):
    try:
        current_domain.process(CancelOrder(order_id=outcome["order_id"], buyer_id=buyer_id), asynchronous=False)
    except ProteanException as exc:
        outcome["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}" with total {total:g}'))
def _(outcome, status, total):
    assert outcome["error"] is None
    order = current_domain.repository_for(Order).get(outcome["order_id"])
    assert order.status == status
    assert order.total_amount == total


@then(parsers.cfparse('the order fails with "{error_name}"'))
def _(outcome, error_name):
    assert outcome["error"] is not None
    assert outcome["error"].__class__.__name__ == error_name
