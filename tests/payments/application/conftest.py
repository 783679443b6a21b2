import json

import pytest
from protean import current_domain

from marketplace.payments.initiation import InitiatePayment
from marketplace.payments.payment import Payment


@pytest.fixture()
def initiate(buyer_id, address):
    """Start a payment and return it freshly loaded."""

    def _initiate(items=None, method="UPI", buyer=None):
        payment_id = current_domain.process(
            InitiatePayment(
                buyer_id=buyer or buyer_id,
                items=json.dumps(items) if items is not None else None,
                shipping_address=json.dumps(address),
                payment_method=method,
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(Payment).get(payment_id)

    return _initiate
