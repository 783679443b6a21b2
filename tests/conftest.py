import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture
from pytest_bdd import given, parsers, then


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    from marketplace.payments.gateway import reset_gateway

    with marketplace_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()

    reset_gateway()


# ---------------------------------------------------------------------------
# Shared data
# ---------------------------------------------------------------------------
@pytest.fixture()
def buyer_id():
    return "buyer-001"


@pytest.fixture()
def seller_id():
    return "seller-001"


@pytest.fixture()
def address():
    return {
        "name": "Asha Rao",
        "phone": "9800000000",
        "street": "12 MG Road",
        "city": "Bengaluru",
        "state": "KA",
        "country": "IN",
        "postal_code": "560001",
    }


@pytest.fixture()
def make_product(seller_id):
    """Put a product on the catalogue and return it freshly loaded."""
    from protean import current_domain

    from marketplace.catalogue.listing import ListProduct
    from marketplace.catalogue.product import Product

    def _make(product_id="prod-001", name="Desk Lamp", price=100.0, quantity=5, seller=None):
        current_domain.process(
            ListProduct(
                product_id=product_id,
                seller_id=seller or seller_id,
                name=name,
                price=price,
                quantity=quantity,
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(Product).get(product_id)

    return _make


@pytest.fixture()
def stock_of():
    from protean import current_domain

    from marketplace.catalogue.product import Product

    def _stock(product_id):
        return current_domain.repository_for(Product).get(product_id).quantity

    return _stock


# ---------------------------------------------------------------------------
# Shared BDD steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{product_id}" priced {price:g} with {quantity:d} in stock'))
def _(make_product, product_id, price, quantity):
    make_product(product_id=product_id, price=price, quantity=quantity)


@then(parsers.cfparse('"{product_id}" has {quantity:d} in stock'))
def _(stock_of, product_id, quantity):
    assert stock_of(product_id) == quantity


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
@pytest.fixture()
def client():
    from fastapi.testclient import TestClient

    from marketplace.app import create_app

    return TestClient(create_app(init_domain=False))


@pytest.fixture()
def as_user():
    def _headers(user_id):
        return {"X-User-Id": user_id}

    return _headers
