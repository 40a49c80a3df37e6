import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the config environment before the domain is initialized by the
    session-scoped fixture below.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Fixture to automatically cleanup infrastructure after every test"""
    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()


# ---------------------------------------------------------------------------
# Reconciliation wiring with in-memory adapters
# ---------------------------------------------------------------------------
@pytest.fixture()
def gateway():
    from payments.gateway.fake_adapter import FakeGateway

    return FakeGateway()


@pytest.fixture()
def carrier():
    from fulfillment.carrier.fake_adapter import FakeCarrier

    return FakeCarrier()


@pytest.fixture()
def locks():
    from ordering.order.locks import OrderLocks

    return OrderLocks()


@pytest.fixture()
def shipment_trigger(carrier, locks):
    from fulfillment.shipment.trigger import ShipmentTrigger

    return ShipmentTrigger(carrier, locks)


@pytest.fixture()
def engine(gateway, shipment_trigger, locks):
    from ordering.reconciliation.engine import ReconciliationEngine

    return ReconciliationEngine(gateway, shipment_trigger, locks)


@pytest.fixture()
def customer_id():
    from ordering.customer.customer import RegisterCustomer
    from protean import current_domain

    return current_domain.process(
        RegisterCustomer(email="jane@example.com", name="Jane Doe"),
        asynchronous=False,
    )
