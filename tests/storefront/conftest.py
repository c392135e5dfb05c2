import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture
from storefront.carrier import reset_carrier, set_carrier
from storefront.carrier.fake_adapter import FakeCarrier


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()

    reset_carrier()


@pytest.fixture()
def fake_carrier():
    carrier = FakeCarrier()
    set_carrier(carrier)
    return carrier
