import pytest
from datetime import datetime

from tests.fakes import FakeApiClient
from wellness import create_app
from wellness.schemas import CardPayment, EmiPayment, NetBankingPayment, UpiPayment
from wellness.services.store import PaymentStore


@pytest.fixture
def fake_api():
    return FakeApiClient()


@pytest.fixture
def store():
    return PaymentStore()


@pytest.fixture
def app(fake_api):
    """Create application instance for testing with the backend faked out."""
    app = create_app('config.TestConfig')

    def factory(config, token):
        fake_api.token = token
        return fake_api

    app.extensions['api_client_factory'] = factory
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {'Authorization': 'Bearer test-token'}


@pytest.fixture
def card_method():
    next_year = datetime.now().year + 1
    return CardPayment(
        card_number='4111 1111 1111 1111',
        valid_through=f'{next_year}-12',
        cvv='123',
        card_name='Asha Rao',
    )


@pytest.fixture
def netbanking_method():
    return NetBankingPayment(bank='HDFC Bank', username='asha', password='secret123')


@pytest.fixture
def upi_method():
    return UpiPayment(upi_id='9876543210@paytm')


@pytest.fixture
def emi_method():
    return EmiPayment(bank='HDFC Bank', tenure=12)
