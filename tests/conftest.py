import pytest
from fastapi.testclient import TestClient

from config import FacilitatorConfig, Settings
from database import build_engine, build_session_factory, init_db
from main import create_app
from services.invoice_store import InMemoryInvoiceStore, SqlInvoiceStore

from fakes import FakeFacilitator


@pytest.fixture()
def settings():
    return Settings(
        database_url="sqlite://",
        public_base_url="http://testserver",
        facilitator=FacilitatorConfig(
            url="https://facilitator.test",
            secret_key="test-secret",
            server_wallet_address="0x00000000000000000000000000000000000000F1",
        ),
    )


@pytest.fixture()
def sql_store():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield SqlInvoiceStore(build_session_factory(engine))
    engine.dispose()


@pytest.fixture()
def memory_store():
    return InMemoryInvoiceStore()


@pytest.fixture()
def facilitator():
    return FakeFacilitator()


@pytest.fixture()
def client(settings, sql_store, facilitator):
    app = create_app(settings, store=sql_store, facilitator=facilitator)
    return TestClient(app)


def make_fields(invoice_id="A1B2C3D4E5", amount=1000000, merchant="0xM", currency="MNEE"):
    return {
        "id": invoice_id,
        "amount": amount,
        "currency": currency,
        "merchant_address": merchant,
        "payment_url": f"http://testserver/pay/{invoice_id}",
    }


@pytest.fixture()
def invoice_fields():
    return make_fields
