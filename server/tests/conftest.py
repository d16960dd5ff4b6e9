"""
Shared test configuration and fixtures for the payhub test suite.
"""

from decimal import Decimal
from typing import Callable, Dict
from unittest.mock import Mock

import httpx
import pytest

from payhub.core.config import clear_settings_cache
from payhub.integrations.payment_gateways.base import (
    AdditionalPaymentData,
    Order,
    OrderItem,
    Payer,
)
from payhub.integrations.payment_gateways.mercadopago_adapter import MercadoPagoAdapter
from payhub.integrations.payment_gateways.simulated_store import InMemorySimulatedPaymentStore
from payhub.integrations.payment_gateways.wompi_adapter import WompiAdapter
from payhub.services.payment_service import PaymentService

from gateway_doubles import CLIENT_URL, NOTIFICATION_URL, WOMPI_URL, RecordingTransport


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep real gateway credentials in the environment out of the tests."""
    for name in (
        "MERCADOPAGO_ACCESS_TOKEN",
        "WOMPI_PUBLIC_KEY",
        "WOMPI_PRIVATE_KEY",
        "PAYMENTS_SIMULATED",
        "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def sample_order() -> Order:
    return Order(
        id=42,
        tracking_number="MDS-0042",
        total=Decimal("45000.00"),
        items=[
            OrderItem(id=1, name="Cazuela de mariscos", description="Para dos", quantity=1, unit_price=Decimal("38000")),
            OrderItem(id=7, name="Limonada de coco", quantity=1, unit_price=Decimal("7000")),
        ],
        customer_name="Ana Torres",
        customer_email="ana@example.com",
        customer_phone="3001234567",
    )


@pytest.fixture
def sample_payer() -> Payer:
    return Payer(name="Ana María Torres", email="ana.maria@example.com")


@pytest.fixture
def pse_data() -> AdditionalPaymentData:
    return AdditionalPaymentData(
        user_type=0,
        document_type="CC",
        document_number="1020304050",
        bank_code="1",
    )


@pytest.fixture
def store() -> InMemorySimulatedPaymentStore:
    return InMemorySimulatedPaymentStore()


@pytest.fixture
def simulated_service(store) -> PaymentService:
    mercadopago = MercadoPagoAdapter(
        access_token=None,
        client_url=CLIENT_URL,
        notification_url=NOTIFICATION_URL,
        store=store,
        simulated=True,
    )
    wompi = WompiAdapter(
        public_key=None,
        private_key=None,
        base_url=WOMPI_URL,
        client_url=CLIENT_URL,
        store=store,
        simulated=True,
        merchant_name="Mar de Sabores",
    )
    return PaymentService(mercadopago=mercadopago, wompi=wompi, store=store, simulated=True)


@pytest.fixture
def mercadopago_sdk() -> Mock:
    """SDK double answering like the mercadopago package: {"status", "response"}."""
    return Mock()


@pytest.fixture
def make_wompi_adapter(store):
    def _make(routes: Dict[str, Callable[[httpx.Request], httpx.Response]], **overrides):
        transport = RecordingTransport(routes)
        client = httpx.AsyncClient(transport=httpx.MockTransport(transport), base_url=WOMPI_URL)
        config = {
            "public_key": "pub_test_abc",
            "private_key": "prv_test_xyz",
            "base_url": WOMPI_URL,
            "client_url": CLIENT_URL,
            "store": store,
            "merchant_name": "Mar de Sabores",
            "client": client,
        }
        config.update(overrides)
        return WompiAdapter(**config), transport

    return _make
