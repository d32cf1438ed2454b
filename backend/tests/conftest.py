"""
Shared fixtures: a fresh SQLite file per test, the in-memory gateway, and a
TestClient wired to both.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from checkout_backend.config import settings
from checkout_backend.db.init_db import initialize_database, create_session_factory, get_db
from checkout_backend.db.models import OrderModel, PromoCodeModel
from checkout_backend.main import app
from checkout_backend.mocks.payment_gateway import MockMidtransGateway
from checkout_backend.services.payment_gateway import get_payment_gateway

SERVER_KEY = "SB-Mid-server-test-key"


@pytest.fixture(autouse=True)
def checkout_settings(monkeypatch):
    """Pin the settings the checkout flow reads."""
    monkeypatch.setattr(settings, "midtrans_server_key", SERVER_KEY)
    monkeypatch.setattr(settings, "fetch_gopay_qr_string", False)
    monkeypatch.setattr(settings, "verify_promo_on_charge", True)
    return settings


@pytest.fixture
def database_path(tmp_path):
    """Initialized database with the demo promo codes (SAVE10, HEMAT5K)."""
    path = tmp_path / "checkout.db"
    initialize_database(str(path), seed_demo_data=True)
    return str(path)


@pytest.fixture
def session_factory(database_path):
    return create_session_factory(database_path)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return MockMidtransGateway(server_key=SERVER_KEY)


@pytest.fixture
def add_promo(session_factory):
    """Insert a promo code row."""
    async def _add(**fields):
        async with session_factory() as session:
            session.add(PromoCodeModel(**fields))
            await session.commit()
    return _add


@pytest.fixture
def read_order(database_path):
    """Read an order synchronously (for TestClient tests)."""
    engine = create_engine(f"sqlite:///{database_path}")

    def _read(order_id):
        with Session(engine) as session:
            return session.scalars(
                select(OrderModel).where(OrderModel.order_id == order_id)
            ).first()

    yield _read
    engine.dispose()


@pytest.fixture
def charge_body():
    """
    Build a /charge-transaction body.

    Defaults: subtotal 100000, SAVE10 discount 10000, shipping 10000, no tax,
    grossAmount 100000, paid by BCA virtual account.
    """
    def _body(**overrides):
        body = {
            "userId": "user_demo_001",
            "orderId": "ORDER-1001",
            "grossAmount": 100000,
            "paymentType": "bca_va",
            "itemDetails": [
                {"id": "SKU-1", "price": 100000, "quantity": 1, "name": "Kemeja Batik"},
                {"id": "SHIPPING", "price": 10000, "quantity": 1, "name": "Ongkir"},
            ],
            "customerDetails": {"first_name": "Sari", "email": "sari@example.com"},
            "productSubtotal": 100000,
            "shippingCost": 10000,
            "taxAmount": 0,
            "discountApplied": 10000,
            "appliedPromoCode": "SAVE10",
            "fullAddressDetails": {"city": "Bandung", "postal_code": "40115"},
            "itemsFromApp": [{"productId": "SKU-1", "quantity": 1}],
            "deliveryDate": "2026-10-25T10:00:00Z",
        }
        body.update(overrides)
        return body
    return _body


@pytest.fixture
def client(session_factory, gateway):
    """TestClient without lifespan; database and gateway are overridden."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
