import os

# Pas de Redis pendant les tests: le rate limiting est désactivé dans le lifespan
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from datetime import datetime, timezone
from typing import Generator, Dict, Any, List, Optional
from fastapi.testclient import TestClient

from rental_checkout.app import app as fastapi_app
from rental_checkout.utils.security import require_user
from rental_checkout.checkout import clients, reconciliation, service
from rental_checkout.checkout.errors import BusinessError
from rental_checkout.checkout.models import CartItem, CheckoutSession

D = datetime(2026, 11, 20, 9, 0, tzinfo=timezone.utc)

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    fake_user: Dict[str, Any] = {"id": "test-user", "email": "test@example.com", "token": "fake-token"}
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# État en mémoire du service (sessions payées, appels en cours, pollers)
@pytest.fixture(autouse=True)
def _reset_checkout_state():
    service._in_flight.clear()
    service._paid_sessions.clear()
    reconciliation.registry._reconcilers.clear()
    yield
    service._in_flight.clear()
    service._paid_sessions.clear()
    reconciliation.registry._reconcilers.clear()

@pytest.fixture(autouse=True)
def session_store(monkeypatch) -> Dict[str, Dict[str, Any]]:
    """Remplace la table Supabase des sessions par un dictionnaire {session_key: payload}."""
    store: Dict[str, Dict[str, Any]] = {}

    def _load(session_key):
        return store.get(session_key)

    def _save(session_key, record):
        store[session_key] = record
        return True

    def _delete(session_key):
        store.pop(session_key, None)
        return True

    monkeypatch.setattr("rental_checkout.checkout.repository.load_record", _load)
    monkeypatch.setattr("rental_checkout.checkout.repository.save_record", _save)
    monkeypatch.setattr("rental_checkout.checkout.repository.delete_record", _delete)
    return store


class FakeCollaborators:
    """Doubles des services inventaire/profil/réservation/paiement (mêmes signatures que clients.*)."""

    def __init__(self):
        self.services: Dict[str, Dict[str, Any]] = {}
        self.inventory_error: Optional[Exception] = None
        self.profile: Dict[str, Any] = {"address": "12 rue des Lilas, Lyon"}
        self.intent_calls: List[Dict[str, Any]] = []
        self.fail_intent_at: Optional[int] = None
        self.intent_error: Exception = BusinessError("Stock insuffisant pour cette date")
        self.server_totals: Dict[str, float] = {}
        self.cancelled: List[str] = []
        self.cart_payments: List[Any] = []
        self.statuses: List[Any] = []
        self.status_calls = 0
        self.verify_calls: List[Any] = []
        self.verify_status = "completed"
        self.receipt_result: Dict[str, Any] = {"status": "completed", "flagged": False, "message": ""}
        self.receipt_calls: List[Dict[str, Any]] = []

    async def fetch_service(self, service_id, token=None):
        if self.inventory_error is not None:
            raise self.inventory_error
        return self.services.get(service_id, {"isAvailable": True, "serviceType": "equipment", "quantity": 1000})

    async def fetch_profile(self, token=None):
        return self.profile

    async def create_intent(self, **kwargs):
        self.intent_calls.append(kwargs)
        n = len(self.intent_calls)
        if self.fail_intent_at == n:
            raise self.intent_error
        total = self.server_totals.get(kwargs["service_id"], kwargs["daily_rate"] * kwargs["duration"] * kwargs["quantity"])
        return {
            "success": True,
            "bookingIntent": {"id": f"intent-{n}", "totalPrice": total},
            "payment": {
                "qrCode": f"qr-payload-{n}",
                "instructions": "Scannez le QR code",
                "referenceNumber": f"REF-{n}",
                "transactionId": f"TX-{n}",
            },
        }

    async def cancel_intent(self, intent_id, token=None, reason=""):
        self.cancelled.append(intent_id)
        return {"success": True}

    async def create_cart_payment(self, intent_ids, amount, token=None):
        self.cart_payments.append((list(intent_ids), amount))
        return {
            "success": True,
            "qrCode": "qr-payload-cart",
            "instructions": "Scannez le QR code pour régler le panier",
            "referenceNumber": "CART-REF",
            "transactionId": "CART-TX",
        }

    async def get_payment_status(self, reference_number, token=None):
        self.status_calls += 1
        value = self.statuses.pop(0) if self.statuses else "unpaid"
        if isinstance(value, Exception):
            raise value
        return value

    async def verify_payment(self, reference_number, amount, token=None):
        self.verify_calls.append((reference_number, amount))
        return self.verify_status

    async def verify_receipt(self, reference_number, amount, **kwargs):
        self.receipt_calls.append({"reference": reference_number, "amount": amount, **kwargs})
        return dict(self.receipt_result)


@pytest.fixture
def collaborators(monkeypatch) -> FakeCollaborators:
    fake = FakeCollaborators()
    for name in (
        "fetch_service",
        "fetch_profile",
        "create_intent",
        "cancel_intent",
        "create_cart_payment",
        "get_payment_status",
        "verify_payment",
        "verify_receipt",
    ):
        monkeypatch.setattr(clients, name, getattr(fake, name))
    return fake

@pytest.fixture
def fast_polling(monkeypatch):
    monkeypatch.setattr(reconciliation, "PAYMENT_POLL_INTERVAL_SECONDS", 0.01)
    monkeypatch.setattr(reconciliation, "PAYMENT_POLL_TIMEOUT_SECONDS", 5.0)
    monkeypatch.setattr(reconciliation, "PAYMENT_PAID_GRACE_SECONDS", 0.0)

@pytest.fixture
def delivery() -> datetime:
    return D

@pytest.fixture
def make_session():
    def _make(*items: CartItem, session_key: str = "test-user", **kwargs) -> CheckoutSession:
        if not items:
            items = (
                CartItem(id="tent", name="Tente 6x3", price=120.0, quantity=1, service_type="equipment"),
                CartItem(id="chairs", name="Chaises pliantes", price=2.5, quantity=40, service_type="equipment"),
            )
        return CheckoutSession(session_key=session_key, items=list(items), **kwargs)
    return _make
