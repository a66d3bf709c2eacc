import os
import uuid
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Pas de Redis pendant les tests (à positionner avant l'import de l'app)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from storefront.asgi import app as fastapi_app
from storefront.utils.security import require_user
from storefront.cart import repository as cart_repository
from storefront.catalog import repository as catalog_repository
from storefront.orders import repository as orders_repository
from storefront.payments import stripe_client
from storefront.checkout.errors import PersistenceError

TEST_USER: Dict[str, Any] = {"id": "user-1", "email": "buyer@example.com", "token": "fake-token"}

SHIPPING = {
    "fullName": "Ada Lovelace",
    "email": "ada@example.com",
    "address": "12 rue des Lilas",
    "city": "Lyon",
    "zipCode": "69001",
}

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("integration/"):
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
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun test ne doit joindre un vrai Supabase
@pytest.fixture(autouse=True)
def _no_real_supabase(monkeypatch):
    monkeypatch.setattr("storefront.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("storefront.infra.supabase_client.get_service_supabase", lambda: MagicMock())


class FakeStore:
    """
    Tables Supabase en mémoire (products, cart, orders, order_items) exposées
    avec les signatures des repositories. fail_once permet d'injecter une
    PersistenceError sur un appel donné.
    """

    def __init__(self):
        self.products: Dict[str, Dict[str, Any]] = {}
        self.cart: List[Dict[str, Any]] = []
        self.orders: List[Dict[str, Any]] = []
        self.order_items: List[Dict[str, Any]] = []
        self.fail_once: set = set()

    def _maybe_fail(self, name: str):
        if name in self.fail_once:
            self.fail_once.discard(name)
            raise PersistenceError(f"panne simulée: {name}")

    # --- données de test ---
    def add_product(self, product_id: str, name: str, price: Any, stock: int):
        self.products[product_id] = {"id": product_id, "name": name, "price": price, "stock": stock}

    def put_in_cart(self, user_id: str, product_id: str, quantity: int):
        self.cart.append({"id": str(uuid.uuid4()), "user_id": user_id, "product_id": product_id, "quantity": quantity})

    def cart_of(self, user_id: str) -> List[Dict[str, Any]]:
        return [c for c in self.cart if c["user_id"] == user_id]

    def items_of(self, order_id: str) -> List[Dict[str, Any]]:
        return [i for i in self.order_items if i["order_id"] == order_id]

    # --- catalog ---
    def get_product(self, product_id):
        p = self.products.get(str(product_id))
        return dict(p) if p else None

    # --- cart ---
    def list_cart_lines(self, user_id):
        self._maybe_fail("list_cart_lines")
        rows = []
        for c in self.cart_of(user_id):
            product = self.products.get(c["product_id"])
            rows.append({
                "id": c["id"],
                "product_id": c["product_id"],
                "quantity": c["quantity"],
                "products": dict(product) if product else None,
            })
        return rows

    def get_cart_line(self, user_id, product_id):
        for c in self.cart_of(user_id):
            if c["product_id"] == product_id:
                return dict(c)
        return None

    def insert_cart_line(self, user_id, product_id, quantity):
        if self.get_cart_line(user_id, product_id):
            raise Exception('duplicate key value violates unique constraint (23505)')
        self.put_in_cart(user_id, product_id, quantity)
        return self.get_cart_line(user_id, product_id)

    def update_cart_quantity(self, user_id, product_id, quantity):
        for c in self.cart_of(user_id):
            if c["product_id"] == product_id:
                c["quantity"] = quantity
                return dict(c)
        return None

    def delete_cart_lines(self, user_id, product_ids):
        self._maybe_fail("delete_cart_lines")
        ids = {str(p) for p in product_ids}
        before = len(self.cart)
        self.cart = [c for c in self.cart if not (c["user_id"] == user_id and c["product_id"] in ids)]
        return before - len(self.cart)

    # --- orders ---
    def find_order_by_payment_id(self, payment_id):
        for o in self.orders:
            if o["payment_id"] == payment_id:
                return dict(o)
        return None

    def insert_order(self, *, user_id, payment_id, total_amount, shipping_address):
        self._maybe_fail("insert_order")
        if self.find_order_by_payment_id(payment_id):
            raise orders_repository.DuplicateOrder(payment_id)
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "payment_id": payment_id,
            "total_amount": total_amount,
            "payment_status": "completed",
            "shipping_address": shipping_address,
            "fulfillment_state": "order_inserted",
            "order_date": "2026-10-19T10:00:00+00:00",
        }
        self.orders.append(row)
        return dict(row)

    def insert_order_items(self, order_id, items):
        self._maybe_fail("insert_order_items")
        # unique (order_id, product_id), INSERT multi-lignes tout ou rien
        existing = {i["product_id"] for i in self.items_of(order_id)}
        if any(item["product_id"] in existing for item in items):
            raise orders_repository.DuplicateOrderItems(order_id)
        for item in items:
            self.order_items.append(dict(item, order_id=order_id))
        return len(items)

    def list_order_items(self, order_id):
        return [
            {k: i[k] for k in ("product_id", "product_name", "product_price", "quantity")}
            for i in self.items_of(order_id)
        ]

    def set_fulfillment_state(self, order_id, state):
        self._maybe_fail(f"set_fulfillment_state:{state}")
        for o in self.orders:
            if o["id"] == order_id:
                o["fulfillment_state"] = state

    def commit_order_atomic(self, *, user_id, payment_id, total_amount, shipping_address, items):
        self._maybe_fail("commit_order_atomic")
        existing = self.find_order_by_payment_id(payment_id)
        if existing:
            return {"order_id": existing["id"], "created": False}
        order = self.insert_order(
            user_id=user_id, payment_id=payment_id, total_amount=total_amount, shipping_address=shipping_address,
        )
        self.insert_order_items(order["id"], items)
        self.delete_cart_lines(user_id, [i["product_id"] for i in items])
        self.set_fulfillment_state(order["id"], "cart_cleared")
        return {"order_id": order["id"], "created": True}

    def _with_items(self, order):
        return dict(order, order_items=self.list_order_items(order["id"]))

    def list_user_orders(self, user_id, limit=50):
        return [self._with_items(o) for o in self.orders if o["user_id"] == user_id][:limit]

    def get_user_order(self, user_id, order_id):
        for o in self.orders:
            if o["user_id"] == user_id and o["id"] == order_id:
                return self._with_items(o)
        return None


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    s = FakeStore()
    monkeypatch.setattr(catalog_repository, "get_product", s.get_product)
    for name in ("list_cart_lines", "get_cart_line", "insert_cart_line", "update_cart_quantity", "delete_cart_lines"):
        monkeypatch.setattr(cart_repository, name, getattr(s, name))
    for name in (
        "find_order_by_payment_id", "insert_order", "insert_order_items", "list_order_items",
        "set_fulfillment_state", "commit_order_atomic", "list_user_orders", "get_user_order",
    ):
        monkeypatch.setattr(orders_repository, name, getattr(s, name))
    return s

@pytest.fixture
def shop(store) -> FakeStore:
    """Scénario de référence: A à 10.00 (qty 2), B à 5.00 (qty 1), stocks suffisants."""
    store.add_product("prod-a", "Produit A", "10.00", 10)
    store.add_product("prod-b", "Produit B", 5.0, 3)
    store.put_in_cart(TEST_USER["id"], "prod-a", 2)
    store.put_in_cart(TEST_USER["id"], "prod-b", 1)
    return store


class FakeStripe:
    """Sessions Checkout en mémoire, montant calculé depuis les line_items reçus."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.create_calls: List[Dict[str, Any]] = []
        self.customers: Dict[str, str] = {}

    def find_customer_id(self, email: Optional[str]):
        return self.customers.get(email or "")

    def create_session(self, **params):
        self.create_calls.append(params)
        session_id = f"cs_test_{len(self.sessions) + 1}"
        amount = sum(li["price_data"]["unit_amount"] * li["quantity"] for li in params["line_items"])
        self.sessions[session_id] = {
            "id": session_id,
            "url": f"https://checkout.stripe.test/{session_id}",
            "payment_status": "unpaid",
            "amount_total": amount,
            "metadata": dict(params["metadata"]),
        }
        return dict(self.sessions[session_id])

    def get_session(self, session_id):
        return dict(self.sessions[session_id])

    def pay(self, session_id):
        self.sessions[session_id]["payment_status"] = "paid"


@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fs = FakeStripe()
    monkeypatch.setattr(stripe_client, "create_session", fs.create_session)
    monkeypatch.setattr(stripe_client, "get_session", fs.get_session)
    monkeypatch.setattr(stripe_client, "find_customer_id", fs.find_customer_id)
    return fs

@pytest.fixture(params=[True, False], ids=["atomic", "sequential"])
def commit_mode(request, monkeypatch):
    """Exécute le test avec le commit RPC transactionnel puis avec le commit séquentiel."""
    monkeypatch.setattr("storefront.orders.service.ORDERS_ATOMIC_COMMIT", request.param)
    return request.param

@pytest.fixture
def user() -> Dict[str, Any]:
    return dict(TEST_USER)

@pytest.fixture
def shipping() -> Dict[str, Any]:
    return dict(SHIPPING)
