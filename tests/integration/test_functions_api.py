import pytest

from storefront.config import SITE_URL
from storefront.utils.security import require_user

INTENT_URL = "/functions/v1/create-payment-intent"
ORDER_URL = "/functions/v1/create-order"


@pytest.mark.parametrize("url", [INTENT_URL, ORDER_URL])
def test_preflight_returns_cors_headers(client, url):
    r = client.options(url)
    assert r.status_code == 204
    assert r.headers["access-control-allow-origin"] == "*"
    assert "authorization" in r.headers["access-control-allow-headers"]


def test_create_payment_intent_returns_checkout_url(client, shop, fake_stripe, shipping):
    # Les prix fournis par le client sont ignorés
    body = {"shippingInfo": shipping, "cartItems": [{"id": "prod-a", "price": 0.01, "quantity": 2}]}
    r = client.post(INTENT_URL, json=body, headers={"Origin": "https://shop.example.com"})

    assert r.status_code == 200
    data = r.json()
    assert data["id"] == "cs_test_1"
    assert data["url"] == "https://checkout.stripe.test/cs_test_1"
    assert fake_stripe.sessions["cs_test_1"]["amount_total"] == 2500
    assert r.headers["cache-control"] == "no-store"
    # Origin absente de CORS_ORIGINS: redirections vers SITE_URL
    assert fake_stripe.create_calls[0]["success_url"].startswith(SITE_URL + "/")


def test_create_payment_intent_empty_cart(client, store, fake_stripe, shipping):
    r = client.post(INTENT_URL, json={"shippingInfo": shipping})
    assert r.status_code == 400
    assert r.json() == {"error": "Panier vide", "code": "EmptyCart"}
    assert r.headers["access-control-allow-origin"] == "*"


def test_create_payment_intent_insufficient_stock(client, shop, fake_stripe, shipping):
    shop.products["prod-b"]["stock"] = 0
    r = client.post(INTENT_URL, json={"shippingInfo": shipping})
    assert r.status_code == 409
    assert r.json()["code"] == "InsufficientStock"
    assert "Produit B" in r.json()["error"]
    assert fake_stripe.create_calls == []


def test_create_payment_intent_invalid_shipping(client, shop, fake_stripe, shipping):
    r = client.post(INTENT_URL, json={"shippingInfo": dict(shipping, email="nope")})
    assert r.status_code == 422
    assert r.json()["code"] == "ValidationError"


def test_create_payment_intent_invalid_json(client, shop, fake_stripe):
    r = client.post(INTENT_URL, content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 422
    assert r.json()["code"] == "ValidationError"


def test_create_payment_intent_requires_authentication(client, app, shop, fake_stripe, shipping):
    app.dependency_overrides.pop(require_user, None)
    r = client.post(INTENT_URL, json={"shippingInfo": shipping})
    assert r.status_code == 401
    assert r.json()["code"] == "Unauthorized"
    assert fake_stripe.create_calls == []


def test_create_payment_intent_unexpected_error(client, shop, monkeypatch, shipping):
    def _boom(**kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("storefront.functions.views.checkout_service.initiate_checkout", _boom)
    r = client.post(INTENT_URL, json={"shippingInfo": shipping})
    assert r.status_code == 500
    assert r.json() == {"error": "boom"}


def test_checkout_then_create_order_end_to_end(client, shop, fake_stripe, commit_mode, shipping):
    session_id = client.post(INTENT_URL, json={"shippingInfo": shipping}).json()["id"]
    fake_stripe.pay(session_id)

    r = client.post(ORDER_URL, json={"sessionId": session_id})
    assert r.status_code == 200
    first = r.json()
    assert first["success"] is True
    assert first["created"] is True
    assert shop.cart_of("user-1") == []

    replay = client.post(ORDER_URL, json={"sessionId": session_id}).json()
    assert replay == {"success": True, "orderId": first["orderId"], "created": False}
    assert len(shop.orders) == 1


def test_create_order_unpaid_session(client, shop, fake_stripe, shipping):
    session_id = client.post(INTENT_URL, json={"shippingInfo": shipping}).json()["id"]
    r = client.post(ORDER_URL, json={"sessionId": session_id})
    assert r.status_code == 402
    assert r.json()["code"] == "PaymentNotCompleted"
    assert shop.orders == []


def test_create_order_foreign_session(client, shop, fake_stripe, shipping):
    session_id = client.post(INTENT_URL, json={"shippingInfo": shipping}).json()["id"]
    fake_stripe.pay(session_id)
    fake_stripe.sessions[session_id]["metadata"]["user_id"] = "someone-else"

    r = client.post(ORDER_URL, json={"sessionId": session_id})
    assert r.status_code == 403
    assert r.json()["code"] == "Unauthorized"
    assert shop.orders == []


def test_create_order_missing_session_id(client):
    r = client.post(ORDER_URL, json={})
    assert r.status_code == 422
    assert r.json() == {"error": "sessionId manquant", "code": "ValidationError"}


def test_create_order_partial_failure_is_reported_then_completed(client, shop, fake_stripe, monkeypatch, shipping):
    monkeypatch.setattr("storefront.orders.service.ORDERS_ATOMIC_COMMIT", False)
    session_id = client.post(INTENT_URL, json={"shippingInfo": shipping}).json()["id"]
    fake_stripe.pay(session_id)
    shop.fail_once.add("delete_cart_lines")

    r = client.post(ORDER_URL, json={"sessionId": session_id})
    assert r.status_code == 500
    assert r.json()["code"] == "PersistenceError"

    retry = client.post(ORDER_URL, json={"sessionId": session_id})
    assert retry.status_code == 200
    assert retry.json()["created"] is False
    assert shop.cart_of("user-1") == []
