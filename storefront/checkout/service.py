"""
Cas d'usage 'checkout': valorise le panier serveur puis crée la session Stripe.
Le corps de requête client ne fournit que l'adresse de livraison: les lignes et
les prix sont toujours relus depuis la base.
"""
import logging
from typing import Any, Dict, List, Optional

from storefront.config import CURRENCY, SITE_URL, CORS_ORIGINS, CHECKOUT_SUCCESS_PATH, CHECKOUT_CANCEL_PATH
from storefront.payments import stripe_client
from . import pricing
from .errors import PaymentSessionFailed, Unauthorized
from .models import PricedCart, SessionMetadata, ShippingInfo

logger = logging.getLogger(__name__)

def to_line_items(priced: PricedCart, currency: str = CURRENCY) -> List[Dict[str, Any]]:
    """Construit les line_items Stripe (price_data) à partir du panier valorisé."""
    return [
        {
            "quantity": line.quantity,
            "price_data": {
                "currency": currency,
                "unit_amount": line.unit_amount,
                "product_data": {"name": line.name},
            },
        }
        for line in priced.lines
    ]

def _trusted_origin(origin: Optional[str]) -> Optional[str]:
    # Seules les origines déclarées explicitement (hors "*") servent de base de redirection
    candidate = (origin or "").strip().rstrip("/")
    allowed = {o.rstrip("/") for o in CORS_ORIGINS if o != "*"}
    return candidate if candidate and candidate in allowed else None

def checkout_urls(origin: Optional[str]) -> Dict[str, str]:
    trusted = _trusted_origin(origin)
    base = trusted or SITE_URL
    if origin and not trusted:
        logger.info("checkout.urls origin not allowed, using SITE_URL origin=%s", origin)
    return {
        "success_url": f"{base}{CHECKOUT_SUCCESS_PATH}",
        "cancel_url": f"{base}{CHECKOUT_CANCEL_PATH}",
    }

def initiate_checkout(*, user: Dict[str, Any], shipping_info: Any, origin: Optional[str] = None) -> Dict[str, Any]:
    """
    Prépare la session Stripe pour l'utilisateur authentifié.
    Étapes:
      1) valide l'adresse (ValidationError)
      2) relit et valorise le panier (EmptyCart, InsufficientStock)
      3) crée la session avec montant autoritatif + metadata {user_id, shipping_info}
    Retour: {"id", "url", "amount_total", "currency"}
    Erreurs: Unauthorized, PaymentSessionFailed (pas de retry).
    """
    user_id = str((user or {}).get("id") or "")
    if not user_id:
        raise Unauthorized("Utilisateur non authentifié")

    shipping = ShippingInfo.parse(shipping_info)
    priced = pricing.validate_user_cart(user_id)
    metadata = SessionMetadata(user_id=user_id, shipping_info=shipping).to_stripe()

    email = (user or {}).get("email")
    customer_id = stripe_client.find_customer_id(email)
    session = stripe_client.create_session(
        line_items=to_line_items(priced),
        metadata=metadata,
        customer_id=customer_id,
        customer_email=None if customer_id else email,
        **checkout_urls(origin),
    )
    if not session.get("url"):
        raise PaymentSessionFailed("Session Stripe sans URL de paiement")
    logger.info(
        "checkout.session created id=%s user_id=%s amount=%s lines=%s",
        session.get("id"), user_id, priced.amount, len(priced.lines),
    )
    return {
        "id": session.get("id"),
        "url": session.get("url"),
        "amount_total": priced.amount,
        "currency": CURRENCY,
    }
