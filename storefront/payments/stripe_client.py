"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
Toute erreur SDK/réseau est traduite dans la taxonomie du checkout;
aucun retry automatique (max_network_retries = 0).
"""
import logging
from typing import Any, Dict, List, Optional

import stripe

from storefront.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, STRIPE_TIMEOUT_SECONDS
from storefront.checkout.errors import PaymentSessionFailed, ValidationError

logger = logging.getLogger(__name__)

_http_client_ready = False

# module storefront.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY.
    - Timeout HTTP borné (STRIPE_TIMEOUT_SECONDS) et pas de retry réseau.
    - Sans clé: PaymentSessionFailed (le checkout est indisponible).
    """
    global _http_client_ready
    if not STRIPE_SECRET_KEY:
        raise PaymentSessionFailed("STRIPE_SECRET_KEY manquant")
    stripe.api_key = STRIPE_SECRET_KEY
    stripe.max_network_retries = 0
    if not _http_client_ready:
        stripe.default_http_client = stripe.RequestsClient(timeout=STRIPE_TIMEOUT_SECONDS)
        _http_client_ready = True
    return stripe

def _as_dict(obj: Any) -> Dict[str, Any]:
    # Les objets Stripe exposent to_dict(); les tests passent des dicts simples
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)

def find_customer_id(email: Optional[str]) -> Optional[str]:
    """
    Retourne l'id du client Stripe existant pour cet email, sinon None.
    Best-effort: un échec de recherche ne bloque pas le checkout.
    """
    if not email:
        return None
    require_stripe()
    try:
        customers = stripe.Customer.list(email=email, limit=1)
        data = _as_dict(customers).get("data") or []
        return _as_dict(data[0]).get("id") if data else None
    except stripe.StripeError as e:
        logger.warning("stripe.Customer.list failed email=%s err=%s", email, e)
        return None

def create_session(
    *,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
    customer_id: Optional[str] = None,
    customer_email: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout (mode "payment").
    - line_items: lignes price_data (unit_amount en centimes, issu de la base)
    - metadata: {"user_id": "...", "shipping_info": "<json>"}
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    Erreurs: PaymentSessionFailed (erreur Stripe, timeout, réseau).
    """
    require_stripe()
    params: Dict[str, Any] = {
        "line_items": line_items,
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
    }
    if customer_id:
        params["customer"] = customer_id
    elif customer_email:
        params["customer_email"] = customer_email
    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        logger.exception("stripe.checkout.Session.create failed")
        raise PaymentSessionFailed(f"Création de la session Stripe impossible: {e.user_message or e}") from e
    return _as_dict(session)

def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict incluant "id", "payment_status", "amount_total", "metadata".
    """
    if not session_id or not str(session_id).startswith("cs_"):
        raise ValidationError("sessionId invalide")
    require_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.InvalidRequestError as e:
        raise ValidationError("Session de paiement introuvable") from e
    except stripe.StripeError as e:
        logger.exception("stripe.checkout.Session.retrieve failed session_id=%s", session_id)
        raise PaymentSessionFailed("Lecture de la session Stripe impossible") from e
    return _as_dict(session)

def parse_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Valide et parse un événement Stripe signé (webhook).
    - payload: body brut, sig_header: en-tête Stripe-Signature
    Lève ValueError / stripe.SignatureVerificationError si invalide.
    """
    if not STRIPE_WEBHOOK_SECRET:
        raise ValueError("STRIPE_WEBHOOK_SECRET manquant")
    event = stripe.Webhook.construct_event(payload, sig_header or "", STRIPE_WEBHOOK_SECRET)
    return _as_dict(event)
