# module storefront.functions.views

"""Points d'entrée 'functions' invoqués par le front (supabase.functions.invoke).
- POST /functions/v1/create-payment-intent: {shippingInfo} -> {url, id}
- POST /functions/v1/create-order: {sessionId} -> {success, orderId, created}
- OPTIONS sur les deux: préflight CORS (204).
Sécurité:
- require_user: bearer token obligatoire (Unauthorized sinon).
- optional_rate_limit: limite la création de sessions/commandes.
Erreurs: {"error": "...", "code": "<Type>"} avec le statut de la taxonomie checkout.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_204_NO_CONTENT

from storefront.checkout import service as checkout_service
from storefront.checkout.errors import ValidationError
from storefront.orders import service as orders_service
from storefront.utils.rate_limit import optional_rate_limit
from storefront.utils.security import require_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/functions/v1", tags=["Functions"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Corps JSON invalide")
    if not isinstance(body, dict):
        raise ValidationError("Corps JSON invalide")
    return body

def _unexpected(action: str, e: Exception) -> JSONResponse:
    logger.exception("Erreur %s", action)
    return JSONResponse(status_code=500, content={"error": str(e) or "Erreur inattendue"}, headers=CORS_HEADERS)

@router.options("/create-payment-intent", include_in_schema=False)
@router.options("/create-order", include_in_schema=False)
async def functions_preflight():
    return Response(status_code=HTTP_204_NO_CONTENT, headers=CORS_HEADERS)

@router.post("/create-payment-intent", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_payment_intent(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """Crée une session Stripe Checkout pour le panier serveur de l'utilisateur.
    - Entrée JSON: {"shippingInfo": {fullName, email, address, city, zipCode}}
    - Les éventuels cartItems envoyés par le client sont ignorés (prix relus en base)
    - Retour: {"url": "<checkout stripe>", "id": "cs_..."}
    """
    body = await _json_body(request)
    try:
        session = await run_in_threadpool(
            checkout_service.initiate_checkout,
            user=user,
            shipping_info=body.get("shippingInfo"),
            origin=request.headers.get("origin"),
        )
    except HTTPException:
        raise
    except Exception as e:
        return _unexpected("create_payment_intent", e)
    return JSONResponse({"url": session["url"], "id": session["id"]}, headers=CORS_HEADERS)

@router.post("/create-order", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
async def create_order(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """Confirme la session Stripe et matérialise la commande (idempotent par sessionId).
    - Entrée JSON: {"sessionId": "cs_..."}
    - Retour: {"success": true, "orderId": "...", "created": bool}
    - created=false: commande déjà créée pour ce paiement (appel rejoué)
    """
    body = await _json_body(request)
    session_id = str(body.get("sessionId") or body.get("session_id") or "").strip()
    if not session_id:
        raise ValidationError("sessionId manquant")
    try:
        result = await run_in_threadpool(orders_service.confirm_checkout_session, session_id, user)
    except HTTPException:
        raise
    except Exception as e:
        return _unexpected("create_order", e)
    return JSONResponse(
        {"success": True, "orderId": result.order_id, "created": result.created},
        headers=CORS_HEADERS,
    )
