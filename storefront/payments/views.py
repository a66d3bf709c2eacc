import logging

import stripe
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from storefront.payments import stripe_client
from storefront.orders import service as orders_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module storefront.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe (Checkout): consomme checkout.session.completed pour matérialiser la commande.
    - Signature: stripe_client.parse_event (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - Idempotent: un doublon (webhook rejoué ou déjà confirmé par redirection) ne crée rien
    - Réponses: {"status": "ok", "orderId", "created"} ou {"status": "ignored"}
    - Erreurs: 400 si signature/payload invalide; taxonomie checkout sinon
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = stripe_client.parse_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("payments.webhook signature/payload invalide")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")

    result = await run_in_threadpool(orders_service.handle_checkout_completed, event)
    if result is None:
        return JSONResponse({"status": "ignored"})
    logger.info("payments.webhook order_id=%s created=%s event=%s", result.order_id, result.created, event.get("id"))
    return JSONResponse({"status": "ok", "orderId": result.order_id, "created": result.created})
